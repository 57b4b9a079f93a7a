"""
Compiler for the line-oriented rule language.

Each non-blank line starting with '#' holds one directive:

    #require <pattern>              pattern must occur in the full source
    #forbid <pattern>               pattern must not occur in the full source
    #test <expr> == <literal>       expression must evaluate to the literal
    #mustChange <region>            region body must differ from the starter
    #mustMatch <region> <pattern>   pattern must occur in the region body
    #forbidIn <region> <pattern>    pattern must not occur in the region body

A pattern written as /body/flags is a regular expression; anything else is
matched literally and case-insensitively. Lines that cannot be compiled are
dropped and reported in RuleSet.warnings.
"""

import json
import logging
import re
from functools import lru_cache
from typing import Any, Callable, Dict

from .models import (
    Pattern, RuleSet, Require, Forbid, Test, MustChange, MustMatch, ForbidIn
)

logger = logging.getLogger(__name__)

REGEX_LITERAL_RE = re.compile(r'/(.+)/([a-z]*)', re.IGNORECASE)
TEST_RE = re.compile(r'^(.*)\s*==\s*(.+)$')
REGION_ARGS_RE = re.compile(r'^(\S+)\s+(.+)$')
LINE_SPLIT_RE = re.compile(r'\r?\n')

REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    # No effect on a single search
    "g": 0,
    "u": 0,
    "y": 0,
}


@lru_cache(maxsize=512)
def compile_pattern(fragment: str) -> Pattern:
    """
    Compile a rule pattern.

    Args:
        fragment: Either /body/flags or plain text

    Returns:
        Pattern whose display text is always in /body/flags form

    Raises:
        ValueError: If the regex body is invalid or a flag is unsupported
    """
    literal = REGEX_LITERAL_RE.fullmatch(fragment)
    if not literal:
        escaped = re.escape(fragment)
        return Pattern(display=f"/{escaped}/i", regex=re.compile(escaped, re.IGNORECASE))

    body, flag_text = literal.group(1), literal.group(2)
    flags = 0
    for flag in flag_text:
        if flag not in REGEX_FLAGS:
            raise ValueError(f"unsupported regex flag '{flag}'")
        flags |= REGEX_FLAGS[flag]

    try:
        regex = re.compile(body, flags)
    except re.error as e:
        raise ValueError(f"invalid regex /{body}/: {e}") from e

    return Pattern(display=fragment, regex=regex)


def parse_expected(text: str) -> Any:
    """Parse the right-hand side of a #test line: JSON, else a (quoted) string."""
    try:
        return json.loads(text)
    except ValueError:
        if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
            return text[1:-1]
        return text


# ===== DIRECTIVE BUILDERS =====

def _build_require(rest: str, line: int) -> Require:
    if not rest:
        raise ValueError("missing pattern")
    return Require(pattern=compile_pattern(rest), line=line)


def _build_forbid(rest: str, line: int) -> Forbid:
    if not rest:
        raise ValueError("missing pattern")
    return Forbid(pattern=compile_pattern(rest), line=line)


def _build_test(rest: str, line: int) -> Test:
    match = TEST_RE.match(rest)
    if not match or not match.group(1).strip():
        raise ValueError("expected '<expression> == <value>'")
    return Test(
        call=match.group(1).strip(),
        expect=parse_expected(match.group(2).strip()),
        line=line
    )


def _build_must_change(rest: str, line: int) -> MustChange:
    if not rest:
        raise ValueError("missing region name")
    return MustChange(region=rest, line=line)


def _region_and_pattern(rest: str):
    match = REGION_ARGS_RE.match(rest)
    if not match:
        raise ValueError("expected '<region> <pattern>'")
    return match.group(1), compile_pattern(match.group(2))


def _build_must_match(rest: str, line: int) -> MustMatch:
    region, pattern = _region_and_pattern(rest)
    return MustMatch(region=region, pattern=pattern, line=line)


def _build_forbid_in(rest: str, line: int) -> ForbidIn:
    region, pattern = _region_and_pattern(rest)
    return ForbidIn(region=region, pattern=pattern, line=line)


DIRECTIVE_BUILDERS: Dict[str, Callable] = {
    "#require": _build_require,
    "#forbid": _build_forbid,
    "#test": _build_test,
    "#mustChange": _build_must_change,
    "#mustMatch": _build_must_match,
    "#forbidIn": _build_forbid_in,
}


def parse_rules(text: str) -> RuleSet:
    """
    Compile rule text into directives.

    Args:
        text: Newline-separated directives (None or empty gives no rules)

    Returns:
        RuleSet with directives in declaration order and one warning per
        dropped line
    """
    rule_set = RuleSet()
    if not text:
        return rule_set

    for number, raw in enumerate(LINE_SPLIT_RE.split(text), start=1):
        line = raw.strip()
        if not line:
            continue

        if not line.startswith("#"):
            _warn(rule_set, number, "not a directive", line)
            continue

        parts = line.split(None, 1)
        keyword = parts[0]
        rest = parts[1].strip() if len(parts) > 1 else ""

        builder = DIRECTIVE_BUILDERS.get(keyword)
        if builder is None:
            _warn(rule_set, number, f"unknown directive '{keyword}'", line)
            continue

        try:
            rule_set.directives.append(builder(rest, number))
        except ValueError as e:
            _warn(rule_set, number, str(e), line)

    return rule_set


def _warn(rule_set: RuleSet, number: int, message: str, line: str):
    warning = f"line {number}: {message}: {line}"
    logger.warning("Dropped rule %s", warning)
    rule_set.warnings.append(warning)
