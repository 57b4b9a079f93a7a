"""
Grader module for evaluating student submissions against exercise rules.

Provides the Grader class which reconciles the student's visible document with
the skeleton, rebuilds the full source and applies the compiled directives in
a fixed order: region checks, then global pattern checks, then behavioral
tests in the sandbox. The first violation ends the evaluation.
"""

import io
import json
import logging
import math
import re
import textwrap
import tokenize
from typing import Dict, List, Tuple, Callable, Any, Optional

from .markers import extract_regions, split_anchors, visible_document
from .models import (
    EngineConfig, EditableRange, EvaluationResult, Region, RuleSet, Scenario, Test
)
from .reconcile import reconcile, reconstruct_source, locate_editable_ranges
from .rules import parse_rules
from .sandbox import run_test_expression
from .translations import TRANSLATIONS

logger = logging.getLogger(__name__)

COMMENT_RE = re.compile(r'#[^\n]*')
WHITESPACE_RE = re.compile(r'\s+')
SKIPPED_TOKENS = {
    tokenize.COMMENT, tokenize.NL, tokenize.NEWLINE,
    tokenize.INDENT, tokenize.DEDENT, tokenize.ENDMARKER,
}


def _token_normalize(text: str) -> str:
    tokens = tokenize.generate_tokens(io.StringIO(textwrap.dedent(text)).readline)
    return "".join(tok.string for tok in tokens if tok.type not in SKIPPED_TOKENS)


def _text_normalize(text: str) -> str:
    return WHITESPACE_RE.sub("", COMMENT_RE.sub("", text or ""))


def bodies_equivalent(original: str, edited: str) -> bool:
    """
    Compare two region bodies ignoring comments and whitespace.

    Both bodies are tokenized when possible so whitespace inside string
    literals still counts. If either fails to tokenize, both fall back to
    plain text normalization.
    """
    try:
        return _token_normalize(original) == _token_normalize(edited)
    except (tokenize.TokenError, SyntaxError):
        return _text_normalize(original) == _text_normalize(edited)


def _canonical(value: Any) -> Any:
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    return value


def canonical_json(value: Any) -> str:
    """Serialize a test value for comparison (compact, integral floats as ints)."""
    return json.dumps(_canonical(value), ensure_ascii=False, separators=(",", ":"))


class Grader:
    """Handles rule evaluation and region discovery for one engine config."""

    def __init__(self, config: Optional[EngineConfig] = None):
        """Initialize grader with available directive checks and engine config."""
        self.config = config or EngineConfig.default()
        self.region_checks: Dict[str, Callable] = {
            "mustChange": self._must_change,
            "mustMatch": self._must_match,
            "forbidIn": self._forbid_in,
        }
        self.global_checks: Dict[str, Callable] = {
            "require": self._require,
            "forbid": self._forbid,
        }
        self._message_fn = None

    # ===== HELPER FUNCTIONS =====

    def set_message_fn(self, message_fn):
        self._message_fn = message_fn

    def _msg(self, key: str, **kwargs) -> str:
        if self._message_fn:
            return self._message_fn(key, **kwargs)
        template = TRANSLATIONS["en"].get(key, key)
        return template.format(**kwargs)

    # ===== REGION CHECKS =====

    def _must_change(self, directive, original: str, body: str) -> Optional[str]:
        """Fail if the body still matches the starter once comments and whitespace are ignored."""
        if bodies_equivalent(original, body):
            return self._msg("must_change", region=directive.region)
        return None

    def _must_match(self, directive, original: str, body: str) -> Optional[str]:
        if not directive.pattern.search(body):
            return self._msg("must_match", region=directive.region, pattern=directive.pattern)
        return None

    def _forbid_in(self, directive, original: str, body: str) -> Optional[str]:
        if directive.pattern.search(body):
            return self._msg("forbid_in", region=directive.region, pattern=directive.pattern)
        return None

    # ===== GLOBAL CHECKS =====

    def _require(self, directive, source: str) -> Optional[str]:
        if not directive.pattern.search(source):
            return self._msg("require", pattern=directive.pattern)
        return None

    def _forbid(self, directive, source: str) -> Optional[str]:
        if directive.pattern.search(source):
            return self._msg("forbid", pattern=directive.pattern)
        return None

    # ===== BEHAVIORAL TESTS =====

    def _run_test(self, directive: Test, source: str) -> Optional[str]:
        """
        Run one #test directive in the sandbox.

        Returns:
            Failure reason, or None if the result matches the expected value
        """
        status, value, error = run_test_expression(
            source,
            directive.call,
            self.config.test_timeout_sec,
            self.config.memory_limit_mb,
            shadowed=self.config.shadowed_builtins,
            allowed_modules=self.config.allowed_modules
        )

        if status != "success":
            return self._msg("test_threw", error=error)

        expected = canonical_json(directive.expect)
        if canonical_json(value) != expected:
            return self._msg("test_failed", call=directive.call, expected=expected)
        return None

    # ===== EVALUATION =====

    def student_view(self, skeleton: str) -> str:
        """Return the marker-free starter text shown to the student."""
        return visible_document(skeleton)

    def locate_regions(self, skeleton: str, student_visible: str) -> Optional[List[EditableRange]]:
        """
        Locate the editable blocks in the student's current document.

        Returns:
            Ranges in region order, or None if the blocks cannot be located
        """
        return locate_editable_ranges(
            skeleton,
            student_visible,
            preview_chars=self.config.preview_chars,
            step_budget=self.config.match_step_budget
        )

    def evaluate(self, scenario: Scenario, student_visible: str) -> EvaluationResult:
        """Evaluate a submission against a scenario's skeleton and rules."""
        return self.evaluate_source(scenario.task or "", scenario.rules_text, student_visible)

    def evaluate_source(
        self,
        skeleton: str,
        rules_text: Optional[str],
        student_visible: str
    ) -> EvaluationResult:
        """
        Evaluate a submission.

        Args:
            skeleton: Authored source containing marker lines
            rules_text: Rule language text
            student_visible: Marker-free document submitted by the student

        Returns:
            EvaluationResult with the first violation's reason, if any

        Raises:
            ValueError: If a region rule names a region that appears more than
                once in the skeleton
        """
        rule_set = parse_rules(rules_text)
        regions = extract_regions(skeleton)

        reconciliation = reconcile(
            split_anchors(skeleton, regions),
            student_visible,
            self.config.match_step_budget
        )
        if not reconciliation.ok:
            return self._fail(self._msg(reconciliation.error))

        bodies = reconciliation.bodies
        if len(bodies) != len(regions):
            return self._fail(self._msg("region_mismatch"))

        source = reconstruct_source(skeleton, bodies, regions)
        patches = self._region_map(regions, bodies, rule_set)

        for directive in rule_set.region_directives():
            if directive.region not in patches:
                return self._fail(self._msg("missing_region", region=directive.region))
            original, body = patches[directive.region]
            reason = self.region_checks[directive.kind](directive, original, body)
            if reason:
                return self._fail(reason)

        for directive in rule_set.global_directives():
            reason = self.global_checks[directive.kind](directive, source)
            if reason:
                return self._fail(reason)

        for directive in rule_set.tests():
            reason = self._run_test(directive, source)
            if reason:
                return self._fail(reason)

        return EvaluationResult.success()

    def _region_map(
        self,
        regions: List[Region],
        bodies: List[str],
        rule_set: RuleSet
    ) -> Dict[str, Tuple[str, str]]:
        """Map region names to (original body, student body)."""
        names = [region.name for region in regions]
        for name in set(rule_set.region_names()):
            if names.count(name) > 1:
                raise ValueError(f"Editable region name '{name}' appears more than once in the skeleton")

        return {
            region.name: (region.inner, body)
            for region, body in zip(regions, bodies)
        }

    def _fail(self, reason: str) -> EvaluationResult:
        logger.info("Evaluation failed: %s", reason)
        return EvaluationResult.failure(reason)
