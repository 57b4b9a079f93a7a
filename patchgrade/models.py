"""
Data models for skeletons, rules, scenarios and engine configuration.

Provides type-safe structures for Region, directives, Scenario and EngineConfig
objects.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple


@dataclass
class Region:
    """A named editable span located within a skeleton."""
    name: str
    full_start: int  # start of the begin-marker line
    full_end: int  # end of the end-marker line (line terminator excluded)
    inner_start: int
    inner_end: int
    inner: str
    collapsed: bool = False  # no lines between the markers

    @property
    def inner_range(self) -> Tuple[int, int]:
        return self.inner_start, self.inner_end

    @property
    def full_range(self) -> Tuple[int, int]:
        return self.full_start, self.full_end


@dataclass
class Reconciliation:
    """Outcome of matching a student document against the skeleton anchors."""
    ok: bool
    bodies: List[str] = field(default_factory=list)
    spans: List[Tuple[int, int]] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[str] = None  # message key for reason


@dataclass
class EditableRange:
    """Location of one editable block inside the student's visible document."""
    name: str
    start: int
    end: int
    line_start: int  # 1-based
    line_end: int  # 1-based
    preview: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "start": self.start,
            "end": self.end,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "preview": self.preview,
        }


@dataclass
class EvaluationResult:
    """Pass/fail verdict with the first violation's reason."""
    passed: bool
    reason: Optional[str] = None

    @staticmethod
    def success() -> 'EvaluationResult':
        return EvaluationResult(passed=True)

    @staticmethod
    def failure(reason: str) -> 'EvaluationResult':
        return EvaluationResult(passed=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        if self.passed:
            return {"passed": True}
        return {"passed": False, "reason": self.reason}


# ===== RULE DIRECTIVES =====

@dataclass
class Pattern:
    """A compiled rule pattern together with the text shown in messages."""
    display: str
    regex: re.Pattern

    def search(self, text: str) -> bool:
        return self.regex.search(text) is not None

    def __str__(self) -> str:
        return self.display


@dataclass
class Require:
    pattern: Pattern
    line: int = 0
    kind = "require"


@dataclass
class Forbid:
    pattern: Pattern
    line: int = 0
    kind = "forbid"


@dataclass
class Test:
    __test__ = False
    call: str
    expect: Any
    line: int = 0
    kind = "test"


@dataclass
class MustChange:
    region: str
    line: int = 0
    kind = "mustChange"


@dataclass
class MustMatch:
    region: str
    pattern: Pattern
    line: int = 0
    kind = "mustMatch"


@dataclass
class ForbidIn:
    region: str
    pattern: Pattern
    line: int = 0
    kind = "forbidIn"


REGION_DIRECTIVES = (MustChange, MustMatch, ForbidIn)
GLOBAL_DIRECTIVES = (Require, Forbid)


@dataclass
class RuleSet:
    """Compiled directives plus diagnostics for the lines that were dropped."""
    directives: list = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def region_directives(self) -> list:
        return [d for d in self.directives if isinstance(d, REGION_DIRECTIVES)]

    def global_directives(self) -> list:
        return [d for d in self.directives if isinstance(d, GLOBAL_DIRECTIVES)]

    def tests(self) -> List[Test]:
        return [d for d in self.directives if isinstance(d, Test)]

    def region_names(self) -> List[str]:
        return [d.region for d in self.region_directives()]


# ===== SCENARIOS =====

@dataclass
class Scenario:
    """An exercise: skeleton source with editable regions and its rules."""
    code: str
    task: str
    name: str = ""
    description: str = ""
    rules_text: Optional[str] = None

    @staticmethod
    def from_dict(data: dict) -> 'Scenario':
        """Create a Scenario object from a dictionary."""
        rules_text = data.get('rules_text')
        if rules_text is None:
            rules_text = data.get('rulesText')

        return Scenario(
            code=data['code'],
            task=data['task'],
            name=data.get('name', ''),
            description=data.get('description', ''),
            rules_text=rules_text
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "task": self.task,
            "rules_text": self.rules_text,
        }

    def validate(self) -> Tuple[bool, str]:
        """
        Validate the scenario definition.

        Returns:
            Tuple of (is_valid, error_message)
        """
        # markers imports Region from this module
        from .markers import extract_regions

        if not self.code:
            return False, "Scenario code must not be empty"

        names = [region.name for region in extract_regions(self.task)]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            return False, f"Duplicate editable region names: {', '.join(duplicates)}"

        return True, ""


# ===== ENGINE CONFIGURATION =====

DEFAULT_SHADOWED_BUILTINS = [
    "open", "exec", "eval", "compile", "input", "breakpoint",
    "globals", "exit", "quit", "help",
]

DEFAULT_ALLOWED_MODULES = [
    "math", "re", "string", "itertools", "functools", "collections",
    "json", "datetime", "random", "statistics", "decimal", "fractions",
    "operator", "heapq", "bisect", "typing", "dataclasses", "enum",
]


INTEGER_FIELDS = ("test_timeout_ms", "memory_limit_mb", "match_step_budget", "preview_chars")


@dataclass
class EngineConfig:
    """
    Configuration for evaluation limits set by the exercise author.

    Attributes:
        test_timeout_ms: Wall-clock budget for one #test expression
        memory_limit_mb: Address-space limit for the test process (Unix only)
        match_step_budget: Characters the anchor scan may examine before reconciliation fails closed
        preview_chars: Maximum length of an editable block preview
        shadowed_builtins: Builtins removed from the student's namespace
        allowed_modules: Top-level modules student code may import
    """
    test_timeout_ms: int
    memory_limit_mb: int
    match_step_budget: int
    preview_chars: int
    shadowed_builtins: List[str]
    allowed_modules: List[str]

    @staticmethod
    def from_dict(data: dict) -> 'EngineConfig':
        """Create EngineConfig from dictionary."""
        return EngineConfig(
            test_timeout_ms=data.get('test_timeout_ms', 2000),
            memory_limit_mb=data.get('memory_limit_mb', 256),
            match_step_budget=data.get('match_step_budget', 200000),
            preview_chars=data.get('preview_chars', 80),
            shadowed_builtins=data.get('shadowed_builtins', list(DEFAULT_SHADOWED_BUILTINS)),
            allowed_modules=data.get('allowed_modules', list(DEFAULT_ALLOWED_MODULES))
        )

    def validate(self) -> Tuple[bool, str]:
        """
        Validate configuration consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        for name in INTEGER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                return False, f"{name} must be an integer"

        if not isinstance(self.shadowed_builtins, list) or not isinstance(self.allowed_modules, list):
            return False, "shadowed_builtins and allowed_modules must be lists"

        if self.test_timeout_ms <= 0:
            return False, "test_timeout_ms must be positive"

        if self.memory_limit_mb < 32:
            return False, "memory_limit_mb must be at least 32"

        if self.match_step_budget <= 0:
            return False, "match_step_budget must be positive"

        if self.preview_chars < 1:
            return False, "preview_chars must be at least 1"

        for name in self.shadowed_builtins + self.allowed_modules:
            if not isinstance(name, str) or not name:
                return False, "shadowed_builtins and allowed_modules must contain non-empty strings"

        return True, ""

    @property
    def test_timeout_sec(self) -> float:
        return self.test_timeout_ms / 1000.0

    @staticmethod
    def default() -> 'EngineConfig':
        """Return default configuration."""
        return EngineConfig.from_dict({})
