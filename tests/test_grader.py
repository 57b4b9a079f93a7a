"""
Tests for grader module.

Tests submission evaluation including:
- Outside edits and region checks
- Global pattern checks
- Behavioral tests run in the sandbox
- Evaluation order and message overrides
"""

import math
import pytest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from patchgrade.grader import Grader, bodies_equivalent, canonical_json
from patchgrade.models import EngineConfig, Scenario
from patchgrade.scenarios import load_pack


BANK_PATH = Path(__file__).parent.parent / "banks" / "scenarios.json"

ADD_SKELETON = (
    "def add(a, b):\n"
    "    # patch body\n"
    "    return 0\n"
    "    # endpatch\n"
)

ADD_VISIBLE = "def add(a, b):\n    return 0\n"
ADD_SOLVED = "def add(a, b):\n    return a + b\n"


@pytest.fixture
def grader():
    """Create a grader with default limits."""
    return Grader(EngineConfig.default())


class TestBodiesEquivalent:
    """Test the comparison used by #mustChange."""

    def test_comments_and_whitespace_ignored(self):
        """Test edits that only touch comments or spacing."""
        assert bodies_equivalent("    return 0", "    return 0  # still zero")
        assert bodies_equivalent("x=1", "x = 1")
        assert bodies_equivalent("    a = 1\n    b = 2", "    a = 1\n\n    b = 2\n")

    def test_code_change_detected(self):
        """Test a real change."""
        assert not bodies_equivalent("    return 0", "    return a + b")

    def test_string_spacing_counts(self):
        """Test that whitespace inside a string literal is significant."""
        assert not bodies_equivalent("x = 'a b'", "x = 'ab'")

    def test_untokenizable_falls_back_to_text(self):
        """Test bodies that are not valid Python tokens."""
        assert bodies_equivalent("foo(", "foo (  # open")
        assert not bodies_equivalent("foo(", "bar(")


class TestCanonicalJson:
    """Test serialization of test values."""

    def test_integral_float(self):
        """Test that 5.0 compares equal to 5."""
        assert canonical_json(5.0) == canonical_json(5) == "5"

    def test_compact_containers(self):
        """Test list and tuple output."""
        assert canonical_json((1, [2, 3])) == "[1,[2,3]]"
        assert canonical_json({"a": 1}) == '{"a":1}'

    def test_non_finite(self):
        """Test NaN and infinity."""
        assert canonical_json(math.nan) == "null"
        assert canonical_json(math.inf) == "null"


class TestOutsideEdits:
    """Test reconciliation failures."""

    def test_edit_outside_region_fails_first(self, grader):
        """Test that an outside edit fails before any rule runs."""
        result = grader.evaluate_source(ADD_SKELETON, "#require nothing_like_this", "def plus(a, b):\n    return a + b\n")

        assert not result.passed
        assert "outside the allowed regions" in result.reason

    def test_untouched_with_no_rules_passes(self, grader):
        """Test that an untouched document passes an empty rule set."""
        assert grader.evaluate_source(ADD_SKELETON, "", ADD_VISIBLE).passed

    def test_budget_message(self):
        """Test the message when the matching budget runs out."""
        skeleton = "a\n# patch x\n1\n# endpatch\nb\n# patch y\n2\n# endpatch\nc\n# patch z\n3\n# endpatch\nd"
        grader = Grader(EngineConfig.from_dict({"match_step_budget": 1}))

        result = grader.evaluate_source(skeleton, "", "a\n1\nb\n2\nc\n3\nd")

        assert not result.passed
        assert "could not be matched" in result.reason


class TestRegionChecks:
    """Test #mustChange, #mustMatch and #forbidIn."""

    def test_forbid_in_reports_region(self, grader):
        """Test a forbidden call inside a region."""
        skeleton = "def handle(input):\n    # patch x\n    return input\n    # endpatch\n"
        student = "def handle(input):\n    return eval(input);\n"

        result = grader.evaluate_source(skeleton, r"#forbidIn x /eval\(/i", student)

        assert not result.passed
        assert result.reason == r'Forbidden pattern /eval\(/i found in "x".'

    def test_must_change_unchanged(self, grader):
        """Test that an unchanged body fails."""
        result = grader.evaluate_source(ADD_SKELETON, "#mustChange body", ADD_VISIBLE)

        assert not result.passed
        assert '"body"' in result.reason
        assert "must modify" in result.reason

    def test_must_change_comment_only(self, grader):
        """Test that adding a comment is not a change."""
        student = "def add(a, b):\n    return 0  # done\n"

        assert not grader.evaluate_source(ADD_SKELETON, "#mustChange body", student).passed

    def test_must_change_real_edit(self, grader):
        """Test that a real edit passes."""
        assert grader.evaluate_source(ADD_SKELETON, "#mustChange body", ADD_SOLVED).passed

    def test_must_match(self, grader):
        """Test pattern matching against the region body."""
        rules = r"#mustMatch body /return\s+a\s*\+\s*b/"

        assert grader.evaluate_source(ADD_SKELETON, rules, ADD_SOLVED).passed
        result = grader.evaluate_source(ADD_SKELETON, rules, "def add(a, b):\n    return b + a\n")
        assert result.reason == r'Section "body" does not match expected pattern /return\s+a\s*\+\s*b/.'

    def test_must_match_only_sees_region(self, grader):
        """Test that text outside the region does not satisfy #mustMatch."""
        assert not grader.evaluate_source(ADD_SKELETON, "#mustMatch body /def add/", ADD_SOLVED).passed

    def test_missing_region(self, grader):
        """Test a rule that names a region the skeleton does not have."""
        result = grader.evaluate_source(ADD_SKELETON, "#mustChange nope", ADD_SOLVED)

        assert result.reason == 'Missing editable region "nope".'

    def test_duplicate_region_name_is_an_error(self, grader):
        """Test that a rule on an ambiguous region name raises."""
        skeleton = "# patch x\n1\n# endpatch\n# patch x\n2\n# endpatch\n"

        with pytest.raises(ValueError, match="more than once"):
            grader.evaluate_source(skeleton, "#mustChange x", "1\n2\n")

    def test_duplicate_name_without_rules(self, grader):
        """Test that duplicate names are fine when no rule refers to them."""
        skeleton = "# patch x\n1\n# endpatch\n# patch x\n2\n# endpatch\n"

        assert grader.evaluate_source(skeleton, "#require 1", "1\n2\n").passed


class TestGlobalChecks:
    """Test #require and #forbid on the rebuilt source."""

    def test_require_missing(self, grader):
        """Test a required pattern that is absent."""
        skeleton = "def greet():\n    # patch body\n    pass\n    # endpatch\n"
        student = "def greet():\n    return 'hi'\n"

        result = grader.evaluate_source(skeleton, r"#require /function\s+login/i", student)

        assert result.reason == r"Missing requirement: /function\s+login/i"

    def test_require_sees_markers(self, grader):
        """Test that global checks run on the source including marker lines."""
        assert grader.evaluate_source(ADD_SKELETON, "#require endpatch", ADD_SOLVED).passed

    def test_forbid(self, grader):
        """Test a forbidden pattern in the rebuilt source."""
        student = "def add(a, b):\n    import operator\n    return operator.add(a, b)\n"

        result = grader.evaluate_source(ADD_SKELETON, "#forbid /import/", student)

        assert result.reason == "Forbidden usage: /import/"


class TestBehavioralTests:
    """Test #test directives."""

    def test_passing_test(self, grader):
        """Test a correct implementation."""
        result = grader.evaluate_source(ADD_SKELETON, "#test add(2,3) == 5", ADD_SOLVED)

        assert result.passed
        assert result.reason is None

    def test_wrong_value(self, grader):
        """Test the failure message for a wrong result."""
        result = grader.evaluate_source(ADD_SKELETON, "#test add(2,3) == 6", ADD_SOLVED)

        assert result.reason == "Test failed: add(2,3) !== 6"

    def test_exception(self, grader):
        """Test the failure message when the call raises."""
        result = grader.evaluate_source(ADD_SKELETON, "#test add(1) == 1", ADD_SOLVED)

        assert result.reason.startswith("Test threw: TypeError")

    def test_float_result_matches_integer(self, grader):
        """Test that 5.0 satisfies an expected 5."""
        student = "def add(a, b):\n    return float(a + b)\n"

        assert grader.evaluate_source(ADD_SKELETON, "#test add(2, 3) == 5", student).passed

    @patch('patchgrade.grader.run_test_expression')
    def test_timeout_reported_as_thrown(self, mock_run, grader):
        """Test that sandbox failures surface as 'Test threw'."""
        mock_run.return_value = ("timeout", None, "Process exceeded time limit")

        result = grader.evaluate_source(ADD_SKELETON, "#test add(1, 1) == 2", ADD_SOLVED)

        assert result.reason == "Test threw: Process exceeded time limit"

    @patch('patchgrade.grader.run_test_expression')
    def test_sandbox_receives_config(self, mock_run):
        """Test that engine limits are passed to the sandbox."""
        mock_run.return_value = ("success", 2, "")
        config = EngineConfig.from_dict({"test_timeout_ms": 500, "memory_limit_mb": 64})

        Grader(config).evaluate_source(ADD_SKELETON, "#test add(1, 1) == 2", ADD_SOLVED)

        args, kwargs = mock_run.call_args
        assert args[1] == "add(1, 1)"
        assert args[2] == 0.5
        assert args[3] == 64
        assert "open" in kwargs["shadowed"]
        assert "math" in kwargs["allowed_modules"]
        assert "return a + b" in args[0]


class TestEvaluationOrder:
    """Test which violation is reported when several apply."""

    def test_region_checks_before_globals(self, grader):
        """Test that a region failure wins over an earlier declared global rule."""
        result = grader.evaluate_source(ADD_SKELETON, "#require zzz\n#mustChange body", ADD_VISIBLE)

        assert "must modify" in result.reason

    def test_globals_before_tests(self, grader):
        """Test that a global failure wins over an earlier declared test."""
        result = grader.evaluate_source(ADD_SKELETON, "#test add(1, 1) == 3\n#forbid /a \\+ b/", ADD_SOLVED)

        assert result.reason.startswith("Forbidden usage")

    @patch('patchgrade.grader.run_test_expression')
    def test_tests_not_run_after_failure(self, mock_run, grader):
        """Test that no sandbox process starts once a rule failed."""
        grader.evaluate_source(ADD_SKELETON, "#mustChange body\n#test add(1, 1) == 2", ADD_VISIBLE)

        mock_run.assert_not_called()

    def test_first_test_failure_reported(self, grader):
        """Test that tests run in declaration order."""
        result = grader.evaluate_source(ADD_SKELETON, "#test add(1, 1) == 3\n#test add(1, 2) == 4", ADD_SOLVED)

        assert result.reason == "Test failed: add(1, 1) !== 3"


class TestMessagesAndViews:
    """Test message overrides and host helpers."""

    def test_custom_message_fn(self, grader):
        """Test routing reasons through a host-supplied function."""
        grader.set_message_fn(lambda key, **kwargs: f"{key}:{kwargs.get('region', '')}")

        result = grader.evaluate_source(ADD_SKELETON, "#mustChange body", ADD_VISIBLE)

        assert result.reason == "must_change:body"

    def test_student_view(self, grader):
        """Test the starter text helper."""
        assert grader.student_view(ADD_SKELETON) == ADD_VISIBLE

    def test_locate_regions_uses_preview_config(self):
        """Test that preview length follows the engine config."""
        grader = Grader(EngineConfig.from_dict({"preview_chars": 3}))

        ranges = grader.locate_regions(ADD_SKELETON, ADD_SOLVED)

        assert ranges[0].preview == "ret"

    def test_result_to_dict(self, grader):
        """Test result serialization."""
        assert grader.evaluate_source(ADD_SKELETON, "", ADD_VISIBLE).to_dict() == {"passed": True}


class TestBankScenarios:
    """Test the sample scenarios shipped in banks/."""

    def test_sanitize_scenario(self, grader):
        """Test the DEFAULT scenario with a wrong and a right answer."""
        scenario = load_pack(BANK_PATH)["DEFAULT"]
        starter = grader.student_view(scenario.task)

        assert not grader.evaluate(scenario, starter).passed

        unsafe = starter.replace("    return value", "    return eval(value)")
        assert "Forbidden pattern" in grader.evaluate(scenario, unsafe).reason

        solved = starter.replace("    return value", "    return escape_html(value)")
        result = grader.evaluate(scenario, solved)
        assert result.passed, result.reason

    def test_add_scenario(self, grader):
        """Test the ADD scenario."""
        scenario = load_pack(BANK_PATH)["ADD"]

        assert grader.evaluate(scenario, ADD_SOLVED).passed
        assert not grader.evaluate(scenario, "def add(a, b):\n    return a - b\n").passed

    def test_scenario_object(self, grader):
        """Test evaluate() with an in-memory scenario."""
        scenario = Scenario(code="T", task=ADD_SKELETON, rules_text="#test add(0, 0) == 0")

        assert grader.evaluate(scenario, ADD_VISIBLE).passed
