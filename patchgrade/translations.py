"""
Student-facing message templates.

Templates are formatted with str.format; hosts can route lookups elsewhere
through Grader.set_message_fn.
"""

TRANSLATIONS = {
    "en": {
        # Reconciliation
        "reconcile_outside_edit": (
            "It looks like you modified text outside the allowed regions. "
            "Please only edit inside the editable area."
        ),
        "reconcile_budget": (
            "Your submission could not be matched against the exercise in time. "
            "Please only edit inside the editable area."
        ),
        "region_mismatch": (
            "Editable region mismatch. Please reload the page and only edit "
            "inside the specified block."
        ),

        # Region directives
        "missing_region": 'Missing editable region "{region}".',
        "must_change": 'You must modify the "{region}" section (it still matches the starter).',
        "must_match": 'Section "{region}" does not match expected pattern {pattern}.',
        "forbid_in": 'Forbidden pattern {pattern} found in "{region}".',

        # Global directives
        "require": "Missing requirement: {pattern}",
        "forbid": "Forbidden usage: {pattern}",

        # Behavioral tests
        "test_failed": "Test failed: {call} !== {expected}",
        "test_threw": "Test threw: {error}",

        # CLI
        "cli_passed": "[OK] All rules passed",
        "cli_failed": "[FAIL] {reason}",
        "cli_regions_not_found": "Couldn't locate the editable blocks in this document.",
        "cli_rule_warning": "[WARNING] {warning}",
    },
}
