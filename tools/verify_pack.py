#!/usr/bin/env python3
"""
verify_pack.py - Validate scenario packs (.json or .enc)

Examples:
  # Plaintext pack
  python tools/verify_pack.py --pack scenarios.json

  # Encrypted pack (key file)
  python tools/verify_pack.py --pack banks/pack.enc --key-file PACK.key

  # Encrypted pack (password)
  python tools/verify_pack.py --pack banks/pack.enc --password
"""

import argparse
import getpass
import json
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from patchgrade.markers import extract_regions, split_anchors, visible_document
from patchgrade.models import Scenario
from patchgrade.reconcile import reconcile
from patchgrade.rules import parse_rules
from patchgrade.scenarios import read_pack_bytes


def check_scenario(scenario: Scenario):
    """
    Check one scenario for authoring problems.

    Returns:
        Tuple of (errors, warnings)
    """
    errors, warnings = [], []

    is_valid, error_message = scenario.validate()
    if not is_valid:
        errors.append(error_message)

    regions = extract_regions(scenario.task)
    if not regions:
        warnings.append("No editable regions found")

    # The untouched starter must reconcile to the original bodies
    anchors = split_anchors(scenario.task, regions)
    result = reconcile(anchors, visible_document(scenario.task, regions))
    if not result.ok or result.bodies != [r.inner for r in regions]:
        errors.append("Starter text does not round-trip through the anchors")

    rule_set = parse_rules(scenario.rules_text)
    warnings.extend(rule_set.warnings)

    names = {r.name for r in regions}
    for region_name in rule_set.region_names():
        if region_name not in names:
            errors.append(f"Rule references unknown region '{region_name}'")

    if not rule_set.directives:
        warnings.append("No rules defined")

    return errors, warnings


def verify_pack(pack_bytes: bytes, verbose: bool = False) -> bool:
    try:
        pack = json.loads(pack_bytes)
    except json.JSONDecodeError as e:
        print(f"[ERROR] Invalid JSON: {e}")
        return False

    if not isinstance(pack, dict) or not isinstance(pack.get("scenarios"), list):
        print("[ERROR] Pack must contain a 'scenarios' list")
        return False

    errors, warnings = [], []
    seen = set()
    for idx, entry in enumerate(pack["scenarios"], 1):
        try:
            scenario = Scenario.from_dict(entry)
        except (KeyError, TypeError, AttributeError) as e:
            errors.append(f"scenario[{idx}]: Missing or malformed field {e}")
            continue

        if scenario.code in seen:
            errors.append(f"scenario[{idx}]: Duplicate code '{scenario.code}'")
        seen.add(scenario.code)

        scenario_errors, scenario_warnings = check_scenario(scenario)
        errors.extend(f"{scenario.code}: {e}" for e in scenario_errors)
        warnings.extend(f"{scenario.code}: {w}" for w in scenario_warnings)

        if verbose:
            region_names = [r.name for r in extract_regions(scenario.task)]
            print(f"  [OK] {scenario.code}: {scenario.name or '?'} (regions: {', '.join(region_names) or '-'})")

    print(f"\n{'='*60}")
    print(f"[SUMMARY]")
    print(f"  Total scenarios: {len(pack['scenarios'])}")

    if warnings:
        print(f"\n[WARNING] ({len(warnings)}):")
        for warn in warnings[:10]:
            print(f"  - {warn}")
        if len(warnings) > 10:
            print(f"  ... and {len(warnings) - 10} more")

    if errors:
        print(f"\n[ERROR] ({len(errors)}):")
        for err in errors[:20]:
            print(f"  - {err}")
        if len(errors) > 20:
            print(f"  ... and {len(errors) - 20} more")
        return False

    print(f"\n[OK] Pack validation PASSED")
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(description="Verify a scenario pack (.json or .enc).")
    parser.add_argument("--pack", required=True, help="Path to pack file (.json or .enc)")
    parser.add_argument("--key-file", help="Encryption key file (for key-file encrypted .enc files)")
    parser.add_argument("--password", action="store_true", help="Use password to decrypt (for password-encrypted .enc files)")
    parser.add_argument("--verbose", action="store_true", help="Show one line per scenario")
    args = parser.parse_args(argv)

    try:
        key = Path(args.key_file).read_bytes() if args.key_file else None
        password = getpass.getpass("Enter decryption password: ") if args.password else None
        plaintext = read_pack_bytes(args.pack, key=key, password=password)
    except (ValueError, OSError) as e:
        print(f"[ERROR] {e}")
        return 1

    return 0 if verify_pack(plaintext, args.verbose) else 1


if __name__ == "__main__":
    sys.exit(main())
