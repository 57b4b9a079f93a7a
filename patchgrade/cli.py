#!/usr/bin/env python3
"""
Patch exercise grader CLI

Author- and host-facing command line for the evaluation engine: show the
student's starter text, locate editable blocks in a submission, and evaluate a
submission against a scenario's rules.
"""

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config_loader import load_config, create_sample_config
from .grader import Grader
from .models import EngineConfig, Scenario
from .rules import parse_rules
from .scenarios import load_pack
from .translations import TRANSLATIONS

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "WARNING", log_file: Optional[str] = None):
    """Send log records to stderr and optionally to a log file."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True
    )


def _msg(key: str, **kwargs) -> str:
    return TRANSLATIONS["en"][key].format(**kwargs)


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding='utf-8')


def _resolve_scenario(args) -> Scenario:
    """Load the scenario selected on the command line."""
    if args.pack:
        if not args.code:
            raise ValueError("--code is required with --pack")

        key = Path(args.key_file).read_bytes() if args.key_file else None
        password = getpass.getpass("Enter decryption password: ") if args.password else None
        scenarios = load_pack(args.pack, key=key, password=password)

        if args.code not in scenarios:
            raise ValueError(f"Scenario '{args.code}' not found in {args.pack}")
        return scenarios[args.code]

    if args.skeleton:
        skeleton_path = Path(args.skeleton)
        return Scenario(
            code=args.code or skeleton_path.stem,
            task=skeleton_path.read_text(encoding='utf-8'),
            rules_text=_read_text(args.rules) if args.rules else None
        )

    raise ValueError("Specify a scenario with --pack/--code or --skeleton")


def _load_engine_config(args) -> EngineConfig:
    if args.config:
        return load_config(Path(args.config))
    return EngineConfig.default()


def cmd_visible(args, grader: Grader) -> int:
    scenario = _resolve_scenario(args)
    sys.stdout.write(grader.student_view(scenario.task))
    return 0


def cmd_regions(args, grader: Grader) -> int:
    scenario = _resolve_scenario(args)
    submission = _read_text(args.submission)

    ranges = grader.locate_regions(scenario.task, submission)
    if ranges is None:
        print(_msg("cli_regions_not_found"), file=sys.stderr)
        return 1

    print(json.dumps([r.to_dict() for r in ranges], indent=2))
    return 0


def cmd_evaluate(args, grader: Grader) -> int:
    scenario = _resolve_scenario(args)
    submission = _read_text(args.submission)

    for warning in parse_rules(scenario.rules_text).warnings:
        print(_msg("cli_rule_warning", warning=warning), file=sys.stderr)

    result = grader.evaluate(scenario, submission)
    if args.json:
        print(json.dumps({"ok": result.passed, "reason": result.reason}))
    elif result.passed:
        print(_msg("cli_passed"))
    else:
        print(_msg("cli_failed", reason=result.reason))

    return 0 if result.passed else 1


def cmd_init_config(args, grader: Grader) -> int:
    create_sample_config(Path(args.out))
    print(f"Sample configuration created at: {args.out}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="patchgrade",
        description="Patch exercise grader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  patchgrade visible --pack scenarios.json --code DEFAULT
  patchgrade regions --skeleton task.py --submission answer.py
  patchgrade evaluate --pack banks/pack.enc --key-file PACK.key --code DEFAULT --submission answer.py --json
        """
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    parser.add_argument("--log-file", help="Also append log records to this file")

    scenario_args = argparse.ArgumentParser(add_help=False)
    scenario_args.add_argument("--pack", help="Scenario pack (.json or .enc)")
    scenario_args.add_argument("--code", help="Scenario code within the pack")
    scenario_args.add_argument("--skeleton", help="Skeleton source file (alternative to --pack)")
    scenario_args.add_argument("--rules", help="Rules file used with --skeleton")
    scenario_args.add_argument("--key-file", help="Key file for key-encrypted packs")
    scenario_args.add_argument("--password", action="store_true", help="Prompt for the pack password")
    scenario_args.add_argument("--config", help="Engine configuration file (JSON)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    visible = subparsers.add_parser("visible", parents=[scenario_args], help="Print the student's starter text")
    visible.set_defaults(func=cmd_visible)

    regions = subparsers.add_parser("regions", parents=[scenario_args], help="Locate editable blocks in a submission")
    regions.add_argument("--submission", required=True, help="Student document ('-' for stdin)")
    regions.set_defaults(func=cmd_regions)

    evaluate = subparsers.add_parser("evaluate", parents=[scenario_args], help="Evaluate a submission")
    evaluate.add_argument("--submission", required=True, help="Student document ('-' for stdin)")
    evaluate.add_argument("--json", action="store_true", help="Print {\"ok\", \"reason\"} JSON")
    evaluate.set_defaults(func=cmd_evaluate)

    init_config = subparsers.add_parser("init-config", help="Write a sample engine configuration")
    init_config.add_argument("--out", default="config.json", help="Output path (default: config.json)")
    init_config.add_argument("--config", help=argparse.SUPPRESS)
    init_config.set_defaults(func=cmd_init_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the grader CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        grader = Grader(_load_engine_config(args))
        return args.func(args, grader)
    except (ValueError, OSError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
