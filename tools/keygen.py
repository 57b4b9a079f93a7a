#!/usr/bin/env python3
"""
keygen.py - Generate Fernet encryption keys for scenario packs.

Usage:
    python tools/keygen.py --out PACK.key

Note: You can also use passwords directly with build_pack.py --password
      instead of generating key files.
"""

import argparse
import sys
from pathlib import Path
from cryptography.fernet import Fernet


def generate_key(output_file: str) -> bytes:
    """Generate a new Fernet key, save it to file and return it."""
    key = Fernet.generate_key()
    Path(output_file).parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, 'wb') as f:
        f.write(key)
    return key


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Generate a new Fernet encryption key for scenario packs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/keygen.py --out PACK.key

Security Notes:
  - Keep keys out of the directory served to students
  - Never commit keys to version control
        """
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output file path for the key (e.g., PACK.key)"
    )
    args = parser.parse_args(argv)

    try:
        generate_key(args.out)
    except OSError as e:
        print(f"[ERROR] Error generating key: {e}", file=sys.stderr)
        return 1

    print(f"[OK] Encryption key written to {args.out}")
    print(f"\n[!] SECURITY: Store this key securely. Never commit to version control.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
