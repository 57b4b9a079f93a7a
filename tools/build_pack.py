#!/usr/bin/env python3
"""
build_pack.py - Encrypt a plaintext JSON scenario pack.

Usage with key file:
    python tools/build_pack.py --in scenarios.json --out banks/pack.enc --key-file PACK.key

Usage with password:
    python tools/build_pack.py --in scenarios.json --out banks/pack.enc --password
"""

import argparse
import getpass
import hashlib
import json
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from patchgrade.scenarios import encrypt_pack, parse_pack, SALT_LENGTH


def build_pack(in_file: str, out_file: str, key: bytes = None, password: str = None) -> str:
    """
    Validate and encrypt a plaintext scenario pack.

    Args:
        in_file: Plaintext pack JSON
        out_file: Destination .enc file
        key: Fernet key (key-file encryption)
        password: Password (password encryption, random salt)

    Returns:
        SHA256 hex digest of the written file

    Raises:
        ValueError: If the pack is invalid or no secret is given
    """
    with open(in_file, 'rb') as f:
        plaintext = f.read()

    # Validate before encrypting
    scenarios = parse_pack(plaintext)

    # Re-serialize compactly
    compact = json.dumps(json.loads(plaintext), ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    salt = os.urandom(SALT_LENGTH) if password is not None else None
    final_data = encrypt_pack(compact, key=key, password=password, salt=salt)

    Path(out_file).parent.mkdir(parents=True, exist_ok=True)
    with open(out_file, 'wb') as f:
        f.write(final_data)

    print(f"[OK] Pack encrypted -> {out_file}")
    print(f"  Scenarios: {', '.join(sorted(scenarios))}")
    print(f"  Bytes in/out: {len(compact)} -> {len(final_data)}")
    return hashlib.sha256(final_data).hexdigest()


def main(argv=None):
    p = argparse.ArgumentParser(description="Encrypt a scenario pack.")
    p.add_argument("--in", dest="in_file", required=True, help="Plaintext pack JSON")
    p.add_argument("--out", required=True, help="Output encrypted pack (.enc)")
    p.add_argument("--key-file", help="Encryption key file (mutually exclusive with --password)")
    p.add_argument("--password", action="store_true", help="Use password-based encryption")
    args = p.parse_args(argv)

    if args.password and args.key_file:
        print("[ERROR] Cannot use both --password and --key-file", file=sys.stderr)
        return 1
    if not args.password and not args.key_file:
        print("[ERROR] Must specify either --password or --key-file", file=sys.stderr)
        return 1

    key = None
    password = None
    if args.password:
        password = getpass.getpass("Enter encryption password: ")
        if password != getpass.getpass("Confirm password: "):
            print("[ERROR] Passwords do not match", file=sys.stderr)
            return 1
        if len(password) < 8:
            print("[ERROR] Password must be at least 8 characters", file=sys.stderr)
            return 1
    else:
        key = Path(args.key_file).read_bytes().strip()

    try:
        sha256 = build_pack(args.in_file, args.out, key=key, password=password)
    except (ValueError, OSError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(f"  SHA256: {sha256}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
