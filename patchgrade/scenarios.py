"""
Scenario pack loading.

A pack is a JSON document:

    {"version": "1", "scenarios": [{"code": ..., "task": ..., "rules_text": ...}, ...]}

stored either as plain .json or as a Fernet-encrypted .enc file so students
cannot read the hidden rules. Password-encrypted files start with b"SALT"
followed by a 16-byte salt; key-file encrypted files hold the bare token.
"""

import base64
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .models import Scenario

logger = logging.getLogger(__name__)

SALT_PREFIX = b"SALT"
SALT_LENGTH = 16


def derive_key_from_password(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=480000,  # OWASP recommendation for 2024
    )
    key_material = kdf.derive(password.encode())
    return base64.urlsafe_b64encode(key_material)


def encrypt_pack(plaintext: bytes, key: Optional[bytes] = None, password: Optional[str] = None,
                 salt: Optional[bytes] = None) -> bytes:
    """
    Encrypt serialized pack bytes with a key or a password.

    Raises:
        ValueError: If neither key nor password is given
    """
    if password is not None:
        if salt is None:
            raise ValueError("Password encryption requires a salt")
        token = Fernet(derive_key_from_password(password, salt)).encrypt(plaintext)
        return SALT_PREFIX + salt + token

    if key is None:
        raise ValueError("Must specify either a key or a password")
    return Fernet(key).encrypt(plaintext)


def decrypt_pack(data: bytes, key: Optional[bytes] = None, password: Optional[str] = None) -> bytes:
    """
    Decrypt pack bytes produced by encrypt_pack.

    Raises:
        ValueError: If the matching secret is missing or decryption fails
    """
    if data.startswith(SALT_PREFIX):
        if password is None:
            raise ValueError("This pack was encrypted with a password.")
        salt = data[len(SALT_PREFIX):len(SALT_PREFIX) + SALT_LENGTH]
        encrypted = data[len(SALT_PREFIX) + SALT_LENGTH:]
        fernet_key = derive_key_from_password(password, salt)
    else:
        if key is None:
            raise ValueError("This pack was encrypted with a key file.")
        fernet_key = key.strip()
        encrypted = data

    try:
        return Fernet(fernet_key).decrypt(encrypted)
    except InvalidToken as e:
        raise ValueError("Decryption failed: invalid key/password or corrupted file") from e


def read_pack_bytes(path: Union[str, Path], key: Optional[bytes] = None,
                    password: Optional[str] = None) -> bytes:
    """Read a pack file, decrypting it when the extension is .enc."""
    path = Path(path)
    data = path.read_bytes()
    if path.suffix.lower() != ".enc":
        return data
    return decrypt_pack(data, key=key, password=password)


def parse_pack(payload: Union[bytes, str]) -> Dict[str, Scenario]:
    """
    Parse pack JSON into scenarios keyed by code.

    Raises:
        ValueError: If the JSON or any scenario is invalid
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in scenario pack: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("scenarios"), list):
        raise ValueError("Scenario pack must contain a 'scenarios' list")

    scenarios: Dict[str, Scenario] = {}
    for idx, entry in enumerate(data["scenarios"], 1):
        try:
            scenario = Scenario.from_dict(entry)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Scenario #{idx}: missing or malformed field {e}")

        is_valid, error_message = scenario.validate()
        if not is_valid:
            raise ValueError(f"Scenario '{scenario.code}': {error_message}")
        if scenario.code in scenarios:
            raise ValueError(f"Duplicate scenario code: {scenario.code}")
        scenarios[scenario.code] = scenario

    logger.debug("Loaded %d scenarios (pack version %s)", len(scenarios), data.get("version", "unknown"))
    return scenarios


def load_pack(path: Union[str, Path], key: Optional[bytes] = None,
              password: Optional[str] = None) -> Dict[str, Scenario]:
    """
    Load and validate a scenario pack.

    Args:
        path: .json or .enc pack file
        key: Fernet key for key-file encrypted packs
        password: Password for password encrypted packs

    Returns:
        Scenarios keyed by code
    """
    return parse_pack(read_pack_bytes(path, key=key, password=password))
