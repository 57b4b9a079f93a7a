"""
Configuration loader for author-defined engine limits.

Handles loading and validating engine configuration files.
"""

import json
import logging
from pathlib import Path
from typing import Union

from .models import EngineConfig, DEFAULT_SHADOWED_BUILTINS, DEFAULT_ALLOWED_MODULES

logger = logging.getLogger(__name__)


def load_config(config_path: Union[str, Path]) -> EngineConfig:
    """
    Load engine configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        EngineConfig object with validated configuration

    Raises:
        ValueError: If config is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning("Config file '%s' not found. Using default configuration.", config_path)
        return EngineConfig.default()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ValueError(f"Error reading config file: {e}")

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a JSON object")

    config = EngineConfig.from_dict(data)

    is_valid, error_message = config.validate()
    if not is_valid:
        raise ValueError(f"Invalid configuration: {error_message}")

    return config


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file for exercise authors.

    Args:
        output_path: Path where to save the sample config
    """
    sample_config = {
        "test_timeout_ms": 2000,
        "memory_limit_mb": 256,
        "match_step_budget": 200000,
        "preview_chars": 80,
        "shadowed_builtins": DEFAULT_SHADOWED_BUILTINS,
        "allowed_modules": DEFAULT_ALLOWED_MODULES,
        "_comment": "This is a sample engine configuration. Adjust values as needed.",
        "_instructions": {
            "test_timeout_ms": "Wall-clock time allowed for each #test expression",
            "memory_limit_mb": "Address-space limit for the test process (Unix only)",
            "match_step_budget": "Characters the scanner may examine when matching a submission to the skeleton",
            "preview_chars": "Maximum length of the preview shown for each editable block",
            "shadowed_builtins": "Builtins removed from the namespace the student's code runs in",
            "allowed_modules": "Top-level modules the student's code may import"
        }
    }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(sample_config, f, indent=2)

    logger.info("Sample configuration created at: %s", output_path)
