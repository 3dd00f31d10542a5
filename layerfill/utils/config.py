"""
Configuration validation and utilities for Layerfill.

This module provides:
- CONFIG_SCHEMA: Schema definition for all editor configuration options
- validate_config(): Validate a configuration dictionary
- load_config_with_validation(): Load and validate a YAML config file
- print_config_summary(): Print a formatted configuration summary
- get_default_config(): Get default configuration values
- LayerfillSettings: Typed settings object built from a validated config
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from layerfill.utils.io import read_json_locked, write_json_locked

logger = logging.getLogger(__name__)

# Field type definitions with validation rules
CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    # ==========================================================================
    # History
    # ==========================================================================
    "history_max_size": {"type": "int", "min": 2, "max": 1000, "default": 50},
    "history_debounce_ms": {"type": "int", "min": 0, "max": 5000, "default": 100},
    "history_settle_ms": {"type": "int", "min": 0, "max": 5000, "default": 50},
    # ==========================================================================
    # Masks
    # ==========================================================================
    "result_mask_blur": {"type": "float", "min": 0.0, "max": 64.0, "default": 2.0},
    "default_feather_radius": {
        "type": "float",
        "min": 0.0,
        "max": 512.0,
        "default": 0.0,
    },
    # ==========================================================================
    # Generation
    # ==========================================================================
    "model": {
        "type": "str",
        "choices": ["nano-banana-pro", "nano-banana"],
        "default": "nano-banana-pro",
    },
    "image_size": {"type": "str", "choices": ["1K", "2K", "4K"], "default": "1K"},
    "use_full_image_context": {"type": "bool", "default": False},
    "aspect_ratio_tolerance": {
        "type": "float",
        "min": 0.0,
        "max": 1.0,
        "default": 0.01,
    },
    # ==========================================================================
    # Export
    # ==========================================================================
    "export_format": {
        "type": "str",
        "choices": ["png", "jpeg", "webp"],
        "default": "png",
    },
    "export_quality": {"type": "int", "min": 0, "max": 100, "default": 92},
    # ==========================================================================
    # Performance
    # ==========================================================================
    "decode_cache_size": {"type": "int", "min": 0, "max": 4096, "default": 64},
}


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate configuration dictionary against schema.

    Args:
        config: Configuration dictionary to validate.

    Returns:
        List of error messages (empty if valid).

    Example:
        >>> errors = validate_config({"history_max_size": 1})
        >>> print(errors)
        ['history_max_size: value 1 below minimum 2']
    """
    errors: list[str] = []

    for key, value in config.items():
        if key not in CONFIG_SCHEMA:
            continue  # Allow unknown fields (forward compatibility)

        schema = CONFIG_SCHEMA[key]

        if value is None:
            if schema.get("nullable", False):
                continue
            errors.append(f"{key}: value must not be null")
            continue

        if schema["type"] == "int":
            if not isinstance(value, int) or isinstance(value, bool):
                errors.append(f"{key}: expected int, got {type(value).__name__}")
                continue
            if "min" in schema and value < schema["min"]:
                errors.append(f"{key}: value {value} below minimum {schema['min']}")
            if "max" in schema and value > schema["max"]:
                errors.append(f"{key}: value {value} above maximum {schema['max']}")

        elif schema["type"] == "float":
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                errors.append(f"{key}: expected float, got {type(value).__name__}")
                continue
            if "min" in schema and value < schema["min"]:
                errors.append(f"{key}: value {value} below minimum {schema['min']}")
            if "max" in schema and value > schema["max"]:
                errors.append(f"{key}: value {value} above maximum {schema['max']}")

        elif schema["type"] == "str":
            if not isinstance(value, str):
                errors.append(f"{key}: expected str, got {type(value).__name__}")
                continue
            if "choices" in schema and value not in schema["choices"]:
                errors.append(f"{key}: value '{value}' not in {schema['choices']}")

        elif schema["type"] == "bool":
            if not isinstance(value, bool):
                errors.append(f"{key}: expected bool, got {type(value).__name__}")

    return errors


def load_config_with_validation(config_path: Path | str) -> tuple[dict, list[str]]:
    """
    Load and validate YAML config file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Tuple of (config_dict, error_list).
        If errors is non-empty, the config may be invalid.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        return {}, [f"Config file not found: {config_path}"]

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        return {}, [f"Error parsing YAML: {e}"]

    if config is None:
        config = {}

    if not isinstance(config, dict):
        return {}, ["Config root must be a mapping"]

    errors = validate_config(config)
    return config, errors


def get_default_config() -> dict[str, Any]:
    """
    Get default configuration values.

    Returns:
        Dictionary with all default values from CONFIG_SCHEMA.
    """
    return {
        key: schema.get("default")
        for key, schema in CONFIG_SCHEMA.items()
        if "default" in schema
    }


def print_config_summary(config: dict[str, Any]) -> None:
    """
    Print configuration summary to console.

    Args:
        config: Configuration dictionary to print.
    """
    print("\n" + "=" * 60)
    print(" Configuration Summary")
    print("=" * 60)

    categories = {
        "History": ["history_max_size", "history_debounce_ms", "history_settle_ms"],
        "Masks": ["result_mask_blur", "default_feather_radius"],
        "Generation": [
            "model",
            "image_size",
            "use_full_image_context",
            "aspect_ratio_tolerance",
        ],
        "Export": ["export_format", "export_quality"],
        "Performance": ["decode_cache_size"],
    }

    for category, fields in categories.items():
        values = [(f, config.get(f)) for f in fields if f in config]
        if values:
            print(f"\n{category}:")
            for field_name, value in values:
                print(f"  {field_name}: {value}")

    print("\n" + "=" * 60 + "\n")


@dataclass
class LayerfillSettings:
    """Typed editor settings. Field names match CONFIG_SCHEMA keys."""

    history_max_size: int = 50
    history_debounce_ms: int = 100
    history_settle_ms: int = 50
    result_mask_blur: float = 2.0
    default_feather_radius: float = 0.0
    model: str = "nano-banana-pro"
    image_size: str = "1K"
    use_full_image_context: bool = False
    aspect_ratio_tolerance: float = 0.01
    export_format: str = "png"
    export_quality: int = 92
    decode_cache_size: int = 64

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LayerfillSettings:
        """
        Build settings from a config dictionary.

        Raises:
            ValueError: If the dictionary fails schema validation.
        """
        errors = validate_config(data)
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_yaml(cls, path: Path | str) -> LayerfillSettings:
        """Load settings from a YAML config file, raising on errors."""
        config, errors = load_config_with_validation(path)
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))
        return cls.from_dict(config)

    def save(self, path: Path | str) -> None:
        """
        Save settings to a JSON file.

        Raises:
            OSError: If the file could not be written.
        """
        if not write_json_locked(path, self.to_dict()):
            raise OSError(f"Failed to save settings to {path}")

    @classmethod
    def load(cls, path: Path | str) -> LayerfillSettings:
        """Load settings from a JSON file, returning defaults if it is unreadable."""
        data = read_json_locked(path)
        if data is None:
            return cls()
        logger.debug(f"Loaded settings from {path}")
        return cls.from_dict(data)
