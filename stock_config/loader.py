"""
Settings Loader (``stock_config.loader``).

Responsibility
--------------
Reads YAML settings files and parses them into the frozen
``stock_config.schema`` dataclasses, validating every value on the way.
Runtime callers use ``stock_config.get_active_settings()``; the functions
here are the building blocks it is assembled from.

Invariants enforced
-------------------
* Unknown sections and unknown keys are rejected, never ignored.
* Numeric settings are range-checked; Decimal settings are parsed from
  their string form so no float rounding enters the formulas.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad or unknown value  -> ``ValueError`` naming the offending key.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    AlertSettings,
    BatchSettings,
    DemandSettings,
    EngineSettings,
    InventorySettings,
    LedgerSettings,
    OptimizationSettings,
)

_SECTIONS: dict[str, type] = {
    "ledger": LedgerSettings,
    "inventory": InventorySettings,
    "demand": DemandSettings,
    "optimization": OptimizationSettings,
    "alerts": AlertSettings,
    "batch": BatchSettings,
}

# Minimum accepted value per integer setting.
_INT_MINIMUMS: dict[str, int] = {
    "obsolete_after_days": 0,
    "listener_window_days": 1,
    "bulk_window_days": 1,
    "demand_window_days": 1,
    "expiry_warning_days": 0,
    "retention_days": 0,
    "worker_pool_size": 1,
    "tick_interval_seconds": 1,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings document must be a mapping")
    return data


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace those in ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _parse_value(section: str, key: str, default: Any, value: Any) -> Any:
    name = f"{section}.{key}"
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false, got {value!r}")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        minimum = _INT_MINIMUMS.get(key, 0)
        if value < minimum:
            raise ValueError(f"{name} must be >= {minimum}, got {value}")
        return value
    if isinstance(default, Decimal):
        if isinstance(value, bool):
            raise ValueError(f"{name} must be a number, got {value!r}")
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{name} must be a number, got {value!r}") from None
        if parsed < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
        return parsed
    return value


def parse_section(section: str, data: Any) -> Any:
    cls = _SECTIONS[section]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"section {section!r} must be a mapping")

    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown key(s) in {section!r}: {', '.join(unknown)}")

    return cls(**{
        key: _parse_value(section, key, getattr(defaults, key), value)
        for key, value in data.items()
    })


def settings_from_dict(data: dict[str, Any]) -> EngineSettings:
    """
    Build validated ``EngineSettings`` from a parsed document.

    Raises:
        ValueError: unknown section or key, or an out-of-range value.
    """
    unknown = sorted(set(data) - set(_SECTIONS) - {"database_url"})
    if unknown:
        raise ValueError(f"unknown settings section(s): {', '.join(unknown)}")

    database_url = data.get("database_url", EngineSettings.database_url)
    if not isinstance(database_url, str) or not database_url:
        raise ValueError("database_url must be a non-empty string")

    return EngineSettings(
        database_url=database_url,
        **{section: parse_section(section, data.get(section)) for section in _SECTIONS},
    )


def load_settings(path: Path | str) -> EngineSettings:
    """Load and validate a complete settings file."""
    return settings_from_dict(load_yaml_file(Path(path)))
