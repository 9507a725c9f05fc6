"""
stock_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_active_settings()`` is the only way runtime code obtains
    settings.  It reads the packaged ``defaults.yaml``, merges an optional
    override file on top, validates the result and returns a frozen
    ``EngineSettings``.

Override resolution:
    1. The ``path`` argument, when given.
    2. Otherwise the file named by ``STOCK_ENGINE_CONFIG``, when set.
    3. Otherwise the packaged defaults alone.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- unknown key or out-of-range value.
"""

from __future__ import annotations

import os
from pathlib import Path

from stock_config.loader import (
    load_settings,
    load_yaml_file,
    merge_settings,
    settings_from_dict,
)
from stock_config.schema import (
    AlertSettings,
    BatchSettings,
    DemandSettings,
    EngineSettings,
    InventorySettings,
    LedgerSettings,
    OptimizationSettings,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "STOCK_ENGINE_CONFIG"
DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(path: Path | str | None = None) -> EngineSettings:
    """Packaged defaults merged with the override file, validated."""
    data = load_yaml_file(DEFAULTS_PATH)

    override = path or os.environ.get(CONFIG_ENV_VAR)
    if override:
        data = merge_settings(data, load_yaml_file(Path(override)))

    settings = settings_from_dict(data)
    logger.info(
        "settings_loaded",
        extra={
            "override_path": str(override) if override else None,
            "allow_negative_balance": settings.ledger.allow_negative_balance,
            "worker_pool_size": settings.batch.worker_pool_size,
        },
    )
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "AlertSettings",
    "BatchSettings",
    "DemandSettings",
    "EngineSettings",
    "InventorySettings",
    "LedgerSettings",
    "OptimizationSettings",
    "get_active_settings",
    "load_settings",
    "merge_settings",
    "settings_from_dict",
]
