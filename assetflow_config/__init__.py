"""
assetflow_config -- single public entrypoint for lifecycle configuration.

Responsibility:
    ``get_active_config()`` is the way services obtain a
    ``LifecycleConfig``.  With no argument it loads the packaged default
    set (``sets/default.yaml``); a path selects another YAML file.

Audit relevance:
    Every load emits an ``ASSET_CONFIG_TRACE`` log record carrying the
    config_id, version and checksum, tying lifecycle decisions back to the
    configuration that governed them.
"""

from __future__ import annotations

from pathlib import Path

from assetflow_config.loader import load_lifecycle_config, parse_lifecycle_config
from assetflow_config.schema import (
    ApprovalPolicy,
    EndOfLifePolicy,
    LifecycleConfig,
    RetirementPolicy,
)
from assetflow_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: Path | str | None = None) -> LifecycleConfig:
    """Load the lifecycle configuration from ``path`` or the packaged default."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_lifecycle_config(config_path)
    _logger.info(
        "ASSET_CONFIG_TRACE",
        extra={
            "trace_type": "ASSET_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(config_path),
        },
    )
    return config


__all__ = [
    "ApprovalPolicy",
    "EndOfLifePolicy",
    "LifecycleConfig",
    "RetirementPolicy",
    "get_active_config",
    "parse_lifecycle_config",
]
