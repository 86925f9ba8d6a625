"""
Configuration Loader (``assetflow_config.loader``).

Responsibility
--------------
Loads lifecycle YAML files and parses them into the frozen dataclasses of
``assetflow_config.schema``.  Runtime callers go through
``assetflow_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Money/percent thresholds are parsed through ``str`` into ``Decimal``
  so YAML floats never leak into arithmetic.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  configuration for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys in a section  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from assetflow_config.schema import (
    ApprovalPolicy,
    EndOfLifePolicy,
    LifecycleConfig,
    RetirementPolicy,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(cls: type, data: dict[str, Any] | None) -> Any:
    data = data or {}
    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(
            f"Unknown keys for {cls.__name__}: {sorted(unknown)}"
        )
    defaults = cls()
    kwargs: dict[str, Any] = {}
    for name, value in data.items():
        current = getattr(defaults, name)
        if isinstance(current, Decimal):
            kwargs[name] = Decimal(str(value))
        elif isinstance(current, tuple):
            kwargs[name] = tuple(str(v) for v in value)
        else:
            kwargs[name] = value
    return cls(**kwargs)


def parse_lifecycle_config(data: dict[str, Any]) -> LifecycleConfig:
    """
    Parse a ``LifecycleConfig`` from a dict.

    Missing sections and keys fall back to the schema defaults.

    Raises:
        ValueError: if a section contains unknown keys.
    """
    return LifecycleConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        transmittal_prefix=str(data.get("transmittal_prefix", "TN")),
        transfer_prefix=str(data.get("transfer_prefix", "TR")),
        approval=_parse_section(ApprovalPolicy, data.get("approval")),
        retirement=_parse_section(RetirementPolicy, data.get("retirement")),
        end_of_life=_parse_section(EndOfLifePolicy, data.get("end_of_life")),
        checksum=compute_checksum(data),
    )


def load_lifecycle_config(path: Path) -> LifecycleConfig:
    """Load and parse one lifecycle YAML file."""
    return parse_lifecycle_config(load_yaml_file(path))
