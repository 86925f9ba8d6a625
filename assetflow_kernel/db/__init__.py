"""Database layer - engine, base classes, types."""

from assetflow_kernel.db.base import Base, TrackedBase, UUIDString
from assetflow_kernel.db.engine import build_engine, create_tables
from assetflow_kernel.db.types import round_money

__all__ = [
    "build_engine",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "round_money",
]
