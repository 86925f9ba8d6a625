"""
Pure domain layer.

Immutable value objects with NO dependencies on the ORM, the database,
or I/O (SystemClock aside).
"""

from assetflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from assetflow_kernel.domain.permissions import PermissionSet, Principal
from assetflow_kernel.domain.workflow import Guard, GuardKind, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "PermissionSet",
    "Principal",
    "Guard",
    "GuardKind",
    "Transition",
    "Workflow",
]
