"""Kernel services (flush-only; callers own transaction boundaries)."""

from assetflow_kernel.services.auditor_service import (
    AuditLogEntry,
    AuditorService,
    AuditTrace,
)
from assetflow_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AuditLogEntry",
    "AuditorService",
    "AuditTrace",
    "SequenceCounter",
    "SequenceService",
]
