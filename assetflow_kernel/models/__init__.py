"""Kernel ORM models."""

from assetflow_kernel.models.audit_log import AuditAction, AuditLogModel

__all__ = ["AuditAction", "AuditLogModel"]
