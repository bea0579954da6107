"""Monitoring exports."""

from trade_journal.monitoring.audit import AuditLog

__all__ = ["AuditLog"]
