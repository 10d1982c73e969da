"""Structured logging utilities."""

from .audit import AuditEvent, JsonlAuditLogger, fingerprint, sanitize_arguments, utc_timestamp

__all__ = ["AuditEvent", "JsonlAuditLogger", "fingerprint", "sanitize_arguments", "utc_timestamp"]
