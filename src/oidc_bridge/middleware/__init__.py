"""HTTP middleware for the bridging proxy."""

from .audit import AuditMiddleware

__all__ = ["AuditMiddleware"]
