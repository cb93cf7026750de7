"""Audit logging middleware with sensitive value masking."""

from __future__ import annotations

import logging
import re
import time
import uuid
from functools import lru_cache
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..auth.bridge_config import AuditConfig
from ..utils.http import get_client_ip

logger = logging.getLogger(__name__)

# Control character pattern for log injection prevention.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


def _sanitize_log_value(value: str) -> str:
    """Replace control characters (newlines, tabs, etc.) to prevent log injection."""
    return _CONTROL_CHAR_RE.sub("_", value)


@lru_cache(maxsize=128)
def _get_mask_pattern(field: str) -> re.Pattern:
    """Get or create regex pattern for field masking."""
    return re.compile(
        rf'(["\']?\b{re.escape(field)}["\']?\s*[:=]\s*)["\']?[^"\'&\s]*["\']?',
        re.IGNORECASE,
    )


def mask_exception_message(message: str, mask_fields: frozenset[str]) -> str:
    """Mask ``field=value`` and ``field: value`` pairs in a message."""
    masked = message
    for field in mask_fields:
        pattern = _get_mask_pattern(field)
        masked = pattern.sub(r"\1***MASKED***", masked)
    return masked


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Audit logging middleware.

    Logs method, path, client IP, status and duration for every request.
    Query strings are never logged: on this service they carry
    authorization codes and tokens.
    """

    # Paths exempt from audit logging
    EXEMPT_PATHS = frozenset({"/health", "/ready"})

    def __init__(
        self,
        app: Callable,
        config: AuditConfig,
        trust_forwarded_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self.config = config
        self._mask_fields = frozenset(f.lower() for f in config.mask_fields)
        self._trust_forwarded_headers = trust_forwarded_headers

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with audit logging."""
        if not self.config.enabled:
            return await call_next(request)

        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        request_id = _sanitize_log_value(request.headers.get("x-request-id", str(uuid.uuid4())))
        start_time = time.time()

        client_ip = get_client_ip(
            request,
            trust_forwarded_headers=self._trust_forwarded_headers,
        )

        # Sanitize user-controlled values to prevent log injection.
        safe_path = _sanitize_log_value(request.url.path)
        safe_ip = _sanitize_log_value(client_ip)

        logger.info(
            "REQUEST_START request_id=%s method=%s path=%s client_ip=%s",
            request_id,
            request.method,
            safe_path,
            safe_ip,
        )

        error_message: str | None = None
        status_code: int = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        except Exception as e:
            error_message = mask_exception_message(str(e), self._mask_fields)
            raise

        finally:
            duration_ms = int((time.time() - start_time) * 1000)

            if error_message:
                logger.error(
                    "REQUEST_END request_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d error=%s",
                    request_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    error_message,
                )
            else:
                logger.info(
                    "REQUEST_END request_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d",
                    request_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
