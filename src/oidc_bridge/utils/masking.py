"""Shared sensitive-value masking utilities.

``redact_sensitive_fields`` replaces values whose keys match known sensitive
markers; ``mask_secret`` shortens a single credential (authorization code,
access token) to a prefix that is safe to log.
"""

from __future__ import annotations

_MAX_REDACT_DEPTH = 20
_SECRET_PREFIX_LENGTH = 4

# Canonical list of sensitive key markers (substring match, case-insensitive).
SENSITIVE_KEY_MARKERS: list[str] = [
    "password",
    "secret",
    "token",
    "code",
    "clientsecret",
    "client_secret",
    "apikey",
    "credential",
    "authorization",
]


def redact_sensitive_fields(
    value: object,
    *,
    mask: str = "***",
    depth: int = 0,
    max_depth: int = _MAX_REDACT_DEPTH,
) -> object:
    """Recursively replace sensitive values in dicts/lists.

    Keys are matched by *substring* against ``SENSITIVE_KEY_MARKERS``
    (case-insensitive).  When ``max_depth`` is exceeded the entire
    sub-tree is replaced with *mask*.
    """
    if depth >= max_depth:
        return mask
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, val in value.items():
            if any(marker in str(key).lower() for marker in SENSITIVE_KEY_MARKERS):
                redacted[key] = mask
            else:
                redacted[key] = redact_sensitive_fields(
                    val, mask=mask, depth=depth + 1, max_depth=max_depth,
                )
        return redacted
    if isinstance(value, list):
        return [
            redact_sensitive_fields(
                item, mask=mask, depth=depth + 1, max_depth=max_depth,
            )
            for item in value
        ]
    return value


def mask_secret(value: str | None, *, mask: str = "***") -> str:
    """Return a log-safe rendering of a credential."""
    if not value:
        return "<empty>"
    if len(value) <= _SECRET_PREFIX_LENGTH * 2:
        return mask
    return f"{value[:_SECRET_PREFIX_LENGTH]}{mask}"
