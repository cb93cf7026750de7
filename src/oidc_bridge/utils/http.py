"""Shared HTTP utilities."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from starlette.requests import Request

_PUBLIC_BASE_URL_ALLOWED_SCHEMES = frozenset({"http", "https"})
_LOCALHOST_ORIGIN_PATTERN = r"http://(?:localhost|127\.0\.0\.1)(?::\d+)?"
_WILDCARD_LABEL_PATTERN = r"[A-Za-z0-9-]+"


def first_forwarded_value(value: str | None) -> str | None:
    """Extract the first value from a comma-separated forwarded header.

    Used with X-Forwarded-For, X-Forwarded-Host, X-Forwarded-Proto, etc.
    """
    if not value:
        return None
    first = value.split(",", 1)[0].strip()
    return first or None


def normalize_public_base_url(value: str) -> str:
    """Normalize and validate an externally visible base URL."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("public_base_url must not be empty")

    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _PUBLIC_BASE_URL_ALLOWED_SCHEMES:
        raise ValueError("public_base_url must use http or https")
    if not parsed.netloc:
        raise ValueError("public_base_url must include host")
    if parsed.query or parsed.fragment:
        raise ValueError("public_base_url must not include query or fragment")
    if parsed.username or parsed.password:
        raise ValueError("public_base_url must not include userinfo")

    normalized_path = parsed.path.rstrip("/")
    if normalized_path == "/":
        normalized_path = ""
    return f"{parsed.scheme.lower()}://{parsed.netloc}{normalized_path}"


def resolve_request_origin(
    request: Request,
    *,
    trust_forwarded_headers: bool = False,
    public_base_url: str | None = None,
) -> str:
    """Resolve canonical origin for externally visible URLs."""
    if public_base_url:
        return normalize_public_base_url(public_base_url)

    forwarded_proto = None
    forwarded_host = None
    if trust_forwarded_headers:
        forwarded_proto = first_forwarded_value(request.headers.get("x-forwarded-proto"))
        forwarded_host = first_forwarded_value(request.headers.get("x-forwarded-host"))

    scheme = forwarded_proto or request.url.scheme
    host = forwarded_host or request.headers.get("host") or request.url.netloc
    return f"{scheme}://{host}"


def validate_redirect_uri(uri: str) -> str | None:
    """Validate a redirect URI. Returns error message or None if valid.

    Any absolute http or https URL without a fragment is accepted.
    """
    try:
        parsed = urlparse(uri)
    except ValueError:
        return "redirect_uri is not a valid URI"
    if not parsed.scheme or not parsed.netloc:
        return "redirect_uri must be an absolute URI"
    if parsed.scheme.lower() not in _PUBLIC_BASE_URL_ALLOWED_SCHEMES:
        return f"redirect_uri must use http or https (got {parsed.scheme})"
    if parsed.fragment:
        return "redirect_uri must not include a fragment"
    return None


def append_query_params(url: str, params: dict[str, str]) -> str:
    """Append ``params`` to ``url``, keeping any query it already carries."""
    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunparse(parsed._replace(query=urlencode(query)))


def get_client_ip(request: Request, trust_forwarded_headers: bool = False) -> str:
    """Get client IP with optional trusted proxy header support."""
    if trust_forwarded_headers:
        forwarded_for = first_forwarded_value(request.headers.get("x-forwarded-for"))
        if forwarded_for:
            return _sanitize_ip(forwarded_for)

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return _sanitize_ip(real_ip.strip())

    if request.client:
        return request.client.host

    return "unknown"


def _sanitize_ip(value: str) -> str:
    """Strip control characters from an IP string to prevent log injection."""
    return "".join(c for c in value if 0x20 <= ord(c) < 0x7F)


def build_cors_origin_regex(origins: tuple[str, ...], allow_localhost: bool) -> str | None:
    """Build a single ``allow_origin_regex`` for Starlette's CORS middleware.

    Entries may use ``*`` as a single-label wildcard, e.g.
    ``https://*.clerk.accounts.dev``.
    """
    patterns: list[str] = []
    for origin in origins:
        normalized = origin.strip().rstrip("/")
        if not normalized:
            continue
        patterns.append(re.escape(normalized).replace(r"\*", _WILDCARD_LABEL_PATTERN))
    if allow_localhost:
        patterns.append(_LOCALHOST_ORIGIN_PATTERN)
    if not patterns:
        return None
    return "|".join(f"(?:{pattern})" for pattern in patterns)
