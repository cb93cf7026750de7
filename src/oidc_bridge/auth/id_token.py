"""Unsigned ID token synthesis.

The third party issues no ``id_token``, so the token endpoint builds one in
the ``header.payload.signature`` shape with an EMPTY signature segment. The
proxy holds no private key.

Trust boundary: this token is only acceptable on the server-to-server token
endpoint response, where the broker has authenticated with its client secret
over TLS and re-issues its own session afterwards. It must never be placed in
a redirect URL, handed to a browser, or offered to any party that would try
to verify it against the JWKS document.
"""

from __future__ import annotations

import base64
import json
import time
from typing import Any

from oidc_bridge.auth.claims import namespaced_claim
from oidc_bridge.auth.provider import ThirdPartyProfile

UNSIGNED_HEADER: dict[str, str] = {"alg": "none", "typ": "JWT"}


def _b64url_json(data: dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def build_id_token_claims(
    *,
    issuer: str,
    audience: str,
    profile: ThirdPartyProfile,
    claim_namespace: str,
    provider_name: str,
    ttl_seconds: int,
    now: int | None = None,
) -> dict[str, Any]:
    issued_at = int(time.time()) if now is None else now
    return {
        "iss": issuer,
        "sub": profile.id,
        "aud": audience,
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
        namespaced_claim(claim_namespace, f"{provider_name}_username"): profile.username,
        namespaced_claim(claim_namespace, "account_type"): profile.account_type,
    }


def build_unsigned_id_token(claims: dict[str, Any]) -> str:
    """Serialize ``claims`` as ``header.payload.`` with no signature."""
    return f"{_b64url_json(UNSIGNED_HEADER)}.{_b64url_json(claims)}."
