"""Projection of third-party profiles onto OIDC claim names."""

from __future__ import annotations

from typing import Any

from oidc_bridge.auth.provider import ThirdPartyProfile

# Standard claims advertised in the discovery document.
SUPPORTED_CLAIMS: tuple[str, ...] = ("sub", "name", "preferred_username", "picture")


def namespaced_claim(namespace: str, name: str) -> str:
    return f"{namespace.rstrip('/')}/{name}"


def project_claims(
    profile: ThirdPartyProfile,
    *,
    claim_namespace: str,
    provider_name: str,
    profile_page_url: str,
) -> dict[str, Any]:
    """Build the userinfo document for ``profile``.

    The provider has no verified email, so no email claims are emitted.
    Provider-specific fields without an OIDC equivalent go under
    ``claim_namespace``.
    """
    picture = profile.profile_picture_url or profile_page_url.format(username=profile.username)
    return {
        "sub": profile.id,
        "name": profile.display_name or profile.username,
        "preferred_username": profile.username,
        "picture": picture,
        namespaced_claim(claim_namespace, f"{provider_name}_username"): profile.username,
        namespaced_claim(claim_namespace, f"{provider_name}_id"): profile.id,
        namespaced_claim(claim_namespace, "account_type"): profile.account_type,
    }
