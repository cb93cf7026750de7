"""Immutable bridge configuration assembled once at startup."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from oidc_bridge.config import Settings
from oidc_bridge.utils.http import normalize_public_base_url

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when the bridge cannot be built from the current settings."""


@dataclass(frozen=True)
class ProviderConfig:
    """Third-party OAuth2 provider configuration."""

    client_id: str
    client_secret: str
    name: str = "instagram"
    authorize_url: str = "https://api.instagram.com/oauth/authorize"
    token_url: str = "https://api.instagram.com/oauth/access_token"
    profile_url: str = "https://graph.instagram.com/v18.0/me"
    profile_fields: tuple[str, ...] = (
        "id",
        "username",
        "account_type",
        "name",
        "profile_picture_url",
    )
    profile_page_url: str = "https://instagram.com/{username}"
    scopes: tuple[str, ...] = (
        "instagram_business_basic",
        "instagram_business_content_publish",
    )
    mobile_params: tuple[tuple[str, str], ...] = (("display", "web"), ("platform", "web"))
    timeout_seconds: float = 5.0

    def scope_param(self) -> str:
        """Scopes as the provider expects them: comma separated."""
        return ",".join(self.scopes)


@dataclass(frozen=True)
class AuditConfig:
    """Audit logging configuration."""

    enabled: bool = True
    # Credentials that can reach exception text: the profile URL query and the
    # token exchange form.
    mask_fields: tuple[str, ...] = ("access_token", "client_secret", "code")


@dataclass(frozen=True)
class BridgeConfig:
    """Everything the bridge handlers need, passed explicitly."""

    provider: ProviderConfig
    app_base_url: str
    callback_path: str = "/oauth/callback"
    success_path: str = "/auth/instagram/success"
    claim_namespace: str = "https://rite.app"
    token_ttl_seconds: int = 3600
    required_account_types: tuple[str, ...] = ()
    jwks_key_id: str = "instagram-proxy-key"
    broker_client_id: str | None = None
    broker_client_secret: str | None = None
    public_base_url: str | None = None
    trust_forwarded_headers: bool = False

    @property
    def success_url(self) -> str:
        return f"{self.app_base_url}{self.success_path}"

    @property
    def requires_broker_auth(self) -> bool:
        return bool(self.broker_client_id and self.broker_client_secret)


def build_bridge_config(settings: Settings) -> BridgeConfig:
    """Validate settings and assemble the bridge configuration.

    Missing third-party credentials or app base URL are deploy-time errors:
    they raise ``ConfigurationError`` instead of producing a bridge that would
    emit malformed redirects.
    """
    provider_settings = settings.provider
    bridge_settings = settings.bridge

    missing: list[str] = []
    if not provider_settings.client_id:
        missing.append("THIRD_PARTY_CLIENT_ID")
    if not provider_settings.client_secret:
        missing.append("THIRD_PARTY_CLIENT_SECRET")
    if not bridge_settings.app_base_url:
        missing.append("APP_BASE_URL")
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    try:
        app_base_url = normalize_public_base_url(bridge_settings.app_base_url or "")
    except ValueError as exc:
        raise ConfigurationError(f"APP_BASE_URL is invalid: {exc}") from exc

    if not provider_settings.scopes:
        raise ConfigurationError("THIRD_PARTY_SCOPES must list at least one scope")
    if bool(bridge_settings.broker_client_id) != bool(bridge_settings.broker_client_secret):
        raise ConfigurationError(
            "BRIDGE_BROKER_CLIENT_ID and BRIDGE_BROKER_CLIENT_SECRET must be set together"
        )

    provider = ProviderConfig(
        client_id=provider_settings.client_id or "",
        client_secret=provider_settings.client_secret or "",
        name=provider_settings.name,
        authorize_url=provider_settings.authorize_url,
        token_url=provider_settings.token_url,
        profile_url=provider_settings.profile_url,
        profile_fields=tuple(provider_settings.profile_fields),
        profile_page_url=provider_settings.profile_page_url,
        scopes=tuple(provider_settings.scopes),
        mobile_params=tuple(provider_settings.mobile_params),
        timeout_seconds=provider_settings.timeout_seconds,
    )

    config = BridgeConfig(
        provider=provider,
        app_base_url=app_base_url,
        success_path=bridge_settings.success_path,
        claim_namespace=bridge_settings.claim_namespace.rstrip("/"),
        token_ttl_seconds=bridge_settings.token_ttl_seconds,
        required_account_types=tuple(bridge_settings.required_account_types),
        jwks_key_id=bridge_settings.jwks_key_id,
        broker_client_id=bridge_settings.broker_client_id,
        broker_client_secret=bridge_settings.broker_client_secret,
        public_base_url=settings.server.public_base_url,
        trust_forwarded_headers=settings.server.http_trust_forwarded_headers,
    )
    logger.info(
        "Bridge configured: provider=%s app_base_url=%s broker_auth=%s account_gate=%s",
        provider.name,
        config.app_base_url,
        config.requires_broker_auth,
        ",".join(config.required_account_types) or "off",
    )
    return config
