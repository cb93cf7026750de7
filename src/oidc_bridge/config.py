"""Configuration management for the OIDC bridging proxy."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from oidc_bridge.utils.http import normalize_public_base_url

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    public_base_url: str | None = Field(
        default=None,
        description=(
            "Externally visible base URL used for discovery metadata and the "
            "third-party callback (e.g. https://auth.example.com)."
        ),
    )
    http_trust_forwarded_headers: bool = Field(default=False)
    http_allowed_origins: tuple[str, ...] = Field(
        default=("https://clerk.com", "https://*.clerk.accounts.dev"),
    )
    http_allow_localhost_origins: bool = Field(
        default=True,
        description="Also allow http://localhost:* origins for local development.",
    )
    audit_enabled: bool = Field(default=True)

    @field_validator("public_base_url")
    @classmethod
    def _validate_public_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_public_base_url(value)


class ProviderSettings(BaseModel):
    """Third-party OAuth2 provider endpoints and client credentials."""

    name: str = Field(default="instagram")
    client_id: str | None = Field(default=None)
    client_secret: str | None = Field(default=None)
    authorize_url: str = Field(default="https://api.instagram.com/oauth/authorize")
    token_url: str = Field(default="https://api.instagram.com/oauth/access_token")
    profile_url: str = Field(default="https://graph.instagram.com/v18.0/me")
    profile_fields: tuple[str, ...] = Field(
        default=("id", "username", "account_type", "name", "profile_picture_url"),
    )
    profile_page_url: str = Field(default="https://instagram.com/{username}")
    scopes: tuple[str, ...] = Field(
        default=("instagram_business_basic", "instagram_business_content_publish"),
    )
    mobile_params: tuple[tuple[str, str], ...] = Field(
        default=(("display", "web"), ("platform", "web")),
    )
    timeout_seconds: float = Field(default=5.0, ge=0.1, le=60.0)


class BridgeSettings(BaseModel):
    app_base_url: str | None = Field(
        default=None,
        description="Downstream application base URL used by the direct callback path.",
    )
    success_path: str = Field(default="/auth/instagram/success")
    claim_namespace: str = Field(default="https://rite.app")
    token_ttl_seconds: int = Field(default=3600, ge=60, le=86400)
    required_account_types: tuple[str, ...] = Field(default=())
    jwks_key_id: str = Field(default="instagram-proxy-key")
    broker_client_id: str | None = Field(default=None)
    broker_client_secret: str | None = Field(default=None)

    @field_validator("success_path")
    @classmethod
    def _validate_success_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("success_path must start with '/'")
        return value


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    bridge: BridgeSettings = Field(default_factory=BridgeSettings)


ENV_KEYS = {
    "host": "BRIDGE_HOST",
    "port": "BRIDGE_PORT",
    "public_base_url": "BRIDGE_PUBLIC_BASE_URL",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "client_id": "THIRD_PARTY_CLIENT_ID",
    "client_secret": "THIRD_PARTY_CLIENT_SECRET",
    "app_base_url": "APP_BASE_URL",
}

# Variable names used by earlier deployments of the proxy.
LEGACY_ENV_KEYS = {
    "client_id": "INSTAGRAM_CLIENT_ID",
    "client_secret": "INSTAGRAM_CLIENT_SECRET",
    "app_base_url": "RITE_APP_URL",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _split_key_value_pairs(value: str | None) -> list[tuple[str, str]]:
    """Parse ``a=1,b=2`` into ``[("a", "1"), ("b", "2")]``."""
    pairs: list[tuple[str, str]] = []
    for item in _split_csv_preserve_case(value):
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            _config_logger.warning("Ignoring malformed key=value entry: %r", item)
            continue
        pairs.append((key.strip(), raw.strip()))
    return pairs


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_str(name: str) -> str | None:
    """Read a setting by its ENV_KEYS name, falling back to the legacy variable."""
    for key in (ENV_KEYS[name], LEGACY_ENV_KEYS.get(name)):
        if key is None:
            continue
        value = os.getenv(key)
        if value is not None and value.strip():
            return value.strip()
    return None


def _env_tuple(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(key)
    if value is None:
        return default
    return tuple(_split_csv_preserve_case(value))


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    mobile_params_env = os.getenv("THIRD_PARTY_MOBILE_PARAMS")

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "public_base_url": (
                os.getenv(ENV_KEYS["public_base_url"], "").strip() or None
            ),
            "http_trust_forwarded_headers": _env_bool(
                "HTTP_TRUST_FORWARDED_HEADERS",
                ServerSettings().http_trust_forwarded_headers,
            ),
            "http_allowed_origins": _env_tuple(
                "HTTP_ALLOWED_ORIGINS",
                ServerSettings().http_allowed_origins,
            ),
            "http_allow_localhost_origins": _env_bool(
                "HTTP_ALLOW_LOCALHOST_ORIGINS",
                ServerSettings().http_allow_localhost_origins,
            ),
            "audit_enabled": _env_bool("BRIDGE_AUDIT_ENABLED", ServerSettings().audit_enabled),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "provider": {
            "name": os.getenv("THIRD_PARTY_NAME", ProviderSettings().name),
            "client_id": _env_str("client_id"),
            "client_secret": _env_str("client_secret"),
            "authorize_url": os.getenv(
                "THIRD_PARTY_AUTHORIZE_URL", ProviderSettings().authorize_url
            ),
            "token_url": os.getenv("THIRD_PARTY_TOKEN_URL", ProviderSettings().token_url),
            "profile_url": os.getenv(
                "THIRD_PARTY_PROFILE_URL", ProviderSettings().profile_url
            ),
            "profile_fields": _env_tuple(
                "THIRD_PARTY_PROFILE_FIELDS", ProviderSettings().profile_fields
            ),
            "scopes": _env_tuple("THIRD_PARTY_SCOPES", ProviderSettings().scopes),
            "mobile_params": (
                tuple(_split_key_value_pairs(mobile_params_env))
                if mobile_params_env is not None
                else ProviderSettings().mobile_params
            ),
            "timeout_seconds": _env_float(
                "PROVIDER_TIMEOUT_SECONDS", ProviderSettings().timeout_seconds
            ),
        },
        "bridge": {
            "app_base_url": _env_str("app_base_url"),
            "success_path": os.getenv("BRIDGE_SUCCESS_PATH", BridgeSettings().success_path),
            "claim_namespace": os.getenv(
                "BRIDGE_CLAIM_NAMESPACE", BridgeSettings().claim_namespace
            ),
            "token_ttl_seconds": _env_int(
                "BRIDGE_TOKEN_TTL_SECONDS", BridgeSettings().token_ttl_seconds
            ),
            "required_account_types": tuple(
                item.upper()
                for item in _split_csv_preserve_case(os.getenv("BRIDGE_REQUIRED_ACCOUNT_TYPES"))
            ),
            "jwks_key_id": os.getenv("BRIDGE_JWKS_KEY_ID", BridgeSettings().jwks_key_id),
            "broker_client_id": os.getenv("BRIDGE_BROKER_CLIENT_ID", "").strip() or None,
            "broker_client_secret": (
                os.getenv("BRIDGE_BROKER_CLIENT_SECRET", "").strip() or None
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    return settings
