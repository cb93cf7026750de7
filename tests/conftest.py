from __future__ import annotations

import asyncio
import contextlib
from typing import Callable

import pytest
from starlette.requests import Request

from oidc_bridge import config as config_module
from oidc_bridge.auth.bridge_config import BridgeConfig, ProviderConfig
from oidc_bridge.auth.oauth_proxy import OIDCBridgeProxy


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)

@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> None:
    config_module._load_settings_cached.cache_clear()
    yield
    config_module._load_settings_cached.cache_clear()

@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        client_id="ig-client",
        client_secret="ig-secret",
        authorize_url="https://provider.example/oauth/authorize",
        token_url="https://provider.example/oauth/access_token",
        profile_url="https://graph.provider.example/me",
    )

@pytest.fixture
def bridge_config(provider_config: ProviderConfig) -> BridgeConfig:
    return BridgeConfig(
        provider=provider_config,
        app_base_url="https://app.example.com",
    )

@pytest.fixture
def bridge(bridge_config: BridgeConfig) -> OIDCBridgeProxy:
    return OIDCBridgeProxy(bridge_config)

@pytest.fixture
def make_request() -> Callable[..., Request]:
    def _make(
        path: str,
        *,
        method: str = "GET",
        query: str = "",
        headers: dict[str, str] | None = None,
        body: str | bytes | None = None,
        scheme: str = "https",
        host: str = "proxy.example.com",
    ) -> Request:
        raw_headers = [
            (k.lower().encode("utf-8"), v.encode("utf-8")) for k, v in (headers or {}).items()
        ]
        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query.encode("utf-8"),
            "headers": raw_headers,
            "scheme": scheme,
            "server": (host, 443 if scheme == "https" else 80),
            "client": ("203.0.113.7", 50000),
        }
        if body is None:
            return Request(scope)

        body_bytes = body if isinstance(body, bytes) else body.encode("utf-8")

        async def receive() -> dict:
            return {"type": "http.request", "body": body_bytes, "more_body": False}

        return Request(scope, receive=receive)

    return _make
