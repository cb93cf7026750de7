"""Starlette HTTP application assembly for the bridging proxy."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from oidc_bridge.auth.bridge_config import (
    AuditConfig,
    ConfigurationError,
    build_bridge_config,
)
from oidc_bridge.auth.oauth_proxy import create_oidc_bridge
from oidc_bridge.config import Settings, load_settings
from oidc_bridge.middleware.audit import AuditMiddleware
from oidc_bridge.utils.http import build_cors_origin_regex

logger = logging.getLogger(__name__)


def create_http_app(settings: Settings | None = None) -> Starlette:
    """Create the bridging proxy application.

    Fails fast with ``ConfigurationError`` when required third-party
    credentials are missing, so a broken deployment never starts serving.
    """
    settings = settings or load_settings()

    try:
        bridge_config = build_bridge_config(settings)
    except ConfigurationError as exc:
        logger.error("OIDC bridge is misconfigured and will not start: %s", exc)
        raise

    bridge = create_oidc_bridge(bridge_config)

    middleware: list[Middleware] = [
        Middleware(
            AuditMiddleware,
            config=AuditConfig(enabled=settings.server.audit_enabled),
            trust_forwarded_headers=settings.server.http_trust_forwarded_headers,
        ),
    ]

    # CORS MUST be outermost (list head) so OPTIONS preflight requests are
    # answered before any other middleware sees them.
    origin_regex = build_cors_origin_regex(
        tuple(settings.server.http_allowed_origins),
        settings.server.http_allow_localhost_origins,
    )
    if origin_regex:
        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origin_regex=origin_regex,
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["Authorization", "Content-Type"],
                allow_credentials=True,
            ),
        )
    else:
        logger.warning("No CORS origins configured; cross-origin requests will be refused")

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def ready_handler(request: Request) -> Response:
        return JSONResponse({"status": "ready"})

    routes = [
        Route("/", endpoint=bridge.service_info, methods=["GET"]),
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/ready", endpoint=ready_handler, methods=["GET"]),
        Route(
            "/.well-known/openid-configuration",
            endpoint=bridge.openid_configuration,
            methods=["GET"],
        ),
        Route("/.well-known/jwks.json", endpoint=bridge.jwks, methods=["GET"]),
        Route("/oauth/authorize", endpoint=bridge.authorize, methods=["GET"]),
        Route(bridge_config.callback_path, endpoint=bridge.callback, methods=["GET"]),
        Route("/oauth/token", endpoint=bridge.token, methods=["POST"]),
        Route("/oauth/userinfo", endpoint=bridge.userinfo, methods=["GET"]),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(
            "Starting OIDC bridge for provider=%s",
            bridge_config.provider.name,
        )
        try:
            yield
        finally:
            logger.info("Stopping OIDC bridge...")

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.bridge = bridge
    return app
