"""OIDC facade over a third party that only speaks proprietary OAuth2.

The broker talks to this proxy as if it were an OpenID Connect provider:
discovery, authorize, token, userinfo and JWKS. Requests are handled
independently; the only continuation state is the encoded envelope carried in
the third party's ``state`` parameter.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import parse_qs, urlencode

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from oidc_bridge import __version__
from oidc_bridge.auth.bridge_config import BridgeConfig
from oidc_bridge.auth.claims import SUPPORTED_CLAIMS, project_claims
from oidc_bridge.auth.id_token import build_id_token_claims, build_unsigned_id_token
from oidc_bridge.auth.provider import ThirdPartyClient, UpstreamError
from oidc_bridge.auth.state import (
    DirectRoute,
    ForwardRoute,
    StateEnvelope,
    decode_state,
    encode_state,
)
from oidc_bridge.utils.http import (
    append_query_params,
    normalize_public_base_url,
    resolve_request_origin,
    validate_redirect_uri,
)
from oidc_bridge.utils.masking import mask_secret, redact_sensitive_fields
from oidc_bridge.utils.user_agent import is_mobile_user_agent

_logger = logging.getLogger(__name__)

_MAX_REDIRECT_URI_LENGTH: int = 2048
_MAX_STATE_LENGTH: int = 1024
_MAX_ERROR_LENGTH: int = 64
_MAX_ERROR_DESCRIPTION_LENGTH: int = 256

_AUTHORIZE_PATH = "/oauth/authorize"
_TOKEN_PATH = "/oauth/token"
_USERINFO_PATH = "/oauth/userinfo"
_JWKS_PATH = "/.well-known/jwks.json"

_ID_TOKEN_SCOPE = "openid profile"
_NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}
_INVALID_TOKEN_CHALLENGE = {"WWW-Authenticate": 'Bearer error="invalid_token"'}


class OIDCBridgeProxy:
    """OIDC-shaped endpoints backed by a non-compliant OAuth2 provider."""

    def __init__(self, config: BridgeConfig, client: ThirdPartyClient | None = None) -> None:
        self.config = config
        self.provider = config.provider
        self.client = client or ThirdPartyClient(config.provider)
        self._public_base_url = (
            normalize_public_base_url(config.public_base_url) if config.public_base_url else None
        )

    def _origin(self, request: Request) -> str:
        return resolve_request_origin(
            request,
            trust_forwarded_headers=self.config.trust_forwarded_headers,
            public_base_url=self._public_base_url,
        )

    def _callback_url(self, request: Request) -> str:
        return f"{self._origin(request)}{self.config.callback_path}"

    @staticmethod
    def _oauth_error(
        error: str,
        description: str,
        status_code: int = 400,
        headers: dict[str, str] | None = None,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={
                "error": error,
                "error_description": description,
            },
            headers=headers,
        )

    async def service_info(self, request: Request) -> Response:
        """Root health document."""
        return JSONResponse(
            {
                "service": "OIDC bridging proxy",
                "status": "healthy",
                "version": __version__,
                "provider": self.provider.name,
            }
        )

    async def openid_configuration(self, request: Request) -> Response:
        """OpenID Connect discovery document for this proxy."""
        origin = self._origin(request)
        metadata = {
            "issuer": origin,
            "authorization_endpoint": f"{origin}{_AUTHORIZE_PATH}",
            "token_endpoint": f"{origin}{_TOKEN_PATH}",
            "userinfo_endpoint": f"{origin}{_USERINFO_PATH}",
            "jwks_uri": f"{origin}{_JWKS_PATH}",
            "response_types_supported": ["code"],
            "subject_types_supported": ["public"],
            "id_token_signing_alg_values_supported": ["RS256"],
            "scopes_supported": ["openid", "profile"],
            "claims_supported": list(SUPPORTED_CLAIMS),
            "grant_types_supported": ["authorization_code"],
            "token_endpoint_auth_methods_supported": ["client_secret_post"],
        }
        return JSONResponse(metadata, headers={"Cache-Control": "max-age=3600"})

    async def jwks(self, request: Request) -> Response:
        """Placeholder key set.

        ID tokens issued here are unsigned; this document only exists so that
        OIDC clients which always fetch ``jwks_uri`` do not fail.
        """
        return JSONResponse(
            {
                "keys": [
                    {
                        "kty": "RSA",
                        "use": "sig",
                        "kid": self.config.jwks_key_id,
                        "alg": "RS256",
                        "n": "placeholder",
                        "e": "AQAB",
                    }
                ]
            }
        )

    async def authorize(self, request: Request) -> Response:
        """Broker-facing /oauth/authorize endpoint."""
        qp = request.query_params
        state = qp.get("state") or ""
        redirect_uri = (qp.get("redirect_uri") or "").strip()

        if len(state) > _MAX_STATE_LENGTH:
            return self._oauth_error("invalid_request", "state is too long")
        if len(redirect_uri) > _MAX_REDIRECT_URI_LENGTH:
            return self._oauth_error("invalid_request", "redirect_uri is too long")
        if redirect_uri:
            redirect_error = validate_redirect_uri(redirect_uri)
            if redirect_error:
                return self._oauth_error("invalid_request", redirect_error)

        is_mobile = is_mobile_user_agent(request.headers.get("user-agent"))
        envelope = StateEnvelope(
            original_state=state,
            broker_redirect_uri=redirect_uri,
            is_mobile=is_mobile,
        )

        params = {
            "client_id": self.provider.client_id,
            "redirect_uri": self._callback_url(request),
            "scope": self.provider.scope_param(),
            "response_type": "code",
            "state": encode_state(envelope),
        }
        if is_mobile:
            # Keep the flow in the browser instead of deep-linking into the
            # provider's native app, which never returns to the broker.
            params.update(dict(self.provider.mobile_params))

        _logger.info(
            "stage=authorize mobile=%s has_state=%s has_redirect_uri=%s",
            is_mobile,
            bool(state),
            bool(redirect_uri),
        )
        url = f"{self.provider.authorize_url}?{urlencode(params)}"
        return RedirectResponse(url=url, status_code=302)

    async def callback(self, request: Request) -> Response:
        """Third-party callback endpoint."""
        qp = request.query_params

        if qp.get("error"):
            # State is not decoded here: error redirects may omit or mangle it.
            raw_error = (qp.get("error") or "")[:_MAX_ERROR_LENGTH]
            raw_desc = (qp.get("error_description") or "")[:_MAX_ERROR_DESCRIPTION_LENGTH]
            safe_error = "".join(c for c in raw_error if c.isalnum() or c in "_-") or "access_denied"
            safe_desc = "".join(c for c in raw_desc if 0x20 <= ord(c) < 0x7F)
            _logger.info("stage=callback upstream_error=%s", safe_error)
            return self._oauth_error(safe_error, safe_desc)

        code = (qp.get("code") or "").strip()
        if not code:
            return self._oauth_error("invalid_request", "Authorization code not provided")

        envelope = decode_state(qp.get("state") or "")
        route = envelope.route()

        if isinstance(route, ForwardRoute):
            return self._forward_to_broker(route, envelope, code)
        if isinstance(route, DirectRoute):
            return await self._complete_direct(request, envelope, code)
        raise TypeError(f"Unhandled callback route: {route!r}")

    def _forward_to_broker(
        self, route: ForwardRoute, envelope: StateEnvelope, code: str
    ) -> Response:
        # The envelope is not integrity protected; re-check the target.
        redirect_error = validate_redirect_uri(route.redirect_uri)
        if redirect_error:
            _logger.warning("stage=callback route=forward rejected: %s", redirect_error)
            return self._oauth_error("invalid_request", redirect_error)

        _logger.info(
            "stage=callback route=forward mobile=%s code=%s",
            envelope.is_mobile,
            mask_secret(code),
        )
        url = append_query_params(
            route.redirect_uri,
            {"code": code, "state": envelope.original_state},
        )
        return RedirectResponse(url=url, status_code=302)

    async def _complete_direct(
        self, request: Request, envelope: StateEnvelope, code: str
    ) -> Response:
        _logger.info(
            "stage=callback route=direct mobile=%s code=%s",
            envelope.is_mobile,
            mask_secret(code),
        )
        try:
            token = await self.client.exchange_code(code, self._callback_url(request))
        except UpstreamError as exc:
            _logger.warning(
                "stage=callback route=direct upstream_stage=%s status=%s reason=%s",
                exc.stage,
                exc.status_code,
                exc.reason,
            )
            return self._oauth_error("invalid_grant", "Authorization code could not be exchanged")

        url = append_query_params(
            self.config.success_url,
            {
                "access_token": token.access_token,
                "user_id": token.user_id,
                "state": envelope.original_state,
            },
        )
        return RedirectResponse(url=url, status_code=302)

    def _authenticate_broker(self, client_id: str, client_secret: str) -> bool:
        if not self.config.requires_broker_auth:
            return True
        expected_id = self.config.broker_client_id or ""
        expected_secret = self.config.broker_client_secret or ""
        id_ok = secrets.compare_digest(client_id.encode("utf-8"), expected_id.encode("utf-8"))
        secret_ok = secrets.compare_digest(
            client_secret.encode("utf-8"), expected_secret.encode("utf-8")
        )
        return id_ok and secret_ok

    async def token(self, request: Request) -> Response:
        """Broker-facing /oauth/token endpoint."""
        raw_body = (await request.body()).decode("utf-8", errors="replace")
        form_values = parse_qs(raw_body, keep_blank_values=True)

        def form_get(key: str) -> str:
            values = form_values.get(key)
            if not values:
                return ""
            return values[-1]

        code = form_get("code").strip()
        client_id = form_get("client_id").strip()
        client_secret = form_get("client_secret").strip()
        grant_type = form_get("grant_type").strip()

        if not code:
            return self._oauth_error("invalid_request", "code is required")
        if grant_type and grant_type != "authorization_code":
            return self._oauth_error("unsupported_grant_type", "grant_type is not supported")
        if not self._authenticate_broker(client_id, client_secret):
            _logger.warning("stage=token broker authentication failed")
            return self._oauth_error("invalid_client", "client authentication failed", 401)

        _logger.info("stage=token code=%s", mask_secret(code))
        try:
            upstream_token = await self.client.exchange_code(code, self._callback_url(request))
            profile = await self.client.fetch_profile(upstream_token.access_token)
        except UpstreamError as exc:
            _logger.warning(
                "stage=token upstream_stage=%s status=%s reason=%s",
                exc.stage,
                exc.status_code,
                exc.reason,
            )
            return self._oauth_error("invalid_grant", "Authorization code could not be exchanged")

        claims = build_id_token_claims(
            issuer=self._origin(request),
            audience=client_id or self.provider.client_id,
            profile=profile,
            claim_namespace=self.config.claim_namespace,
            provider_name=self.provider.name,
            ttl_seconds=self.config.token_ttl_seconds,
        )
        payload: dict[str, Any] = {
            "access_token": upstream_token.access_token,
            "token_type": "Bearer",
            "expires_in": self.config.token_ttl_seconds,
            "id_token": build_unsigned_id_token(claims),
            "scope": _ID_TOKEN_SCOPE,
        }
        _logger.debug("stage=token response=%s", redact_sensitive_fields(payload))
        return JSONResponse(payload, headers=_NO_STORE_HEADERS)

    async def userinfo(self, request: Request) -> Response:
        """Broker-facing /oauth/userinfo endpoint."""
        auth_header = request.headers.get("authorization", "")
        if not auth_header.lower().startswith("bearer "):
            return self._oauth_error(
                "invalid_token",
                "Authorization header with Bearer token required",
                401,
                headers=_INVALID_TOKEN_CHALLENGE,
            )
        access_token = auth_header[7:].strip()
        if not access_token:
            return self._oauth_error(
                "invalid_token",
                "Authorization header with Bearer token required",
                401,
                headers=_INVALID_TOKEN_CHALLENGE,
            )

        try:
            profile = await self.client.fetch_profile(access_token)
        except UpstreamError as exc:
            # One answer for expired, revoked and unreachable alike.
            _logger.warning(
                "stage=userinfo upstream_stage=%s status=%s reason=%s",
                exc.stage,
                exc.status_code,
                exc.reason,
            )
            return self._oauth_error(
                "invalid_token",
                "The access token is invalid",
                401,
                headers=_INVALID_TOKEN_CHALLENGE,
            )

        required = self.config.required_account_types
        if required and (profile.account_type or "").upper() not in required:
            _logger.info("stage=userinfo account_type=%s rejected", profile.account_type)
            return self._oauth_error(
                "invalid_account_type",
                f"Account type must be one of: {', '.join(required)}",
                403,
            )

        _logger.info("stage=userinfo sub=%s", profile.id)
        claims = project_claims(
            profile,
            claim_namespace=self.config.claim_namespace,
            provider_name=self.provider.name,
            profile_page_url=self.provider.profile_page_url,
        )
        return JSONResponse(claims, headers=_NO_STORE_HEADERS)


def create_oidc_bridge(
    config: BridgeConfig,
    client: ThirdPartyClient | None = None,
) -> OIDCBridgeProxy:
    """Factory for the bridge handlers."""
    return OIDCBridgeProxy(config, client=client)
