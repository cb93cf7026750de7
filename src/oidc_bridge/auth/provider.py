"""Client for the third party's proprietary OAuth2 endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from oidc_bridge.auth.bridge_config import ProviderConfig

_logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """A call to the third party failed.

    Carries only the stage, HTTP status and reason phrase. Upstream response
    bodies may hold provider secrets or PII and are never attached.
    """

    def __init__(self, stage: str, status_code: int | None = None, reason: str = "") -> None:
        self.stage = stage
        self.status_code = status_code
        self.reason = reason
        detail = f"status={status_code}" if status_code is not None else "no response"
        super().__init__(f"{stage} failed ({detail}): {reason}".rstrip(": "))


@dataclass(frozen=True)
class ThirdPartyToken:
    access_token: str
    user_id: str


@dataclass(frozen=True)
class ThirdPartyProfile:
    id: str
    username: str
    account_type: str | None = None
    display_name: str | None = None
    profile_picture_url: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ThirdPartyProfile:
        user_id = payload.get("id")
        username = payload.get("username")
        if user_id in (None, "") or not isinstance(username, str) or not username:
            raise ValueError("profile response is missing id or username")
        return cls(
            id=str(user_id),
            username=username,
            account_type=_optional_str(payload.get("account_type")),
            display_name=_optional_str(payload.get("name")),
            profile_picture_url=_optional_str(payload.get("profile_picture_url")),
        )


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


class ThirdPartyClient:
    """Code exchange and profile lookup against the third party.

    Every call opens its own ``httpx.AsyncClient`` with the configured timeout
    and is attempted exactly once: authorization codes are single-use, so a
    failed exchange is surfaced to the caller rather than retried.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    async def exchange_code(self, code: str, redirect_uri: str) -> ThirdPartyToken:
        """Exchange an authorization code for an access token.

        ``redirect_uri`` must equal the value sent on the authorize redirect;
        the provider rejects mismatches.
        """
        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
            "code": code,
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.config.token_url,
                    data=data,
                    timeout=self.config.timeout_seconds,
                )
        except httpx.HTTPError as exc:
            raise UpstreamError("token_exchange", reason=type(exc).__name__) from exc

        payload = self._json_payload("token_exchange", resp)
        access_token = payload.get("access_token")
        user_id = payload.get("user_id")
        if not isinstance(access_token, str) or not access_token or user_id in (None, ""):
            raise UpstreamError("token_exchange", resp.status_code, "malformed token response")
        return ThirdPartyToken(access_token=access_token, user_id=str(user_id))

    async def fetch_profile(self, access_token: str) -> ThirdPartyProfile:
        """Fetch the profile of the user that owns ``access_token``."""
        params = {
            "fields": ",".join(self.config.profile_fields),
            "access_token": access_token,
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(
                    self.config.profile_url,
                    params=params,
                    timeout=self.config.timeout_seconds,
                )
        except httpx.HTTPError as exc:
            raise UpstreamError("profile_fetch", reason=type(exc).__name__) from exc

        payload = self._json_payload("profile_fetch", resp)
        try:
            return ThirdPartyProfile.from_payload(payload)
        except ValueError as exc:
            raise UpstreamError("profile_fetch", resp.status_code, str(exc)) from exc

    @staticmethod
    def _json_payload(stage: str, resp: httpx.Response) -> dict[str, Any]:
        if not resp.is_success:
            raise UpstreamError(stage, resp.status_code, str(resp.reason_phrase or ""))
        try:
            payload = resp.json()
        except ValueError as exc:
            _logger.warning("%s returned non-JSON response", stage)
            raise UpstreamError(stage, resp.status_code, "non-JSON response") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(stage, resp.status_code, "unexpected response shape")
        return payload
