"""State envelope carried through the third party's ``state`` parameter.

The proxy keeps no server-side session. Everything the callback needs to
route the authorization code back to the broker travels in an opaque,
URL-safe blob that the third party round-trips unmodified. The blob carries
routing metadata only, never secrets, so it is tamper-tolerant rather than
tamper-proof: anything that cannot be decoded falls back to the legacy
behaviour of treating the whole value as the broker's original state.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass

_ORIGINAL_STATE_KEY = "originalState"
_BROKER_REDIRECT_URI_KEY = "brokerRedirectUri"
_IS_MOBILE_KEY = "isMobile"


@dataclass(frozen=True)
class ForwardRoute:
    """Hand the authorization code back to the broker."""

    redirect_uri: str


@dataclass(frozen=True)
class DirectRoute:
    """Exchange the code locally and land on the app's success page."""


CallbackRoute = ForwardRoute | DirectRoute


@dataclass(frozen=True)
class StateEnvelope:
    original_state: str = ""
    broker_redirect_uri: str = ""
    is_mobile: bool = False

    def route(self) -> CallbackRoute:
        if self.broker_redirect_uri:
            return ForwardRoute(redirect_uri=self.broker_redirect_uri)
        return DirectRoute()

    def to_wire(self) -> dict[str, object]:
        return {
            _ORIGINAL_STATE_KEY: self.original_state,
            _BROKER_REDIRECT_URI_KEY: self.broker_redirect_uri,
            _IS_MOBILE_KEY: self.is_mobile,
        }

    @classmethod
    def from_wire(cls, data: object) -> StateEnvelope:
        """Build an envelope from decoded JSON; raises ValueError on bad shape.

        Envelopes written before routing metadata existed only carry
        ``originalState``; the other fields default.
        """
        if not isinstance(data, dict):
            raise ValueError("state envelope must be a JSON object")
        original_state = data.get(_ORIGINAL_STATE_KEY)
        broker_redirect_uri = data.get(_BROKER_REDIRECT_URI_KEY, "")
        is_mobile = data.get(_IS_MOBILE_KEY, False)
        if not isinstance(original_state, str):
            raise ValueError("originalState must be a string")
        if not isinstance(broker_redirect_uri, str):
            raise ValueError("brokerRedirectUri must be a string")
        if not isinstance(is_mobile, bool):
            raise ValueError("isMobile must be a boolean")
        return cls(
            original_state=original_state,
            broker_redirect_uri=broker_redirect_uri,
            is_mobile=is_mobile,
        )


def encode_state(envelope: StateEnvelope) -> str:
    """Serialize ``envelope`` to an opaque URL-safe string."""
    payload = json.dumps(envelope.to_wire(), separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(payload).rstrip(b"=").decode("ascii")


def decode_state(raw: str) -> StateEnvelope:
    """Decode an opaque state string. Never raises.

    Undecodable values are treated as a bare original state with no broker
    redirect target.
    """
    try:
        padded = raw + "=" * (-len(raw) % 4)
        payload = base64.urlsafe_b64decode(padded.encode("ascii"))
        return StateEnvelope.from_wire(json.loads(payload.decode("utf-8")))
    except (ValueError, RecursionError):
        return StateEnvelope(original_state=raw)
