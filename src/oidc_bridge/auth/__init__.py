"""OAuth2-to-OIDC bridging: state envelope, provider client and endpoints."""

from oidc_bridge.auth.bridge_config import (
    BridgeConfig,
    ConfigurationError,
    ProviderConfig,
    build_bridge_config,
)
from oidc_bridge.auth.oauth_proxy import OIDCBridgeProxy, create_oidc_bridge
from oidc_bridge.auth.state import (
    CallbackRoute,
    DirectRoute,
    ForwardRoute,
    StateEnvelope,
    decode_state,
    encode_state,
)

__all__ = [
    "BridgeConfig",
    "CallbackRoute",
    "ConfigurationError",
    "DirectRoute",
    "ForwardRoute",
    "OIDCBridgeProxy",
    "ProviderConfig",
    "StateEnvelope",
    "build_bridge_config",
    "create_oidc_bridge",
    "decode_state",
    "encode_state",
]
