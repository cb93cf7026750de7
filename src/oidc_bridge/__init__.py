"""OAuth2-to-OIDC bridging proxy."""

__version__ = "2.0.0"
