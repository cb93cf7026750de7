"""Entrypoint for the OIDC bridging proxy."""

from __future__ import annotations

import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from oidc_bridge import __version__
from oidc_bridge.config import load_settings
from oidc_bridge.logging_utils import configure_logging, get_logger


def run_entrypoint() -> None:
    """Configure logging, build the app and serve it with uvicorn."""
    settings = load_settings()
    configure_logging()
    logger = get_logger(__name__)
    logger.info("Initializing OIDC bridging proxy v%s", __version__)
    logger.info("Log file configured at: %s", settings.logging.file)

    from oidc_bridge.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to serve the bridging proxy") from exc

    app = create_http_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
        # Request lines carry authorization codes; AuditMiddleware logs paths only.
        access_log=False,
        proxy_headers=settings.server.http_trust_forwarded_headers,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
