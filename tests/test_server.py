from unittest.mock import MagicMock, patch

from oidc_bridge.server import run_entrypoint


@patch("oidc_bridge.server.load_settings")
@patch("oidc_bridge.server.get_logger")
@patch("oidc_bridge.server.configure_logging")
@patch("oidc_bridge.transport.http_server.create_http_app")
@patch("uvicorn.run")
def test_run_entrypoint_serves_app(
    mock_run, mock_create_http_app, mock_log, _mock_get_logger, mock_settings
):
    settings = MagicMock()
    settings.server.host = "0.0.0.0"
    settings.server.port = 8000
    settings.server.http_trust_forwarded_headers = True
    mock_settings.return_value = settings

    run_entrypoint()

    mock_log.assert_called_once()
    mock_create_http_app.assert_called_once_with(settings)
    mock_run.assert_called_once_with(
        mock_create_http_app.return_value,
        host="0.0.0.0",
        port=8000,
        ws="none",
        log_config=None,
        access_log=False,
        proxy_headers=True,
    )
