"""
Tests for settings loading and error classification
"""

import pytest

from camel_gateway.app.core.config import DEV_COOKIE_SECRET, load_settings
from camel_gateway.app.dependencies.auth import decode_session_cookie, encode_session_cookie
from camel_gateway.app.models.document import WorkspaceOrVersion
from camel_gateway.app.services.onshape.errors import (
    AuthError,
    NotFoundError,
    SchemaError,
    TransportError,
)
from camel_gateway.app.shared.error_handler import ErrorType, parse_gateway_error


def test_load_settings_reads_environment_and_dotenv(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("ONSHAPE_APP_CLIENT_ID=from-file\nSESSION_TTL_SECONDS=120\n")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("ONSHAPE_API_URL", "https://onshape.test/api")
    # load_dotenv writes into os.environ; registering the variables first
    # makes monkeypatch remove them again afterwards
    for name in ("ONSHAPE_APP_CLIENT_ID", "SESSION_TTL_SECONDS", "SESSION_ID_COOKIE_SECRET"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)

    settings = load_settings()

    assert settings.client_id == "from-file"
    assert settings.session_ttl_seconds == 120
    assert settings.api_base_url == "https://onshape.test/api"
    assert settings.session_cookie_secret == DEV_COOKIE_SECRET
    assert settings.certs_dir == str(tmp_path / "certs")
    assert settings.evaluation_timeout_seconds == 10.0


def test_invalid_integer_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("HTTP_PORT", "eighty")
    assert load_settings().http_port == 80


def test_session_cookie_round_trip_and_tamper_detection():
    token = encode_session_cookie("sid-1", "secret")
    assert decode_session_cookie(token, "secret") == "sid-1"
    assert decode_session_cookie(token, "other-secret") is None
    assert decode_session_cookie("garbage", "secret") is None


@pytest.mark.parametrize(
    "value, expected",
    [("w", WorkspaceOrVersion.WORKSPACE), ("V", WorkspaceOrVersion.VERSION), ("workspace", WorkspaceOrVersion.WORKSPACE)],
)
def test_workspace_or_version_parse(value, expected):
    assert WorkspaceOrVersion.parse(value) is expected


@pytest.mark.parametrize(
    "error, error_type, status_code, retryable",
    [
        (AuthError("expired"), ErrorType.AUTHENTICATION, 401, False),
        (NotFoundError("gone"), ErrorType.NOT_FOUND, 404, False),
        (SchemaError("bad"), ErrorType.SCHEMA, 502, False),
        (TransportError("down", status=503), ErrorType.NETWORK, 502, True),
        (TransportError("timeout"), ErrorType.NETWORK, 502, True),
        (TransportError("forbidden", status=403), ErrorType.NETWORK, 502, False),
        (RuntimeError("boom"), ErrorType.UNKNOWN, 500, False),
    ],
)
def test_parse_gateway_error(error, error_type, status_code, retryable):
    info = parse_gateway_error(error)
    assert info.error_type is error_type
    assert info.status_code == status_code
    assert info.retryable is retryable
    assert info.to_dict()["error_type"] == error_type.value


def test_fractional_evaluation_timeout(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("EVALUATION_TIMEOUT_SECONDS", "2.5")
    assert load_settings().evaluation_timeout_seconds == 2.5


def test_invalid_evaluation_timeout_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("EVALUATION_TIMEOUT_SECONDS", "soon")
    assert load_settings().evaluation_timeout_seconds == 10.0
