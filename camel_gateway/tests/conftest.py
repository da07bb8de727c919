"""
Shared fixtures for gateway tests
"""

import pytest

from camel_gateway.app.core.config import GatewaySettings
from camel_gateway.app.models.document import DocumentContext, Identity, WorkspaceOrVersion

from .fake_onshape import API_BASE, AUTHORIZE_URL, PROFILE_URL, TOKEN_URL, FakeOnshape


@pytest.fixture
def fake():
    return FakeOnshape(current_files={"a.nc": "G0 X0"})


@pytest.fixture
def settings():
    return GatewaySettings(
        api_base_url=API_BASE,
        authorization_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        user_profile_url=PROFILE_URL,
        client_id="client-id",
        client_secret="client-secret",
        session_cookie_secret="test-secret",
    )


@pytest.fixture
def identity():
    return Identity(access_token="access-1", refresh_token="refresh-1", profile={"name": "Test User"})


@pytest.fixture
def context(identity):
    return DocumentContext(
        document_id="doc1",
        workspace_or_version=WorkspaceOrVersion.WORKSPACE,
        workspace_or_version_id="ws1",
        element_id="el1",
        identity=identity,
    )
