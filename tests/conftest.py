"""Shared fixtures for thunder-kernels-api tests."""

import io
import json

import pytest
from tornado.httpclient import HTTPRequest, HTTPResponse
from unittest.mock import AsyncMock, Mock

from thunder_kernels_api.auth.credentials import CredentialStore
from thunder_kernels_api.gateway.client import ThunderGatewayClient
from thunder_kernels_api.services.servers.registry import ServerCollectionRegistry


def make_response(code=200, body=None, url="http://localhost:8080/jupyter/start"):
    """A real tornado response carrying ``body`` (dicts are JSON encoded)."""
    if isinstance(body, dict):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode("utf-8")
    buffer = io.BytesIO(body) if body is not None else None
    return HTTPResponse(HTTPRequest(url, method="POST", body=""), code, buffer=buffer)


@pytest.fixture(autouse=True)
def reset_registry():
    """Reset the registry singleton between tests."""
    ServerCollectionRegistry._instance = None
    ServerCollectionRegistry._registry.clear()
    yield
    ServerCollectionRegistry._instance = None
    ServerCollectionRegistry._registry.clear()


@pytest.fixture
def token_file(tmp_path):
    path = tmp_path / ".thunder" / "token"
    path.parent.mkdir()
    path.write_text("test-token-12345\n")
    return path


@pytest.fixture
def credentials(token_file):
    return CredentialStore(token_file=str(token_file), prompt=None)


@pytest.fixture
def http_client():
    client = Mock()
    client.fetch = AsyncMock(return_value=make_response(200, {"baseUrl": "http://10.0.0.1:8888/", "token": "jt"}))
    return client


@pytest.fixture
def gateway(http_client):
    return ThunderGatewayClient(api_endpoint="http://localhost:8080", http_client=http_client)
