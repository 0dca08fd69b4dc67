"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from secrets_mcp.config.loader import Settings
from secrets_mcp.main import create_app
from secrets_mcp.mcp.handlers import MCPHandlers
from secrets_mcp.mcp.jsonrpc import JsonRpcProcessor
from secrets_mcp.stores.memory import MemorySecretStore
from secrets_mcp.tools.secrets import build_registry

TEST_SCOPE = "secrets-mcp-test"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    values = {
        "secret_backend": "memory",
        "service_name": TEST_SCOPE,
        "mcp_auth_token": "",
        "json_response": True,
        "session_ttl_seconds": 0,
        "server_name": "secrets-mcp-server",
        "server_version": "1.0.0",
        "log_format": "console",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    """Application settings for tests."""
    return make_settings()


@pytest.fixture
def store():
    """Fresh in-memory secret store."""
    return MemorySecretStore()


@pytest.fixture
def registry(store):
    """Tool registry wired to the in-memory store."""
    return build_registry(store, TEST_SCOPE)


@pytest.fixture
def processor(registry, settings):
    """JSON-RPC processor over the test registry."""
    return JsonRpcProcessor(MCPHandlers(registry, settings))


@pytest.fixture
def app(settings, store):
    """HTTP application backed by the in-memory store."""
    return create_app(settings, store)


@pytest.fixture
def client(app):
    """Synchronous test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
async def async_client(app):
    """Async test client for FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def mcp_headers():
    """Headers a streamable-HTTP MCP client sends."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json, text/event-stream",
        "MCP-Protocol-Version": "2024-11-05",
    }


@pytest.fixture
def sample_jsonrpc_request():
    """Sample JSON-RPC request factory."""
    def _make_request(method: str, params: dict = None, id: int = 1):
        return {
            "jsonrpc": "2.0",
            "id": id,
            "method": method,
            "params": params or {},
        }
    return _make_request


@pytest.fixture
def call_tool(client, sample_jsonrpc_request):
    """POST a tools/call request and return the Tool-Call Result."""
    def _call(name: str, arguments: dict | None = None, id: int = 1):
        response = client.post(
            "/",
            json=sample_jsonrpc_request(
                "tools/call", {"name": name, "arguments": arguments or {}}, id=id
            ),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == id
        return data["result"]
    return _call
