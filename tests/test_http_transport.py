"""Tests for the streamable HTTP transport: sessions, headers, CORS, auth, SSE."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from secrets_mcp.main import create_app
from secrets_mcp.mcp.errors import AUTHENTICATION_ERROR, SESSION_NOT_FOUND
from secrets_mcp.mcp.transport_http import SESSION_COOKIE, SESSION_HEADER

from conftest import make_settings


def initialize_request(id: int = 1) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": id,
        "method": "initialize",
        "params": {
            "protocolVersion": "2024-11-05",
            "capabilities": {},
            "clientInfo": {"name": "test-http-client", "version": "1.0.0"},
        },
    }


class TestSessions:
    """Session minting and resolution."""

    def test_initialize_returns_session_header(self, client: TestClient, mcp_headers, app):
        response = client.post("/", json=initialize_request(), headers=mcp_headers)
        assert response.status_code == 200

        session_id = response.headers[SESSION_HEADER]
        assert session_id
        assert response.json()["result"]["serverInfo"]["name"] == "secrets-mcp-server"

        session = app.state.sessions.get_session(session_id)
        assert session.initialized
        assert session.protocol_version == "2024-11-05"
        assert session.client_info.name == "test-http-client"

    def test_session_header_is_reused(
        self, client: TestClient, mcp_headers, sample_jsonrpc_request, app
    ):
        first = client.post("/", json=initialize_request(), headers=mcp_headers)
        session_id = first.headers[SESSION_HEADER]

        second = client.post(
            "/",
            json=sample_jsonrpc_request("tools/list", id=2),
            headers={**mcp_headers, SESSION_HEADER: session_id},
        )
        assert second.status_code == 200
        assert second.headers[SESSION_HEADER] == session_id
        assert app.state.sessions.session_count == 1

    def test_session_cookie_resolves_without_header(
        self, client: TestClient, mcp_headers, sample_jsonrpc_request, app
    ):
        first = client.post("/", json=initialize_request(), headers=mcp_headers)
        session_id = first.headers[SESSION_HEADER]
        assert first.cookies[SESSION_COOKIE] == session_id

        # The test client replays the cookie; no session header is sent
        second = client.post("/", json=sample_jsonrpc_request("tools/list", id=2))
        assert second.headers[SESSION_HEADER] == session_id
        assert app.state.sessions.session_count == 1

    def test_each_new_client_gets_its_own_session(
        self, app, mcp_headers
    ):
        first = TestClient(app).post("/", json=initialize_request(), headers=mcp_headers)
        second = TestClient(app).post("/", json=initialize_request(), headers=mcp_headers)

        assert first.headers[SESSION_HEADER] != second.headers[SESSION_HEADER]
        assert app.state.sessions.session_count == 2

    def test_unknown_session_header_is_rejected(
        self, client: TestClient, mcp_headers, sample_jsonrpc_request
    ):
        response = client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={**mcp_headers, SESSION_HEADER: "no-such-session"},
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == SESSION_NOT_FOUND

    def test_stale_cookie_starts_new_session(
        self, client: TestClient, sample_jsonrpc_request, app
    ):
        client.cookies.set(SESSION_COOKIE, "expired-session")
        response = client.post("/", json=sample_jsonrpc_request("tools/list"))

        assert response.status_code == 200
        assert response.headers[SESSION_HEADER] != "expired-session"
        assert app.state.sessions.session_count == 1

    def test_delete_terminates_session(
        self, client: TestClient, mcp_headers, sample_jsonrpc_request, app
    ):
        session_id = client.post(
            "/", json=initialize_request(), headers=mcp_headers
        ).headers[SESSION_HEADER]

        deleted = client.delete("/", headers={SESSION_HEADER: session_id})
        assert deleted.status_code == 204
        assert app.state.sessions.session_count == 0

        after = client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={**mcp_headers, SESSION_HEADER: session_id},
        )
        assert after.status_code == 404

    def test_delete_without_session_is_bad_request(self, client: TestClient):
        response = client.delete("/")
        assert response.status_code == 400

    def test_delete_unknown_session(self, client: TestClient):
        response = client.delete("/", headers={SESSION_HEADER: "no-such-session"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == SESSION_NOT_FOUND


class TestRequestValidation:
    """Header checks on POST."""

    def test_wrong_content_type(self, client: TestClient):
        response = client.post(
            "/", content="{}", headers={"Content-Type": "text/plain"}
        )
        assert response.status_code == 415

    def test_unacceptable_accept_header(self, client: TestClient, sample_jsonrpc_request):
        response = client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={"Accept": "text/html"},
        )
        assert response.status_code == 406

    def test_unsupported_protocol_version(
        self, client: TestClient, mcp_headers, sample_jsonrpc_request
    ):
        response = client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={**mcp_headers, "MCP-Protocol-Version": "1999-01-01"},
        )
        assert response.status_code == 400
        assert "Unsupported protocol version" in response.json()["error"]["message"]

    def test_get_is_not_allowed(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 405
        assert "POST" in response.headers["Allow"]

    def test_mcp_alias_path(self, client: TestClient, mcp_headers, sample_jsonrpc_request):
        response = client.post(
            "/mcp", json=sample_jsonrpc_request("tools/list"), headers=mcp_headers
        )
        assert response.status_code == 200
        assert len(response.json()["result"]["tools"]) == 4


class TestCors:
    """CORS preflight and response headers."""

    def test_preflight(self, client: TestClient, app):
        response = client.options("/")
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["Access-Control-Allow-Origin"] == "*"

        methods = response.headers["Access-Control-Allow-Methods"]
        for method in ("GET", "POST", "DELETE", "OPTIONS"):
            assert method in methods

        allowed = response.headers["Access-Control-Allow-Headers"]
        for header in ("Content-Type", "MCP-Session-Id", "MCP-Protocol-Version"):
            assert header in allowed

        # No side effects
        assert app.state.sessions.session_count == 0

    def test_responses_expose_session_header(
        self, client: TestClient, mcp_headers, sample_jsonrpc_request
    ):
        response = client.post(
            "/", json=sample_jsonrpc_request("tools/list"), headers=mcp_headers
        )
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Access-Control-Expose-Headers"] == "MCP-Session-Id"


class TestSecretOperationsOverHttp:
    """End-to-end tool calls through the HTTP endpoint."""

    def test_scenario(self, call_tool):
        stored = call_tool("store_secret", {"key": "api_token", "value": "sk-123"})
        assert "Successfully stored" in stored["content"][0]["text"]

        retrieved = call_tool("retrieve_secret", {"key": "api_token"}, id=2)
        assert retrieved["content"][0]["text"] == "sk-123"

        deleted = call_tool("delete_secret", {"key": "api_token"}, id=3)
        assert deleted["content"][0]["text"] == "Successfully deleted secret with key: api_token"

        gone = call_tool("retrieve_secret", {"key": "api_token"}, id=4)
        assert gone["content"][0]["text"] == "No secret found with key: api_token"
        assert gone["isError"] is False

    def test_validation_error(self, call_tool):
        result = call_tool("store_secret", {"key": "only-key-no-value"})
        assert result["isError"] is True
        assert "Error" in result["content"][0]["text"]

    def test_list_secrets(self, call_tool):
        call_tool("store_secret", {"key": "one", "value": "1"})
        call_tool("store_secret", {"key": "two", "value": "2"})

        text = call_tool("list_secrets")["content"][0]["text"]
        keys = {line.removeprefix("- ") for line in text.split("\n")[1:]}
        assert keys == {"one", "two"}

    @pytest.mark.asyncio
    async def test_concurrent_stores(self, async_client, store):
        async def store_one(n: int):
            response = await async_client.post(
                "/",
                json={
                    "jsonrpc": "2.0",
                    "id": n,
                    "method": "tools/call",
                    "params": {
                        "name": "store_secret",
                        "arguments": {"key": f"key-{n}", "value": f"value-{n}"},
                    },
                },
            )
            return response.json()

        results = await asyncio.gather(*(store_one(n) for n in range(20)))

        assert sorted(r["id"] for r in results) == list(range(20))
        assert all(r["result"]["isError"] is False for r in results)
        assert set(store.enumerate("secrets-mcp-test")) == {f"key-{n}" for n in range(20)}


class TestAuthentication:
    """Bearer token protection of the MCP endpoint."""

    @pytest.fixture
    def auth_client(self, store):
        return TestClient(create_app(make_settings(mcp_auth_token="s3cret"), store))

    def test_missing_token_is_rejected(self, auth_client, sample_jsonrpc_request):
        response = auth_client.post("/", json=sample_jsonrpc_request("tools/list"))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == AUTHENTICATION_ERROR

    def test_wrong_token_is_rejected(self, auth_client, sample_jsonrpc_request):
        response = auth_client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_valid_token_is_accepted(self, auth_client, sample_jsonrpc_request):
        response = auth_client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={"Authorization": "Bearer s3cret"},
        )
        assert response.status_code == 200

    def test_health_and_preflight_are_public(self, auth_client):
        assert auth_client.get("/health").status_code == 200
        assert auth_client.options("/").status_code == 204


class TestSseResponses:
    """SSE response mode (JSON mode disabled)."""

    @pytest.fixture
    def sse_client(self, store):
        import sse_starlette.sse as sse_module

        # sse-starlette keeps a process-wide exit event bound to the first loop
        if hasattr(sse_module, "AppStatus"):
            sse_module.AppStatus.should_exit_event = None
        return TestClient(create_app(make_settings(json_response=False), store))

    def test_event_stream_response(self, sse_client, mcp_headers, sample_jsonrpc_request):
        response = sse_client.post(
            "/", json=sample_jsonrpc_request("tools/list", id=9), headers=mcp_headers
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers[SESSION_HEADER]

        data_lines = [
            line.removeprefix("data:").strip()
            for line in response.text.splitlines()
            if line.startswith("data:")
        ]
        assert "event: message" in response.text
        message = json.loads(data_lines[0])
        assert message["id"] == 9
        assert len(message["result"]["tools"]) == 4

    def test_json_only_client_still_gets_json(self, sse_client, sample_jsonrpc_request):
        response = sse_client.post(
            "/",
            json=sample_jsonrpc_request("tools/list"),
            headers={"Accept": "application/json"},
        )
        assert response.headers["content-type"].startswith("application/json")
