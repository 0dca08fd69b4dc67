"""Streamable HTTP transport for MCP with per-client sessions.

A single endpoint accepts JSON-RPC over ``POST``. The first request without
a session id mints one, returned in the ``MCP-Session-Id`` header (and a
cookie, for clients that cannot echo custom headers). Responses are plain
JSON by default; with JSON mode off, clients that accept
``text/event-stream`` get an SSE stream instead.
"""

import json
import logging
from typing import Any, AsyncGenerator, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse
from starlette.middleware.base import BaseHTTPMiddleware

from secrets_mcp.mcp.errors import (
    INVALID_REQUEST,
    SERVER_ERROR,
    SESSION_NOT_FOUND,
    make_error_response,
)
from secrets_mcp.mcp.handlers import SUPPORTED_PROTOCOL_VERSIONS
from secrets_mcp.mcp.jsonrpc import JsonRpcProcessor
from secrets_mcp.mcp.session import Session, SessionManager

logger = logging.getLogger(__name__)

SESSION_HEADER = "MCP-Session-Id"
PROTOCOL_VERSION_HEADER = "MCP-Protocol-Version"
SESSION_COOKIE = "mcp_session_id"

# Media ranges in Accept that let us answer with JSON or SSE
ACCEPTABLE_MEDIA_RANGES = {
    "application/json",
    "text/event-stream",
    "application/*",
    "text/*",
    "*/*",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Content-Type, MCP-Session-Id, MCP-Protocol-Version, Authorization"
    ),
    "Access-Control-Expose-Headers": "MCP-Session-Id",
}


def _media_ranges(accept: str) -> set[str]:
    return {
        part.split(";")[0].strip().lower()
        for part in accept.split(",")
        if part.strip()
    }


def _error(status_code: int, code: int, message: str, **headers: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=make_error_response(code, message),
        headers=headers or None,
    )


class McpCorsMiddleware(BaseHTTPMiddleware):
    """Answer preflight requests and add CORS headers to every response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)

        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response


class HTTPTransport:
    """Route HTTP requests on the MCP endpoint to the JSON-RPC processor."""

    def __init__(
        self,
        processor: JsonRpcProcessor,
        sessions: SessionManager,
        json_response: bool = True,
    ):
        self.processor = processor
        self.sessions = sessions
        self.json_response = json_response

    def resolve_session(self, request: Request) -> tuple[Session | None, bool, Response | None]:
        """
        Find or mint the session for a request.

        Returns (session, created, error_response). An unknown id in the header
        is an error; an unknown id in the cookie just starts a new session.
        """
        header_id = request.headers.get(SESSION_HEADER)
        if header_id:
            session = self.sessions.get_session(header_id)
            if session is None:
                logger.info(f"Rejected unknown session: {header_id}")
                return None, False, _error(404, SESSION_NOT_FOUND, "Session not found")
            return session, False, None

        cookie_id = request.cookies.get(SESSION_COOKIE)
        if cookie_id:
            session = self.sessions.get_session(cookie_id)
            if session is not None:
                return session, False, None

        return self.sessions.create_session(), True, None

    async def handle_post(self, request: Request) -> Response:
        """Handle a JSON-RPC message (or batch) sent by the client."""
        content_type = request.headers.get("content-type", "")
        if content_type.split(";")[0].strip().lower() != "application/json":
            return _error(
                415, SERVER_ERROR,
                "Unsupported Media Type: Content-Type must be application/json",
            )

        accept = _media_ranges(request.headers.get("accept", ""))
        if accept and not accept & ACCEPTABLE_MEDIA_RANGES:
            return _error(
                406, SERVER_ERROR,
                "Not Acceptable: client must accept application/json or text/event-stream",
            )

        protocol_version = request.headers.get(PROTOCOL_VERSION_HEADER)
        if protocol_version and protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            return _error(
                400, INVALID_REQUEST,
                f"Bad Request: Unsupported protocol version: {protocol_version} "
                f"(supported versions: {', '.join(SUPPORTED_PROTOCOL_VERSIONS)})",
            )

        session, created, error = self.resolve_session(request)
        if error is not None:
            return error

        body = await request.body()
        output = await self.processor.handle_message(body, session)
        headers = {SESSION_HEADER: session.session_id}

        payload = self.processor.to_payload(output)
        if payload is None:
            response: Response = Response(status_code=202, headers=headers)
        elif not self.json_response and "text/event-stream" in accept:
            response = EventSourceResponse(self._event_stream(payload), headers=headers)
        else:
            response = JSONResponse(content=payload, headers=headers)

        if created:
            response.set_cookie(
                SESSION_COOKIE, session.session_id, httponly=True, samesite="strict"
            )
        return response

    async def _event_stream(self, payload: Any) -> AsyncGenerator[dict[str, str], None]:
        messages = payload if isinstance(payload, list) else [payload]
        for message in messages:
            yield {"event": "message", "data": json.dumps(message)}

    async def handle_delete(self, request: Request) -> Response:
        """Terminate a session at the client's request."""
        session_id = request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE)
        if not session_id:
            return _error(
                400, INVALID_REQUEST, f"Bad Request: {SESSION_HEADER} header is required"
            )
        if not self.sessions.remove_session(session_id):
            return _error(404, SESSION_NOT_FOUND, "Session not found")

        response = Response(status_code=204)
        response.delete_cookie(SESSION_COOKIE)
        return response

    async def handle_get(self, request: Request) -> Response:
        """This server never pushes unsolicited messages, so no GET stream."""
        return _error(
            405, SERVER_ERROR, "Method Not Allowed",
            Allow="POST, DELETE, OPTIONS",
        )
