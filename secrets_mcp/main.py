"""FastAPI MCP Server - HTTP application entrypoint."""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request

from secrets_mcp.config.loader import Settings, get_settings
from secrets_mcp.mcp.handlers import MCPHandlers
from secrets_mcp.mcp.jsonrpc import JsonRpcProcessor
from secrets_mcp.mcp.session import SessionManager
from secrets_mcp.mcp.transport_http import HTTPTransport, McpCorsMiddleware
from secrets_mcp.security.auth import AuthMiddleware
from secrets_mcp.stores import SecretStore, create_secret_store
from secrets_mcp.tools.secrets import build_registry
from secrets_mcp.utils.logging import setup_logging, set_request_id, get_logger

logger = logging.getLogger(__name__)

# The MCP endpoint is served at the root and at /mcp
MCP_PATHS = ("/", "/mcp")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    sessions: SessionManager = app.state.sessions

    log = get_logger("startup")
    log.info(
        "Starting MCP server",
        transport="http",
        server_name=settings.server_name,
        version=settings.server_version,
        backend=settings.secret_backend,
        auth_enabled=settings.auth_enabled,
        json_response=settings.json_response,
        session_expiry=settings.session_expiry_enabled,
        tool_count=app.state.registry.tool_count,
    )

    await sessions.start_cleanup_task()

    yield

    log.info("Shutting down MCP server", open_sessions=sessions.session_count)
    sessions.stop_cleanup_task()
    sessions.clear()


def create_app(
    settings: Settings | None = None,
    store: SecretStore | None = None,
) -> FastAPI:
    """
    Build the HTTP application.

    Session state, the tool registry and the secret store all hang off
    ``app.state`` so each application instance is self-contained.
    """
    settings = settings or get_settings()
    store = store if store is not None else create_secret_store(settings)

    registry = build_registry(store, settings.service_name)
    processor = JsonRpcProcessor(MCPHandlers(registry, settings))
    sessions = SessionManager(ttl_seconds=settings.session_ttl_seconds)
    transport = HTTPTransport(processor, sessions, json_response=settings.json_response)

    app = FastAPI(
        title="Secrets MCP Server",
        description="MCP server exposing the OS keychain to AI agents",
        version=settings.server_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.state.sessions = sessions
    app.state.transport = transport

    # Last added = first to process incoming requests, so CORS answers
    # preflight before auth sees it
    app.add_middleware(AuthMiddleware, settings=settings, protected_paths=MCP_PATHS)
    app.add_middleware(McpCorsMiddleware)

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    for path in MCP_PATHS:
        app.add_api_route(path, transport.handle_post, methods=["POST"], include_in_schema=False)
        app.add_api_route(path, transport.handle_delete, methods=["DELETE"], include_in_schema=False)
        app.add_api_route(path, transport.handle_get, methods=["GET"], include_in_schema=False)

    return app


def main() -> None:
    """Run the HTTP server with uvicorn."""
    import uvicorn

    try:
        settings = get_settings()
        setup_logging()
        app = create_app(settings)
        print(
            f"Secrets MCP Server running on http://{settings.host}:{settings.port}",
            flush=True,
        )
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
