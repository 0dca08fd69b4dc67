"""MCP method handlers for JSON-RPC requests."""

import logging
from typing import Any

from pydantic import ValidationError

from secrets_mcp.mcp.models import (
    InitializeParams,
    InitializeResult,
    ServerInfo,
    Capabilities,
    ToolsListResult,
    ToolCallParams,
    ToolCallResult,
)
from secrets_mcp.mcp.registry import ToolRegistry, describe_validation_error, exception_message
from secrets_mcp.mcp.errors import (
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
    make_error_data,
)
from secrets_mcp.mcp.session import Session
from secrets_mcp.config.loader import Settings, get_settings

logger = logging.getLogger(__name__)

# MCP protocol versions we support, newest last
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[-1]


def negotiate_protocol_version(requested: str | None) -> str:
    """Echo the client's version when we speak it, otherwise offer our latest."""
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested  # type: ignore[return-value]
    return LATEST_PROTOCOL_VERSION


class MCPHandlers:
    """Handlers for MCP protocol methods."""

    def __init__(self, registry: ToolRegistry, settings: Settings | None = None):
        self.registry = registry
        self.settings = settings or get_settings()

    async def handle_initialize(
        self, params: dict[str, Any], session: Session | None = None
    ) -> dict[str, Any]:
        """Handle the initialize request."""
        requested_version = params.get("protocolVersion")
        try:
            init_params = InitializeParams(**params)
        except ValidationError as e:
            logger.warning(f"Invalid initialize params: {describe_validation_error(e)}")
            # Still proceed with defaults
            init_params = None

        protocol_version = negotiate_protocol_version(
            requested_version if isinstance(requested_version, str) else None
        )
        if session is not None:
            session.mark_initialized(
                protocol_version,
                init_params.clientInfo if init_params else None,
            )

        result = InitializeResult(
            protocolVersion=protocol_version,
            capabilities=Capabilities(tools={}),
            serverInfo=ServerInfo(
                name=self.settings.server_name,
                version=self.settings.server_version,
            ),
        )
        return result.model_dump()

    async def handle_initialized(
        self, params: dict[str, Any], session: Session | None = None
    ) -> None:
        """Handle the notifications/initialized notification (no response)."""
        logger.info("Client confirmed initialization")
        return None

    async def handle_ping(
        self, params: dict[str, Any], session: Session | None = None
    ) -> dict[str, Any]:
        """Handle the ping request."""
        return {}

    async def handle_tools_list(
        self, params: dict[str, Any], session: Session | None = None
    ) -> dict[str, Any]:
        """Handle the tools/list request."""
        tools = self.registry.list_tools()
        result = ToolsListResult(tools=tools)
        return result.model_dump()

    async def handle_tools_call(
        self, params: dict[str, Any], session: Session | None = None
    ) -> dict[str, Any]:
        """
        Handle the tools/call request.

        Every outcome, including malformed params and unexpected exceptions,
        is a Tool-Call Result; callers inspect ``isError`` rather than the
        JSON-RPC error channel.
        """
        try:
            call_params = ToolCallParams(**params)
        except ValidationError as e:
            logger.warning(f"Invalid tools/call params: {describe_validation_error(e)}")
            return ToolCallResult.error(
                f"Error: Invalid parameters: {describe_validation_error(e)}"
            ).model_dump()

        logger.info(f"Calling tool: {call_params.name}")
        try:
            result = await self.registry.call_tool(
                call_params.name, call_params.arguments
            )
        except Exception as e:
            logger.exception(f"Unhandled error in tool {call_params.name}")
            result = ToolCallResult.error(f"Error: {exception_message(e)}")
        return result.model_dump()

    async def dispatch(
        self,
        method: str,
        params: dict[str, Any] | list[Any] | None,
        session: Session | None = None,
    ) -> tuple[Any | None, dict[str, Any] | None]:
        """
        Dispatch a method call to the appropriate handler.

        Returns (result, error) tuple. One will be None.
        """
        handlers = {
            "initialize": self.handle_initialize,
            "notifications/initialized": self.handle_initialized,
            "ping": self.handle_ping,
            "tools/list": self.handle_tools_list,
            "tools/call": self.handle_tools_call,
        }

        handler = handlers.get(method)
        if handler is None:
            if method.startswith("notifications/"):
                logger.debug(f"Ignoring notification: {method}")
                return None, None
            return None, make_error_data(
                METHOD_NOT_FOUND, f"Method not found: {method}"
            )

        # MCP methods take named parameters only
        if isinstance(params, list):
            return None, make_error_data(
                INVALID_PARAMS, f"Invalid params for {method}: expected an object"
            )

        try:
            result = await handler(params or {}, session)
            return result, None
        except Exception as e:
            logger.exception(f"Error handling method {method}")
            return None, make_error_data(
                INTERNAL_ERROR, f"Error processing request: {exception_message(e)}"
            )
