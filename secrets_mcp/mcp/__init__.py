"""MCP (Model Context Protocol) implementation with JSON-RPC 2.0."""

from secrets_mcp.mcp.models import (
    JsonRpcRequest,
    JsonRpcResponse,
    JsonRpcError,
    Tool,
    TextContent,
    ToolCallResult,
)
from secrets_mcp.mcp.registry import ToolRegistry, ToolArgumentsError
from secrets_mcp.mcp.errors import (
    PARSE_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
)

__all__ = [
    "JsonRpcRequest",
    "JsonRpcResponse",
    "JsonRpcError",
    "Tool",
    "TextContent",
    "ToolCallResult",
    "ToolRegistry",
    "ToolArgumentsError",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
]
