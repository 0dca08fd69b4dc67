"""Tool registry for managing MCP tools."""

import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from secrets_mcp.mcp.models import Tool, ToolCallResult

logger = logging.getLogger(__name__)

# Type alias for tool handlers: typed arguments in, finished result out
ToolHandler = Callable[[BaseModel], Awaitable[ToolCallResult]]


class ToolArgumentsError(ValueError):
    """Raised when tool arguments do not satisfy the tool's input schema."""

    def __init__(self, tool_name: str, detail: str):
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")


class ToolDefinition:
    """A registered tool with its metadata, argument model and handler."""

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        arguments_model: type[BaseModel],
        handler: ToolHandler,
    ):
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self.arguments_model = arguments_model
        self.handler = handler

    def to_mcp_tool(self) -> Tool:
        """Convert to MCP Tool model for protocol responses."""
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
        )

    def parse_arguments(self, raw_arguments: Any) -> BaseModel:
        """Validate raw JSON arguments into the tool's typed model."""
        if raw_arguments is None:
            raw_arguments = {}
        if not isinstance(raw_arguments, dict):
            raise ToolArgumentsError(self.name, "arguments must be an object")
        try:
            return self.arguments_model.model_validate(raw_arguments)
        except ValidationError as e:
            raise ToolArgumentsError(self.name, describe_validation_error(e)) from e


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into ``field: reason; field: reason``."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class ToolRegistry:
    """Registry of the tools this server exposes, in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        arguments_model: type[BaseModel],
        handler: ToolHandler,
    ) -> None:
        """Register a tool with the registry."""
        if name in self._tools:
            logger.warning(f"Tool '{name}' already registered, overwriting")
        self._tools[name] = ToolDefinition(
            name=name,
            description=description,
            input_schema=input_schema,
            arguments_model=arguments_model,
            handler=handler,
        )
        logger.debug(f"Registered tool: {name}")

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool by exact (case-sensitive) name."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        """List all registered tools as MCP Tool models."""
        return [tool.to_mcp_tool() for tool in self._tools.values()]

    def validate(self, name: str, raw_arguments: Any) -> BaseModel:
        """
        Validate arguments for the named tool.

        Raises:
            KeyError: If no such tool is registered.
            ToolArgumentsError: If the arguments are missing or mistyped.
        """
        tool = self.get(name)
        if tool is None:
            raise KeyError(name)
        return tool.parse_arguments(raw_arguments)

    async def call_tool(self, name: str, arguments: Any) -> ToolCallResult:
        """
        Call a tool by name with the given arguments.

        Never raises: unknown tools, bad arguments and handler failures all
        come back as error-flagged results.
        """
        tool = self.get(name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {name}")
            return ToolCallResult.error(f"Unknown tool: {name}")

        try:
            parsed = tool.parse_arguments(arguments)
            return await tool.handler(parsed)
        except ToolArgumentsError as e:
            logger.info(f"Rejected arguments for {name}: {e.detail}")
            return ToolCallResult.error(f"Error: {e}")
        except Exception as e:
            logger.exception(f"Error executing tool {name}")
            return ToolCallResult.error(f"Error: {exception_message(e)}")

    @property
    def tool_count(self) -> int:
        """Return the number of registered tools."""
        return len(self._tools)


def exception_message(exc: BaseException) -> str:
    """Human-readable message for an exception, never empty."""
    return str(exc) or type(exc).__name__
