"""JSON-RPC 2.0 message processing."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from secrets_mcp.mcp.models import JsonRpcRequest, JsonRpcResponse, JsonRpcError
from secrets_mcp.mcp.handlers import MCPHandlers
from secrets_mcp.mcp.errors import PARSE_ERROR, INVALID_REQUEST, make_error_data
from secrets_mcp.mcp.registry import describe_validation_error
from secrets_mcp.mcp.session import Session

logger = logging.getLogger(__name__)

# A single response, a batch of responses, or nothing (notifications only)
ProcessorOutput = JsonRpcResponse | list[JsonRpcResponse] | None


def _salvage_id(data: Any) -> int | str | None:
    """Pull a usable id out of an invalid request so the error can be correlated."""
    if isinstance(data, dict):
        request_id = data.get("id")
        if isinstance(request_id, (int, str)) and not isinstance(request_id, bool):
            return request_id
    return None


class JsonRpcProcessor:
    """Process JSON-RPC 2.0 messages."""

    def __init__(self, handlers: MCPHandlers):
        self.handlers = handlers

    def decode(self, raw_data: str | bytes) -> tuple[Any, dict | None]:
        """
        Decode raw bytes/text into a JSON value.

        Returns (data, error) tuple. One will be None.
        """
        try:
            if isinstance(raw_data, bytes):
                raw_data = raw_data.decode("utf-8")
            return json.loads(raw_data), None
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return None, make_error_data(PARSE_ERROR, f"Invalid JSON: {e}")

    def parse_request(self, data: Any) -> tuple[JsonRpcRequest | None, dict | None]:
        """
        Validate a decoded JSON value as a JSON-RPC request.

        Returns (request, error) tuple. One will be None.
        """
        if not isinstance(data, dict):
            return None, make_error_data(
                INVALID_REQUEST, "Invalid JSON-RPC request: expected an object"
            )
        try:
            return JsonRpcRequest(**data), None
        except ValidationError as e:
            return None, make_error_data(
                INVALID_REQUEST,
                f"Invalid JSON-RPC request: {describe_validation_error(e)}",
            )

    async def process_request(
        self, request: JsonRpcRequest, session: Session | None = None
    ) -> JsonRpcResponse | None:
        """
        Process a validated JSON-RPC request.

        Returns None for notifications (requests without id).
        """
        result, error = await self.handlers.dispatch(
            request.method, request.params, session
        )

        # Notifications don't get responses
        if request.is_notification:
            return None

        if error is not None:
            return JsonRpcResponse(id=request.id, error=JsonRpcError(**error))
        return JsonRpcResponse(id=request.id, result=result)

    async def process_item(
        self, data: Any, session: Session | None = None
    ) -> JsonRpcResponse | None:
        """Validate and process one decoded message."""
        request, error = self.parse_request(data)
        if error is not None:
            return JsonRpcResponse(id=_salvage_id(data), error=JsonRpcError(**error))
        return await self.process_request(request, session)  # type: ignore[arg-type]

    async def handle_message(
        self, raw_data: str | bytes, session: Session | None = None
    ) -> ProcessorOutput:
        """
        Handle a raw JSON-RPC message (single or batch) end-to-end.

        Batch entries are processed in order, one at a time.
        """
        data, parse_error = self.decode(raw_data)
        if parse_error is not None:
            # Parse errors don't have a request id
            return JsonRpcResponse(id=None, error=JsonRpcError(**parse_error))

        if not isinstance(data, list):
            return await self.process_item(data, session)

        if not data:
            return JsonRpcResponse(
                id=None,
                error=JsonRpcError(
                    **make_error_data(INVALID_REQUEST, "Invalid JSON-RPC request: empty batch")
                ),
            )

        responses = []
        for item in data:
            response = await self.process_item(item, session)
            if response is not None:
                responses.append(response)
        return responses or None

    @staticmethod
    def to_payload(output: ProcessorOutput) -> Any:
        """Convert processor output to plain JSON-compatible data."""
        if output is None:
            return None
        if isinstance(output, list):
            return [response.model_dump() for response in output]
        return output.model_dump()

    def serialize_response(self, output: ProcessorOutput) -> str:
        """Serialize a response (or batch) to a compact JSON string."""
        return json.dumps(self.to_payload(output), separators=(",", ":"))
