"""Stdio MCP Server - line-delimited JSON-RPC over stdin/stdout.

stdout carries protocol messages only; logs and the startup banner go to
stderr.
"""

import asyncio
import concurrent.futures
import logging
import sys
import threading
from typing import AsyncIterator, BinaryIO

from secrets_mcp.config.loader import Settings, get_settings
from secrets_mcp.mcp.handlers import MCPHandlers
from secrets_mcp.mcp.jsonrpc import JsonRpcProcessor
from secrets_mcp.mcp.session import Session
from secrets_mcp.stores import SecretStore, create_secret_store
from secrets_mcp.tools.secrets import build_registry
from secrets_mcp.utils.logging import setup_logging, get_logger

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
READ_AHEAD_CHUNKS = 4
STDIO_SESSION_ID = "stdio"


class LineFramer:
    """Split a byte stream into newline-terminated records.

    Bytes after the last newline are held until the next chunk arrives, so a
    record split across reads is reassembled before it is parsed.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[bytes]:
        """Add a chunk and return every complete, non-blank record."""
        self._buffer.extend(chunk)
        records = []
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            record = bytes(self._buffer[:newline]).rstrip(b"\r")
            del self._buffer[: newline + 1]
            if record.strip():
                records.append(record)
        return records

    def flush(self) -> bytes | None:
        """Return an unterminated trailing record at end of input, if any."""
        remainder = bytes(self._buffer).strip()
        self._buffer.clear()
        return remainder or None

    @property
    def pending(self) -> int:
        return len(self._buffer)


def _read_chunk(stream: BinaryIO) -> bytes:
    # read1 returns as soon as any data is available; read() would wait for a full chunk
    read1 = getattr(stream, "read1", None)
    if read1 is not None:
        return read1(CHUNK_SIZE)
    return stream.read(CHUNK_SIZE)


async def read_chunks(stream: BinaryIO) -> AsyncIterator[bytes]:
    """Yield chunks from a blocking binary stream until EOF.

    Reads happen on a daemon thread so a blocked stdin never holds up
    interpreter shutdown. The thread stays at most ``READ_AHEAD_CHUNKS``
    chunks ahead of the consumer.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=READ_AHEAD_CHUNKS)

    def put(chunk: bytes) -> None:
        asyncio.run_coroutine_threadsafe(queue.put(chunk), loop).result()

    def pump() -> None:
        try:
            while True:
                chunk = _read_chunk(stream)
                put(chunk)
                if not chunk:
                    return
        except (OSError, ValueError) as e:
            logger.error(f"stdin read failed: {e}")
            try:
                put(b"")
            except (RuntimeError, concurrent.futures.CancelledError):
                pass  # loop already closed
        except (RuntimeError, concurrent.futures.CancelledError):
            pass  # loop already closed

    threading.Thread(target=pump, name="stdio-reader", daemon=True).start()

    while True:
        chunk = await queue.get()
        if not chunk:
            return
        yield chunk


class StdioServer:
    """Serve one MCP client over a pair of byte streams."""

    def __init__(self, processor: JsonRpcProcessor):
        self.processor = processor
        self.session = Session(STDIO_SESSION_ID)

    @classmethod
    def from_settings(cls, settings: Settings, store: SecretStore) -> "StdioServer":
        registry = build_registry(store, settings.service_name)
        return cls(JsonRpcProcessor(MCPHandlers(registry, settings)))

    async def handle_record(self, record: bytes) -> str | None:
        """Process one framed record, returning the serialized reply if any."""
        output = await self.processor.handle_message(record, self.session)
        if output is None:
            return None
        return self.processor.serialize_response(output)

    async def _respond(self, record: bytes, output_stream: BinaryIO) -> None:
        reply = await self.handle_record(record)
        if reply is None:
            return
        output_stream.write(reply.encode("utf-8") + b"\n")
        output_stream.flush()

    async def serve(self, input_stream: BinaryIO, output_stream: BinaryIO) -> None:
        """Read requests until EOF, answering each before reading the next."""
        framer = LineFramer()
        async for chunk in read_chunks(input_stream):
            for record in framer.feed(chunk):
                await self._respond(record, output_stream)

        remainder = framer.flush()
        if remainder is not None:
            await self._respond(remainder, output_stream)
        logger.info("stdin closed, shutting down")


def main() -> None:
    """Run the stdio server until stdin closes."""
    try:
        settings = get_settings()
        setup_logging(stream=sys.stderr)
        store = create_secret_store(settings)
        server = StdioServer.from_settings(settings, store)
        get_logger("startup").info(
            "Starting MCP server",
            transport="stdio",
            server_name=settings.server_name,
            version=settings.server_version,
            backend=settings.secret_backend,
        )
        print("Secrets MCP Server running on stdio", file=sys.stderr, flush=True)
        asyncio.run(server.serve(sys.stdin.buffer, sys.stdout.buffer))
    except KeyboardInterrupt:
        pass
    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
