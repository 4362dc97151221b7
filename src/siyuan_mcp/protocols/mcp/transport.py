"""StdioServerTransport — newline-delimited JSON-RPC over stdin/stdout.

A reader task queues raw lines; a single worker handles them one at a time,
so request N+1 starts only after request N's response has been written.
stdout carries protocol lines only; diagnostics go to the logging handlers
(stderr).

Usage::

    reader, writer = await open_stdio()
    transport = StdioServerTransport(reader, writer)
    await transport.serve_forever(server.handle)   # returns on stdin EOF
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

STDIO_LINE_LIMIT = 16 * 1024 * 1024

MessageHandler = Callable[[Any], Awaitable[dict[str, Any] | None]]


@runtime_checkable
class LineWriter(Protocol):
    """Sink for encoded response lines (``asyncio.StreamWriter`` satisfies it)."""

    def write(self, data: bytes) -> None: ...
    async def drain(self) -> None: ...


class StdoutWriter:
    """Blocking writer over ``sys.stdout.buffer``; one flush per response."""

    def __init__(self, stream: Any = None) -> None:
        self._stream = stream if stream is not None else sys.stdout.buffer

    def write(self, data: bytes) -> None:
        self._stream.write(data)

    async def drain(self) -> None:
        self._stream.flush()


async def open_stdio() -> tuple[asyncio.StreamReader, LineWriter]:
    """Attach an :class:`asyncio.StreamReader` to the process stdin."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STDIO_LINE_LIMIT)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader, StdoutWriter()


class StdioServerTransport:
    """Serves one JSON-RPC peer over a reader/writer pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: LineWriter) -> None:
        self._reader = reader
        self._writer = writer

    async def serve_forever(self, handler: MessageHandler) -> None:
        """Process messages strictly in order until the reader hits EOF."""
        queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        reader_task = asyncio.create_task(self._read_lines(queue))
        try:
            while True:
                line = await queue.get()
                if line is None:
                    break
                response = await self.process_line(line, handler)
                if response is not None:
                    await self.send(response)
        finally:
            if not reader_task.done():
                reader_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader_task
        logger.debug("stdin closed; transport drained")

    async def process_line(self, line: bytes, handler: MessageHandler) -> dict[str, Any] | None:
        """Decode one line and hand the message to *handler*; bad JSON is dropped."""
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return None
        try:
            message = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Invalid JSON: %s", exc)
            return None
        return await handler(message)

    async def send(self, message: dict[str, Any]) -> None:
        line = json.dumps(message, ensure_ascii=False) + "\n"
        self._writer.write(line.encode("utf-8"))
        await self._writer.drain()

    async def _read_lines(self, queue: asyncio.Queue[bytes | None]) -> None:
        try:
            while True:
                try:
                    line = await self._reader.readline()
                except ValueError as exc:
                    logger.warning("Dropping oversized line: %s", exc)
                    continue
                if not line:
                    break
                await queue.put(line)
        finally:
            queue.put_nowait(None)
