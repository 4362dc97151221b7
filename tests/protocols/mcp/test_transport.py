"""Tests for the newline-delimited stdio transport."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from siyuan_mcp.protocols.mcp.transport import LineWriter, StdioServerTransport, StdoutWriter


class BufferWriter:
    def __init__(self) -> None:
        self.data = bytearray()
        self.drains = 0

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        self.drains += 1

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.data.decode().splitlines()]


def _reader(*lines: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line)
    reader.feed_eof()
    return reader


async def _echo(message: Any) -> dict[str, Any] | None:
    if message.get("id") is None:
        return None
    return {"jsonrpc": "2.0", "id": message["id"], "result": {"method": message["method"]}}


class TestServeForever:
    async def test_responses_in_order(self) -> None:
        writer = BufferWriter()
        reader = _reader(
            b'{"jsonrpc":"2.0","id":1,"method":"a"}\n',
            b'{"jsonrpc":"2.0","id":2,"method":"b"}\n',
        )
        await StdioServerTransport(reader, writer).serve_forever(_echo)
        assert [m["id"] for m in writer.messages] == [1, 2]
        assert writer.drains == 2

    async def test_notifications_produce_no_output(self) -> None:
        writer = BufferWriter()
        reader = _reader(b'{"jsonrpc":"2.0","method":"notifications/initialized"}\n')
        await StdioServerTransport(reader, writer).serve_forever(_echo)
        assert writer.data == b""

    async def test_invalid_json_is_dropped(self) -> None:
        writer = BufferWriter()
        reader = _reader(b"{not json\n", b"\n", b'{"jsonrpc":"2.0","id":5,"method":"c"}\n')
        await StdioServerTransport(reader, writer).serve_forever(_echo)
        assert [m["id"] for m in writer.messages] == [5]

    async def test_last_line_without_newline(self) -> None:
        writer = BufferWriter()
        reader = _reader(b'{"jsonrpc":"2.0","id":9,"method":"d"}')
        await StdioServerTransport(reader, writer).serve_forever(_echo)
        assert writer.messages[0]["id"] == 9

    async def test_requests_are_serialized(self) -> None:
        order: list[str] = []

        async def slow(message: Any) -> dict[str, Any]:
            order.append(f"start {message['id']}")
            await asyncio.sleep(0.01 if message["id"] == 1 else 0)
            order.append(f"end {message['id']}")
            return {"jsonrpc": "2.0", "id": message["id"], "result": {}}

        reader = _reader(
            b'{"jsonrpc":"2.0","id":1,"method":"a"}\n',
            b'{"jsonrpc":"2.0","id":2,"method":"b"}\n',
        )
        await StdioServerTransport(reader, BufferWriter()).serve_forever(slow)
        assert order == ["start 1", "end 1", "start 2", "end 2"]


class TestSend:
    async def test_unicode_is_not_escaped(self) -> None:
        writer = BufferWriter()
        await StdioServerTransport(_reader(), writer).send({"text": "缺少参数 sql"})
        assert writer.data == '{"text": "缺少参数 sql"}\n'.encode()

    def test_writers_satisfy_protocol(self) -> None:
        assert isinstance(BufferWriter(), LineWriter)
        assert isinstance(StdoutWriter(stream=object()), LineWriter)
