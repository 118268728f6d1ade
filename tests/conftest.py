"""Pytest hooks and fixtures."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Callable

import pytest
import pytest_asyncio
from loguru import logger

from socketapi.client import SocketAPIClient
from socketapi.config import ClientSettings


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "network: opens loopback TCP sockets (skipped when SOCKETAPI_SKIP_NETWORK=true)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip network tests where loopback sockets are not available."""
    if os.environ.get("SOCKETAPI_SKIP_NETWORK") != "true":
        return
    skip = pytest.mark.skip(reason="Loopback networking disabled")
    for item in items:
        if "network" in item.keywords:
            item.add_marker(skip)


class FakeServer:
    """Loopback server speaking the client's wire format.

    Requests arrive as bare JSON objects (optionally followed by ``\\0\\0``);
    ``responder`` may return a dict (sent back framed) or None (no reply).
    """

    def __init__(self, responder: Callable[[dict[str, Any]], dict[str, Any] | None] | None = None):
        self.responder = responder
        self.requests: list[dict[str, Any]] = []
        self.connections = 0
        self.client_connected = asyncio.Event()
        self._writers: list[asyncio.StreamWriter] = []
        self._server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> "FakeServer":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        self.client_connected.set()
        decoder = json.JSONDecoder()
        buf = ""
        try:
            while True:
                chunk = await reader.read(4096)
                if not chunk:
                    break
                buf += chunk.decode("utf-8")
                while True:
                    buf = buf.lstrip("\0 \r\n")
                    if not buf:
                        break
                    try:
                        obj, end = decoder.raw_decode(buf)
                    except json.JSONDecodeError:
                        break
                    buf = buf[end:]
                    self.requests.append(obj)
                    if self.responder is not None:
                        reply = self.responder(obj)
                        if reply is not None:
                            await self.send(reply)
        except ConnectionError:
            pass
        finally:
            writer.close()

    async def send_raw(self, data: bytes) -> None:
        for writer in list(self._writers):
            if writer.is_closing():
                continue
            writer.write(data)
            await writer.drain()

    async def send(self, *messages: dict[str, Any]) -> None:
        await self.send_raw(b"".join(json.dumps(m).encode("utf-8") + b"\0\0" for m in messages))

    async def drop_clients(self) -> None:
        for writer in list(self._writers):
            writer.close()
        self._writers.clear()

    async def close(self) -> None:
        await self.drop_clients()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records: list[dict[str, Any]] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)


@pytest_asyncio.fixture
async def server():
    srv = await FakeServer().start()
    yield srv
    await srv.close()


@pytest_asyncio.fixture
async def client(server):
    settings = ClientSettings(host="127.0.0.1", port=server.port, connect_timeout_ms=2000, idle_timeout_ms=2000)
    c = SocketAPIClient(settings)
    assert await c.start() is True
    await asyncio.wait_for(server.client_connected.wait(), 2.0)
    yield c
    c.close()
