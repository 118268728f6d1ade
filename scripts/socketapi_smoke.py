#!/usr/bin/env python3
"""SocketAPI client smoke check.

Runs the client against an in-process fake server (default) or a real one:

Usage:
  python scripts/socketapi_smoke.py
  python scripts/socketapi_smoke.py --host 192.168.1.20 --port 9000 --command GetBots
"""

from __future__ import annotations

import argparse
import asyncio
import json

from loguru import logger

from socketapi import ClientSettings, Message, SocketAPIClient
from socketapi.logging_utils import configure_logging


async def _fake_server_handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    writer.write(b"hb:ping\0\0")
    decoder = json.JSONDecoder()
    buf = ""
    while True:
        chunk = await reader.read(4096)
        if not chunk:
            break
        buf += chunk.decode("utf-8")
        while buf.strip("\0"):
            try:
                request, end = decoder.raw_decode(buf.lstrip("\0"))
            except json.JSONDecodeError:
                break
            buf = buf.lstrip("\0")[end:]
            response = {"id": request.get("id"), "_type": "response", "status": "okay", "value": {"echo": request}}
            event = {"_type": "event", "status": "okay", "value": {"eventName": "RequestSeen", "eventArgs": request.get("id")}}
            # Both frames in one write: the client has to split them.
            writer.write(json.dumps(response).encode() + b"\0\0" + json.dumps(event).encode() + b"\0\0")
            await writer.drain()
    writer.close()


async def run(args: argparse.Namespace) -> int:
    server = None
    host, port = args.host, args.port
    if host is None:
        server = await asyncio.start_server(_fake_server_handler, "127.0.0.1", 0)
        host, port = "127.0.0.1", server.sockets[0].getsockname()[1]
        logger.info(f"Fake server listening on {host}:{port}")

    client = SocketAPIClient(ClientSettings(host=host, port=port), on_heartbeat=lambda hb: logger.info(f"heartbeat {hb!r}"))
    events: list[Message] = []
    client.subscribe(events.append)
    try:
        if not await client.start(timeout_ms=args.timeout):
            logger.error(f"Could not connect to {host}:{port}")
            return 1
        response = await client.send_request({"id": 1, "command": args.command}, timeout_ms=args.timeout)
        logger.info(f"Response: {response.to_dict()}")
        await asyncio.sleep(0.1)
        for event in events:
            logger.info(f"Event: {event.as_event().event_name} {event.as_event().event_args!r}")
        return 0
    finally:
        client.close()
        if server is not None:
            server.close()
            await server.wait_closed()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--host", default=None, help="Real server host; omit to use the built-in fake server")
    parser.add_argument("--port", type=int, default=9000)
    parser.add_argument("--command", default="Ping")
    parser.add_argument("--timeout", type=int, default=2000, help="Milliseconds")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()
    configure_logging(debug=args.debug)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
