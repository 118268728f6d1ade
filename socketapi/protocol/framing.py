"""Sentinel framing for the socket byte stream.

The server terminates every frame with two NUL bytes (``\\0\\0``). TCP may
merge several frames into one delivery or split one frame across several, so
:class:`FrameDecoder` keeps the unterminated tail of each chunk and prepends it
to the next one.

Frames whose text starts with ``hb`` are heartbeats and are not JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from socketapi.protocol.message import DecodeResult, Message, decode_message

SENTINEL = b"\0\0"
HEARTBEAT_PREFIX = "hb"
DEFAULT_MAX_FRAME_BYTES = 1024 * 1024


class FrameKind(str, Enum):
    HEARTBEAT = "heartbeat"
    MESSAGE = "message"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    text: str
    message: Message | None = None
    reason: str | None = None
    malformed: bool = False


def classify_frame(text: str) -> Frame:
    """Classify one frame: heartbeat, valid message, or rejected."""
    if text.startswith(HEARTBEAT_PREFIX):
        return Frame(kind=FrameKind.HEARTBEAT, text=text)
    result: DecodeResult = decode_message(text)
    if result.ok:
        return Frame(kind=FrameKind.MESSAGE, text=text, message=result.message)
    return Frame(kind=FrameKind.REJECTED, text=text, reason=result.reason, malformed=result.malformed)


class FrameDecoder:
    """Turns raw socket chunks into classified frames, in stream order.

    Parameters:
        buffered: Keep an unterminated tail between chunks. When *False*
            every chunk is decoded on its own and a trailing partial frame is
            treated as complete.
        max_frame_bytes: Upper bound for the buffered tail. A tail that grows
            past it is discarded.
    """

    def __init__(self, *, buffered: bool = True, max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES):
        self.buffered = buffered
        self.max_frame_bytes = max_frame_bytes
        self._buffer = b""

    @property
    def pending_bytes(self) -> int:
        """Size of the unterminated tail held for the next chunk."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer = b""

    def feed(self, data: bytes) -> list[Frame]:
        """Consume one chunk and return the frames it completes."""
        return [classify_frame(text) for text in self.split(data)]

    def split(self, data: bytes) -> list[str]:
        """Consume one chunk and return the text of every completed frame."""
        stream = self._buffer + data
        pieces = stream.split(SENTINEL)
        if self.buffered:
            # The last piece is either empty (chunk ended on a sentinel) or a partial frame.
            tail = pieces.pop()
            if len(tail) > self.max_frame_bytes:
                logger.warning(
                    f"Discarding {len(tail)} buffered bytes without a frame terminator "
                    f"(limit {self.max_frame_bytes})"
                )
                tail = b""
            self._buffer = tail
        frames: list[str] = []
        for piece in pieces:
            piece = piece.strip(b"\0")
            if not piece:
                continue
            try:
                frames.append(piece.decode("utf-8"))
            except UnicodeDecodeError as e:
                logger.warning(f"Dropping frame that is not valid UTF-8: {e}")
        return frames


def encode_request(payload: dict[str, Any], *, terminate: bool = False) -> bytes:
    """Serialize a request dict for the wire."""
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    if terminate:
        body += SENTINEL
    return body
