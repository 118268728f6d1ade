"""Wire protocol: message shapes and sentinel framing."""

from socketapi.protocol.framing import (
    HEARTBEAT_PREFIX,
    SENTINEL,
    Frame,
    FrameDecoder,
    FrameKind,
    classify_frame,
    encode_request,
)
from socketapi.protocol.message import (
    DecodeResult,
    Message,
    MessageStatus,
    MessageType,
    Request,
    ServerEvent,
    coerce_request,
    decode_message,
    validate_message,
)

__all__ = [
    "HEARTBEAT_PREFIX",
    "SENTINEL",
    "Frame",
    "FrameDecoder",
    "FrameKind",
    "classify_frame",
    "encode_request",
    "DecodeResult",
    "Message",
    "MessageStatus",
    "MessageType",
    "Request",
    "ServerEvent",
    "coerce_request",
    "decode_message",
    "validate_message",
]
