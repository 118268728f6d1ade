"""
socketapi - asyncio client for servers speaking sentinel-framed JSON over TCP.
"""

__version__ = "0.1.0"

from socketapi.client import SocketAPIClient
from socketapi.config import ClientSettings, load_settings
from socketapi.errors import (
    ConfigError,
    ErrorCategory,
    RequestTimeoutError,
    RequestValidationError,
    SocketAPIError,
)
from socketapi.protocol import Message, MessageStatus, MessageType, Request, ServerEvent

__all__ = [
    "SocketAPIClient",
    "ClientSettings",
    "load_settings",
    "ConfigError",
    "ErrorCategory",
    "RequestTimeoutError",
    "RequestValidationError",
    "SocketAPIError",
    "Message",
    "MessageStatus",
    "MessageType",
    "Request",
    "ServerEvent",
]
