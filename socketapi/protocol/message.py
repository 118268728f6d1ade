"""Wire message shapes and the schema-checked decode step.

Every non-heartbeat frame is a JSON object of the form::

    {"id": 7, "_type": "response", "status": "okay", "value": {...}}
    {"_type": "event", "status": "okay", "value": {"eventName": "...", "eventArgs": ...}}

``status`` and ``_type`` are required, and at least one of ``error`` / ``value``
must be present. Anything else is rejected by :func:`decode_message`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from socketapi.errors import RequestValidationError


class MessageType(str, Enum):
    RESPONSE = "response"
    EVENT = "event"


class MessageStatus(str, Enum):
    OKAY = "okay"
    ERROR = "error"


class ServerEvent(BaseModel):
    """Payload carried in ``value`` of an event message."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event_name: str = Field(alias="eventName")
    event_args: Any = Field(default=None, alias="eventArgs")


class Message(BaseModel):
    """A decoded response or event envelope.

    ``id`` is kept exactly as decoded, whatever JSON value it is.
    """
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    id: Any = None
    type: MessageType = Field(alias="_type")
    status: MessageStatus
    value: Any = None
    error: Any = None

    @model_validator(mode="before")
    @classmethod
    def _require_payload_field(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("message must be a JSON object")
        if "error" not in data and "value" not in data:
            raise ValueError("message carries neither 'error' nor 'value'")
        return data

    @property
    def is_event(self) -> bool:
        return self.type == MessageType.EVENT.value

    @property
    def ok(self) -> bool:
        return self.status == MessageStatus.OKAY.value

    def as_event(self) -> ServerEvent:
        """Parse ``value`` as a server event (eventName / eventArgs).

        Raises:
            pydantic.ValidationError: If ``value`` is not an event object.
        """
        return ServerEvent.model_validate(self.value)

    def to_dict(self) -> dict[str, Any]:
        """Wire-shaped dict with only the fields that were present."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class Request(BaseModel):
    """Outbound request: a correlation id plus an arbitrary body."""
    model_config = ConfigDict(extra="allow")

    id: Any = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump()


@dataclass(frozen=True)
class DecodeResult:
    """Tagged outcome of :func:`decode_message`: a message or a rejection reason."""
    message: Message | None = None
    reason: str | None = None
    malformed: bool = False  # not JSON at all, as opposed to JSON of the wrong shape

    @property
    def ok(self) -> bool:
        return self.message is not None


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = str(first.get("msg") or "invalid")
    return f"{loc}: {msg}" if loc else msg


def validate_message(obj: Any) -> DecodeResult:
    """Check an already-parsed JSON value against the Message shape."""
    try:
        return DecodeResult(message=Message.model_validate(obj))
    except ValidationError as e:
        return DecodeResult(reason=f"invalid message: {_first_error(e)}")


def decode_message(text: str) -> DecodeResult:
    """Parse one frame's text as JSON and validate it."""
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        return DecodeResult(reason=f"invalid JSON: {e}", malformed=True)
    return validate_message(obj)


def coerce_request(request: Request | dict[str, Any]) -> dict[str, Any]:
    """Return the wire dict for *request*, enforcing a non-null id."""
    if isinstance(request, Request):
        payload = request.to_wire()
    elif isinstance(request, dict):
        payload = dict(request)
    else:
        raise RequestValidationError(
            f"request must be a Request or dict, got {type(request).__name__}"
        )
    if payload.get("id") is None:
        raise RequestValidationError("request.id must be defined.", field="id")
    return payload
