"""Tests for socketapi.protocol.message."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from socketapi.errors import RequestValidationError
from socketapi.protocol.message import (
    Message,
    Request,
    coerce_request,
    decode_message,
    validate_message,
)


def test_decode_response_message() -> None:
    result = decode_message('{"id": 3, "_type": "response", "status": "okay", "value": {"a": 1}}')
    assert result.ok
    msg = result.message
    assert msg.id == 3
    assert msg.type == "response"
    assert msg.ok is True
    assert msg.is_event is False
    assert msg.value == {"a": 1}


def test_decode_error_response() -> None:
    result = decode_message('{"id": "x", "_type": "response", "status": "error", "error": "boom"}')
    assert result.ok
    assert result.message.ok is False
    assert result.message.error == "boom"


def test_to_dict_keeps_wire_shape_and_extras() -> None:
    source = {"_type": "event", "status": "okay", "value": {"eventName": "e"}, "extra": [1, 2]}
    msg = validate_message(source).message
    assert msg.to_dict() == source


def test_invalid_json_is_malformed() -> None:
    result = decode_message("{not json")
    assert not result.ok
    assert result.malformed is True
    assert result.reason.startswith("invalid JSON")


@pytest.mark.parametrize(
    "obj",
    [
        {"_type": "response", "status": "okay"},  # neither value nor error
        {"status": "okay", "value": 1},  # no _type
        {"type": "response", "status": "okay", "value": 1},  # "type" is not "_type"
        {"_type": "response", "value": 1},  # no status
        {"_type": "reply", "status": "okay", "value": 1},
        {"_type": "response", "status": "fine", "value": 1},
        [1, 2, 3],
        "text",
    ],
)
def test_shape_violations_are_rejected_but_not_malformed(obj) -> None:
    result = validate_message(obj)
    assert not result.ok
    assert result.malformed is False
    assert result.reason.startswith("invalid message")


def test_null_value_still_counts_as_present() -> None:
    result = validate_message({"_type": "response", "status": "okay", "value": None, "id": 1})
    assert result.ok


def test_as_event_parses_event_payload() -> None:
    msg = validate_message(
        {"_type": "event", "status": "okay", "value": {"eventName": "BotStopped", "eventArgs": {"reason": 2}}}
    ).message
    event = msg.as_event()
    assert event.event_name == "BotStopped"
    assert event.event_args == {"reason": 2}


def test_as_event_rejects_non_event_value() -> None:
    msg = validate_message({"_type": "event", "status": "okay", "value": 42}).message
    with pytest.raises(ValidationError):
        msg.as_event()


def test_coerce_request_from_model_and_dict() -> None:
    assert coerce_request(Request(id=1, command="GetBots")) == {"id": 1, "command": "GetBots"}
    assert coerce_request({"id": "a", "args": []}) == {"id": "a", "args": []}


@pytest.mark.parametrize("request_obj", [{"command": "x"}, {"id": None}, Request(command="x")])
def test_coerce_request_requires_id(request_obj) -> None:
    with pytest.raises(RequestValidationError) as exc_info:
        coerce_request(request_obj)
    assert exc_info.value.details == {"field": "id"}


def test_coerce_request_rejects_non_objects() -> None:
    with pytest.raises(RequestValidationError) as exc_info:
        coerce_request(["id", 1])
    assert exc_info.value.details == {}


@pytest.mark.parametrize("request_id", [1.5, 0, "", False, [1], {"k": 1}])
def test_coerce_request_accepts_any_non_null_id(request_id) -> None:
    assert coerce_request({"id": request_id, "command": "x"})["id"] == request_id
    assert coerce_request(Request(id=request_id)).get("id") == request_id


@pytest.mark.parametrize("message_id", [1.5, {"k": 1}, [1, 2], True, "7"])
def test_message_id_is_kept_unconverted(message_id) -> None:
    result = validate_message({"id": message_id, "_type": "event", "status": "okay", "value": 1})
    assert result.ok
    assert result.message.id == message_id
    assert type(result.message.id) is type(message_id)


def test_message_model_validate_direct() -> None:
    msg = Message.model_validate({"_type": "event", "status": "error", "error": {"code": 1}})
    assert msg.id is None
    assert msg.is_event
