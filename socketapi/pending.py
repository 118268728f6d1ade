"""One-shot pending operations and the pending-request registry.

A pending operation is a future plus an optional timer. It settles once:
WAITING -> RESOLVED | TIMED_OUT | CANCELLED. Whichever branch fires second
is a no-op, so a timer and a late response can race safely.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable

from loguru import logger

from socketapi.protocol.message import Message


class PendingState(str, Enum):
    WAITING = "waiting"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class PendingOperation:
    """A future that settles exactly once, optionally guarded by a timer."""

    def __init__(self, future: asyncio.Future[Any]):
        self.future = future
        self.state = PendingState.WAITING
        self._timer: asyncio.TimerHandle | None = None

    @property
    def waiting(self) -> bool:
        return self.state is PendingState.WAITING

    def arm(self, delay_ms: int, on_expire: Callable[[], None]) -> None:
        """Start the timer; *on_expire* runs on the loop if nothing settles first."""
        self.disarm()
        loop = self.future.get_loop()
        self._timer = loop.call_later(max(0, delay_ms) / 1000.0, on_expire)

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def resolve(self, value: Any) -> bool:
        if not self._settle(PendingState.RESOLVED):
            return False
        self.future.set_result(value)
        return True

    def time_out(self, outcome: Any) -> bool:
        """Settle as timed out. Exceptions are raised to the waiter, other values returned."""
        if not self._settle(PendingState.TIMED_OUT):
            return False
        if isinstance(outcome, BaseException):
            self.future.set_exception(outcome)
        else:
            self.future.set_result(outcome)
        return True

    def _settle(self, state: PendingState) -> bool:
        if self.state is not PendingState.WAITING:
            return False
        self.disarm()
        if self.future.done():
            # The awaiting task was cancelled underneath us.
            self.state = PendingState.CANCELLED
            return False
        self.state = state
        return True


class PendingRequest(PendingOperation):
    """Waiter for the response whose ``id`` equals ``request_id``."""

    def __init__(self, request_id: Any, future: asyncio.Future[Message], timeout_ms: int):
        super().__init__(future)
        self.request_id = request_id
        self.timeout_ms = timeout_ms

    def __repr__(self) -> str:
        return f"PendingRequest(id={self.request_id!r}, timeout_ms={self.timeout_ms}, state={self.state.value})"


def _id_key(request_id: Any) -> tuple[type, Any] | None:
    """Registry key matching on type and value, so ``True`` never matches ``1``.

    Unhashable ids (JSON arrays and objects) have no key: like any object
    identity comparison, no decoded response can ever equal them.
    """
    try:
        hash(request_id)
    except TypeError:
        return None
    return type(request_id), request_id


class PendingRequestRegistry:
    """Correlation id -> live waiter. Touched only from the event loop."""

    def __init__(self):
        self._pending: dict[Any, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        key = _id_key(request_id)
        return key is not None and key in self._pending

    def _key_for(self, pending: PendingRequest) -> Any:
        key = _id_key(pending.request_id)
        return key if key is not None else pending

    def add(self, pending: PendingRequest) -> None:
        key = self._key_for(pending)
        previous = self._pending.get(key)
        if previous is not None and previous.waiting:
            logger.warning(
                f"Request id {pending.request_id!r} is already pending; "
                "the earlier request can now only time out"
            )
        self._pending[key] = pending

    def discard(self, pending: PendingRequest) -> None:
        """Remove *pending* if it still owns its id."""
        key = self._key_for(pending)
        if self._pending.get(key) is pending:
            del self._pending[key]

    def resolve(self, message: Message) -> bool:
        """Message listener: settle the waiter whose id matches, ignore the rest."""
        if message.id is None:
            return False
        key = _id_key(message.id)
        pending = self._pending.get(key) if key is not None else None
        if pending is None:
            return False
        self.discard(pending)
        return pending.resolve(message)
