"""Typed in-process event bus used by the client for message routing."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from loguru import logger

from socketapi.protocol.message import Message

MESSAGE_RECEIVED = "message_received"
EVENT_RECEIVED = "event_received"

MessageCallback = Callable[[Message], Any]


class EventEmitter:
    """Channel name -> ordered list of callbacks, dispatched synchronously.

    Dispatch iterates over a snapshot, so a callback may unsubscribe itself
    (or others) while a message is being delivered.
    """

    def __init__(self):
        self._channels: dict[str, list[MessageCallback]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, channel: str, callback: MessageCallback) -> None:
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")
        self._channels.setdefault(channel, []).append(callback)

    def off(self, channel: str, callback: MessageCallback) -> bool:
        """Remove the most recent registration of *callback*; False if absent."""
        callbacks = self._channels.get(channel)
        if not callbacks:
            return False
        for index in range(len(callbacks) - 1, -1, -1):
            if callbacks[index] == callback:
                del callbacks[index]
                if not callbacks:
                    self._channels.pop(channel, None)
                return True
        return False

    def listener_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def clear(self, channel: str | None = None) -> None:
        if channel is None:
            self._channels.clear()
            return
        self._channels.pop(channel, None)

    def emit(self, channel: str, message: Message) -> int:
        """Deliver *message* to every callback on *channel*; returns how many ran."""
        snapshot = list(self._channels.get(channel, ()))
        delivered = 0
        for callback in snapshot:
            try:
                result = callback(message)
            except Exception:
                logger.exception(f"Callback {callback!r} on '{channel}' raised")
                continue
            delivered += 1
            if inspect.isawaitable(result):
                self._schedule(channel, callback, result)
        return delivered

    def _schedule(self, channel: str, callback: MessageCallback, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.opt(exception=exc).error(f"Async callback {callback!r} on '{channel}' failed")

        task.add_done_callback(_done)
