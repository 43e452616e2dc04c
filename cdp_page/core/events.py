"""
Event module for CDP Page.
Contains the event emitter shared by connections, sessions, frames and pages.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class ConnectionEvent(str, Enum):
    DISCONNECTED = "Connection.Disconnected"


class SessionEvent(str, Enum):
    DISCONNECTED = "CDPSession.Disconnected"


def _event_key(event: Any) -> str:
    if isinstance(event, Enum):
        return event.value
    return event


def schedule(coro: Awaitable[Any], name: Optional[str] = None) -> asyncio.Task:
    """
    Run a coroutine in the background and log it if it fails.

    Args:
        coro: Coroutine to run
        name: Label used in the failure log

    Returns:
        The created task
    """
    task = asyncio.ensure_future(coro)

    def _done(t: asyncio.Task) -> None:
        if t.cancelled():
            return
        error = t.exception()
        if error is not None:
            logger.error(f"Background task {name or t} failed: {error}")

    task.add_done_callback(_done)
    return task


class Subscription:
    """Token returned by EventEmitter.on; dispose() removes the listener."""

    def __init__(self, emitter: "EventEmitter", event: str, listener: Listener):
        self._emitter = emitter
        self.event = event
        self.listener = listener

    def dispose(self) -> None:
        self._emitter.off(self.event, self.listener)


class EventEmitter:
    """
    A simple synchronous event emitter.

    Listeners run in registration order on the emitting call stack. A listener
    that returns a coroutine has it scheduled as a task. Errors raised by a
    listener are logged and never interrupt delivery to the others.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: Any, listener: Listener) -> Subscription:
        """Add a persistent event listener."""
        key = _event_key(event)
        self._listeners.setdefault(key, []).append(listener)
        return Subscription(self, key, listener)

    def once(self, event: Any, listener: Listener) -> Subscription:
        """Add a listener that is removed after its first call."""
        key = _event_key(event)

        def _wrapper(*args, **kwargs):
            self.off(key, _wrapper)
            return listener(*args, **kwargs)

        return self.on(key, _wrapper)

    def off(self, event: Any, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        key = _event_key(event)
        listeners = self._listeners.get(key)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[key]

    def emit(self, event: Any, *args) -> bool:
        """
        Emit an event with arguments.

        Returns:
            True if at least one listener was registered
        """
        key = _event_key(event)
        listeners = self._listeners.get(key)
        if not listeners:
            return False
        for listener in listeners[:]:
            try:
                result = listener(*args)
                if asyncio.iscoroutine(result):
                    schedule(result, name=key)
            except Exception as e:
                logger.error(f"Error in event listener for {key}: {e}")
        return True

    def listener_count(self, event: Any) -> int:
        return len(self._listeners.get(_event_key(event), []))

    def remove_all_listeners(self, event: Any = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(_event_key(event), None)
