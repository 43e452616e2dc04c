"""
Helper functions shared by the page, frames and handles.
"""
import asyncio
import json
import logging
import math
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from cdp_page.core.events import EventEmitter

from .exceptions import TimeoutError, UsageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FUNCTION_PATTERN = re.compile(
    r"^\s*(async\s+)?(function\b|\([^)]*\)\s*=>|[A-Za-z_$][\w$]*\s*=>)",
    re.DOTALL,
)


class JSFunction:
    """JavaScript source that evaluates to a function; called with arguments."""

    __slots__ = ("source",)

    def __init__(self, source: str):
        self.source = source

    def __repr__(self) -> str:
        return f"JSFunction({self.source!r})"


class JSExpression:
    """JavaScript source evaluated as a plain expression; takes no arguments."""

    __slots__ = ("source",)

    def __init__(self, source: str):
        self.source = source

    def __repr__(self) -> str:
        return f"JSExpression({self.source!r})"


PageFunction = Union[str, JSFunction, JSExpression]


def is_js_function(source: str) -> bool:
    """Tell whether JavaScript source text is a function declaration or arrow."""
    return bool(_FUNCTION_PATTERN.match(source))


def to_page_function(
    page_function: PageFunction, force_expr: bool = False
) -> Union[JSFunction, JSExpression]:
    """
    Classify page code once so every caller shares one marshalling path.

    Args:
        page_function: Source text, or an already classified JSFunction/JSExpression
        force_expr: Treat plain source text as an expression

    Returns:
        A JSFunction or a JSExpression

    Raises:
        UsageError: If page_function is not source text
    """
    if isinstance(page_function, (JSFunction, JSExpression)):
        return page_function
    if not isinstance(page_function, str):
        raise UsageError(
            f"Expected JavaScript source text, got {type(page_function).__name__}"
        )
    if not force_expr and is_js_function(page_function):
        return JSFunction(page_function)
    return JSExpression(page_function)


def evaluation_string(function: str, *args: Any) -> str:
    """Build a call expression for a function with JSON-encoded arguments."""
    def serialize(arg: Any) -> str:
        if arg is None:
            return "undefined"
        return json.dumps(arg)

    return f"({function})({', '.join(serialize(arg) for arg in args)})"


def value_from_remote_object(remote_object: Dict[str, Any]) -> Any:
    """
    Convert a by-value remote object into a Python value.

    Args:
        remote_object: Runtime.RemoteObject

    Returns:
        The plain value, with unserializable numbers mapped to floats/ints
    """
    unserializable = remote_object.get("unserializableValue")
    if unserializable:
        if unserializable == "-0":
            return -0.0
        if unserializable == "NaN":
            return math.nan
        if unserializable == "Infinity":
            return math.inf
        if unserializable == "-Infinity":
            return -math.inf
        if unserializable.endswith("n"):
            return int(unserializable[:-1])
        raise UsageError(f"Unsupported unserializable value: {unserializable}")
    return remote_object.get("value")


def get_exception_message(exception_details: Dict[str, Any]) -> str:
    """Extract a readable message from Runtime.ExceptionDetails."""
    exception = exception_details.get("exception")
    if exception:
        return exception.get("description") or str(exception.get("value", ""))
    message = exception_details.get("text", "")
    stack_trace = exception_details.get("stackTrace")
    if stack_trace:
        for call_frame in stack_trace.get("callFrames", []):
            location = (
                f"{call_frame.get('url', '')}:"
                f"{call_frame.get('lineNumber', 0)}:"
                f"{call_frame.get('columnNumber', 0)}"
            )
            function_name = call_frame.get("functionName") or "<anonymous>"
            message += f"\n    at {function_name} ({location})"
    return message


async def release_object(client: Any, remote_object: Dict[str, Any]) -> None:
    """Release a remote object; the object may already be gone."""
    object_id = remote_object.get("objectId")
    if not object_id:
        return
    try:
        await client.send("Runtime.releaseObject", {"objectId": object_id})
    except Exception as e:
        logger.debug(f"Failed to release remote object {object_id}: {e}")


class CloseSignal:
    """
    One-shot signal fired when a page closes, disconnects or crashes.

    Every callback receives its own copy of the terminal error.
    """

    def __init__(self):
        self._error: Optional[Exception] = None
        self._callbacks: List[Callable[[Exception], None]] = []

    @property
    def fired(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def make_error(self) -> Exception:
        return type(self._error)(*self._error.args)

    def fire(self, error: Exception) -> None:
        if self.fired:
            return
        self._error = error
        callbacks = self._callbacks
        self._callbacks = []
        for callback in callbacks:
            try:
                callback(self.make_error())
            except Exception as e:
                logger.error(f"Error in close callback: {e}")

    def add_callback(self, callback: Callable[[Exception], None]) -> Callable[[], None]:
        """
        Register a callback for the close.

        Returns:
            A function that unregisters the callback
        """
        if self.fired:
            callback(self.make_error())
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return remove


async def wait_with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    message: str,
    close_signal: Optional[CloseSignal] = None,
) -> T:
    """
    Race an awaitable against a timer and the page close signal.

    Args:
        awaitable: The completion condition
        timeout: Seconds before TimeoutError; 0 or None disables the timer
        message: Message of the TimeoutError
        close_signal: Signal whose error wins the race when it fires

    Returns:
        The awaitable's result

    Raises:
        TimeoutError: If the timer fires first
        TargetClosedError: If the page closes first
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)
    outcome = loop.create_future()

    def finish(error: Optional[Exception] = None) -> None:
        if not outcome.done():
            outcome.set_result(error)

    task.add_done_callback(lambda _: finish())
    timer = loop.call_later(timeout, finish, TimeoutError(message)) if timeout else None
    remove_close = close_signal.add_callback(finish) if close_signal else None

    try:
        error = await outcome
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if timer is not None:
            timer.cancel()
        if remove_close is not None:
            remove_close()

    if error is not None:
        if task.done() and not task.cancelled():
            task.exception()
        else:
            task.cancel()
        raise error
    return task.result()


async def wait_for_event(
    emitter: EventEmitter,
    event: Any,
    predicate: Optional[Callable[[Any], bool]],
    timeout: Optional[float],
    message: str,
    close_signal: Optional[CloseSignal] = None,
) -> Any:
    """
    Wait for the next event whose payload satisfies a predicate.

    Only events emitted after this call starts are considered.
    """
    future = asyncio.get_running_loop().create_future()

    def listener(*args: Any) -> None:
        if future.done():
            return
        payload = args[0] if args else None
        try:
            matched = predicate(payload) if predicate else True
        except Exception as e:
            future.set_exception(e)
            return
        if matched:
            future.set_result(payload)

    subscription = emitter.on(event, listener)
    try:
        return await wait_with_timeout(future, timeout, message, close_signal)
    finally:
        subscription.dispose()
