"""
Navigation lifecycle tracking for a frame.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Iterable, List, Optional, TypeVar, Union

from .events import FrameManagerEvent, NetworkEvent
from .exceptions import NavigationError, TimeoutError, UsageError
from .helpers import CloseSignal

if TYPE_CHECKING:
    from .frame_manager import Frame, FrameManager
    from .network import Request, Response

logger = logging.getLogger(__name__)

T = TypeVar("T")

WAIT_UNTIL_TO_PROTOCOL = {
    "load": "load",
    "domcontentloaded": "DOMContentLoaded",
    "networkidle0": "networkIdle",
    "networkidle2": "networkAlmostIdle",
}


def expected_lifecycle(wait_until: Union[None, str, Iterable[str]]) -> List[str]:
    """
    Translate wait_until milestones into protocol lifecycle event names.

    Raises:
        UsageError: On an unknown milestone
    """
    if wait_until is None:
        wait_until = ["load"]
    elif isinstance(wait_until, str):
        wait_until = [wait_until]
    result = []
    for value in wait_until:
        protocol_event = WAIT_UNTIL_TO_PROTOCOL.get(value)
        if protocol_event is None:
            raise UsageError(f"Unknown value for wait_until: {value}")
        result.append(protocol_event)
    return result


class LifecycleWatcher:
    """
    Watches one frame until the expected lifecycle milestones are reached.

    Completion futures:
        lifecycle_future: milestones reached on the frame and its descendants
        same_document_future: milestones reached after a same-document navigation
        new_document_future: milestones reached after the loader changed
        navigation_future: either of the two above

    The watcher terminates on timeout, when the frame detaches, or when the
    page closes; ``race`` raises that error.
    """

    def __init__(
        self,
        frame_manager: "FrameManager",
        frame: "Frame",
        wait_until: Union[None, str, Iterable[str]],
        timeout: float,
        close_signal: Optional[CloseSignal] = None,
    ):
        self._expected_lifecycle = expected_lifecycle(wait_until)
        self._frame_manager = frame_manager
        self._frame = frame
        self._initial_loader_id = frame._loader_id
        self._navigation_request: Optional["Request"] = None
        self._has_same_document_navigation = False

        loop = asyncio.get_running_loop()
        self.lifecycle_future: asyncio.Future = loop.create_future()
        self.same_document_future: asyncio.Future = loop.create_future()
        self.new_document_future: asyncio.Future = loop.create_future()
        self.navigation_future: asyncio.Future = loop.create_future()
        self._termination: asyncio.Future = loop.create_future()

        self._subscriptions = [
            frame_manager.on(FrameManagerEvent.LIFECYCLE_EVENT, self._check_lifecycle_complete),
            frame_manager.on(
                FrameManagerEvent.FRAME_NAVIGATED_WITHIN_DOCUMENT, self._navigated_within_document
            ),
            frame_manager.on(FrameManagerEvent.FRAME_DETACHED, self._on_frame_detached),
            frame_manager.network_manager.on(NetworkEvent.REQUEST, self._on_request),
        ]

        self._timer = None
        if timeout:
            self._timer = loop.call_later(
                timeout,
                self._terminate,
                TimeoutError(f"Navigation timeout of {timeout} seconds exceeded"),
            )
        self._remove_close_callback = None
        if close_signal is not None:
            self._remove_close_callback = close_signal.add_callback(self._terminate)

        self._check_lifecycle_complete()

    def _on_request(self, request: "Request") -> None:
        if request.frame is not self._frame or not request.is_navigation_request():
            return
        self._navigation_request = request

    def _on_frame_detached(self, frame: "Frame") -> None:
        if frame is self._frame:
            self._terminate(NavigationError("Navigating frame was detached"))
            return
        self._check_lifecycle_complete()

    def _navigated_within_document(self, frame: "Frame") -> None:
        if frame is not self._frame:
            return
        self._has_same_document_navigation = True
        self._check_lifecycle_complete()

    def _terminate(self, error: Exception) -> None:
        if not self._termination.done():
            self._termination.set_result(error)

    @staticmethod
    def _resolve(future: asyncio.Future) -> None:
        if not future.done():
            future.set_result(None)

    def _check_lifecycle_complete(self, *_: Any) -> None:
        if not _check_lifecycle(self._frame, self._expected_lifecycle):
            return
        self._resolve(self.lifecycle_future)
        if self._frame._loader_id == self._initial_loader_id and not self._has_same_document_navigation:
            return
        if self._has_same_document_navigation:
            self._resolve(self.same_document_future)
        if self._frame._loader_id != self._initial_loader_id:
            self._resolve(self.new_document_future)
        self._resolve(self.navigation_future)

    def navigation_response(self) -> Optional["Response"]:
        if self._navigation_request is None:
            return None
        return self._navigation_request.response

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await something unless the watcher terminates first.

        Raises:
            TimeoutError: If the navigation timeout elapsed
            NavigationError: If the frame detached
            TargetClosedError: If the page closed
        """
        task = asyncio.ensure_future(awaitable)
        try:
            await asyncio.wait({task, self._termination}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if self._termination.done():
            if task.done() and not task.cancelled():
                task.exception()
            else:
                task.cancel()
            raise self._termination.result()
        return task.result()

    def dispose(self) -> None:
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._remove_close_callback is not None:
            self._remove_close_callback()
            self._remove_close_callback = None


def _check_lifecycle(frame: "Frame", expected: List[str]) -> bool:
    for event in expected:
        if event not in frame._lifecycle_events:
            return False
    for child in frame.child_frames:
        if not _check_lifecycle(child, expected):
            return False
    return True
