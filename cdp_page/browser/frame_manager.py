"""
Frame tree tracking and per-frame operations.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set, Union

from cdp_page.core.events import EventEmitter, schedule

from .events import FrameManagerEvent
from .exceptions import ElementNotFoundError, NavigationError, PageError
from .helpers import CloseSignal, JSFunction, PageFunction, to_page_function
from .js_handle import ElementHandle, ExecutionContext, JSHandle
from .lifecycle import LifecycleWatcher
from .network import NetworkManager, Response
from .timeout_settings import TimeoutSettings
from .wait_task import WAIT_FOR_SELECTOR_OR_XPATH, WaitTask

if TYPE_CHECKING:
    from .page import Page

logger = logging.getLogger(__name__)


class FrameManager(EventEmitter):
    """
    Keeps the frame tree of a page in sync with Page/Runtime domain events.
    """

    def __init__(
        self,
        client: Any,
        page: "Page",
        ignore_https_errors: bool,
        timeout_settings: TimeoutSettings,
        close_signal: CloseSignal,
    ):
        super().__init__()
        self._client = client
        self._page = page
        self._timeout_settings = timeout_settings
        self._close_signal = close_signal
        self.network_manager = NetworkManager(client, ignore_https_errors, self)
        self._frames: Dict[str, "Frame"] = {}
        self._contexts: Dict[int, ExecutionContext] = {}
        self._main_frame: Optional["Frame"] = None

        client.on("Page.frameAttached", lambda event: self._on_frame_attached(
            event["frameId"], event.get("parentFrameId")))
        client.on("Page.frameNavigated", lambda event: self._on_frame_navigated(event["frame"]))
        client.on("Page.navigatedWithinDocument", lambda event: self._on_frame_navigated_within_document(
            event["frameId"], event["url"]))
        client.on("Page.frameDetached", lambda event: self._on_frame_detached(event["frameId"]))
        client.on("Page.frameStoppedLoading", lambda event: self._on_frame_stopped_loading(event["frameId"]))
        client.on("Runtime.executionContextCreated", lambda event: self._on_execution_context_created(
            event["context"]))
        client.on("Runtime.executionContextDestroyed", lambda event: self._on_execution_context_destroyed(
            event["executionContextId"]))
        client.on("Runtime.executionContextsCleared", lambda event: self._on_execution_contexts_cleared())
        client.on("Page.lifecycleEvent", self._on_lifecycle_event)

    async def initialize(self) -> None:
        """Enable the Page domain and load the current frame tree."""
        _, frame_tree = await asyncio.gather(
            self._client.send("Page.enable"),
            self._client.send("Page.getFrameTree"),
        )
        self._handle_frame_tree(frame_tree["frameTree"])
        await asyncio.gather(
            self._client.send("Page.setLifecycleEventsEnabled", {"enabled": True}),
            self._client.send("Runtime.enable"),
            self.network_manager.initialize(),
        )

    @property
    def page(self) -> "Page":
        return self._page

    @property
    def main_frame(self) -> Optional["Frame"]:
        return self._main_frame

    def frames(self) -> List["Frame"]:
        return list(self._frames.values())

    def frame(self, frame_id: str) -> Optional["Frame"]:
        return self._frames.get(frame_id)

    def execution_context_by_id(self, context_id: int) -> Optional[ExecutionContext]:
        return self._contexts.get(context_id)

    async def navigate_frame(
        self,
        frame: "Frame",
        url: str,
        referer: Optional[str] = None,
        timeout: Optional[float] = None,
        wait_until: Union[None, str, Iterable[str]] = None,
    ) -> Optional[Response]:
        """
        Navigate a frame and wait for the requested lifecycle milestones.

        Args:
            frame: Frame to navigate
            url: Target URL
            referer: Referer header value
            timeout: Seconds, None for the page default, 0 for no timeout
            wait_until: Milestone name or list of names

        Returns:
            The main resource response, or None for same-document navigations

        Raises:
            NavigationError: If the navigation fails or the frame detaches
            TimeoutError: If the milestones are not reached in time
        """
        timeout = self._timeout_settings.navigation_timeout(timeout)
        watcher = LifecycleWatcher(self, frame, wait_until, timeout, self._close_signal)
        try:
            new_document = await watcher.race(self._navigate(url, referer or "", frame.id))
            if new_document:
                await watcher.race(watcher.new_document_future)
            else:
                await watcher.race(watcher.same_document_future)
            return watcher.navigation_response()
        finally:
            watcher.dispose()

    async def _navigate(self, url: str, referrer: str, frame_id: str) -> bool:
        response = await self._client.send(
            "Page.navigate", {"url": url, "referrer": referrer, "frameId": frame_id}
        )
        if response.get("errorText"):
            raise NavigationError(f"{response['errorText']} at {url}")
        return bool(response.get("loaderId"))

    async def wait_for_frame_navigation(
        self,
        frame: "Frame",
        timeout: Optional[float] = None,
        wait_until: Union[None, str, Iterable[str]] = None,
    ) -> Optional[Response]:
        """Wait for the next navigation of a frame, started by anyone."""
        timeout = self._timeout_settings.navigation_timeout(timeout)
        watcher = LifecycleWatcher(self, frame, wait_until, timeout, self._close_signal)
        try:
            await watcher.race(watcher.navigation_future)
            return watcher.navigation_response()
        finally:
            watcher.dispose()

    def _on_lifecycle_event(self, event: Dict[str, Any]) -> None:
        frame = self._frames.get(event["frameId"])
        if frame is None:
            return
        frame._on_lifecycle_event(event["loaderId"], event["name"])
        self.emit(FrameManagerEvent.LIFECYCLE_EVENT, frame)

    def _on_frame_stopped_loading(self, frame_id: str) -> None:
        frame = self._frames.get(frame_id)
        if frame is None:
            return
        frame._on_loading_stopped()
        self.emit(FrameManagerEvent.LIFECYCLE_EVENT, frame)

    def _handle_frame_tree(self, frame_tree: Dict[str, Any]) -> None:
        frame = frame_tree["frame"]
        if frame.get("parentId"):
            self._on_frame_attached(frame["id"], frame["parentId"])
        self._on_frame_navigated(frame)
        for child in frame_tree.get("childFrames", []):
            self._handle_frame_tree(child)

    def _on_frame_attached(self, frame_id: str, parent_frame_id: Optional[str]) -> None:
        if frame_id in self._frames:
            return
        parent_frame = self._frames.get(parent_frame_id) if parent_frame_id else None
        frame = Frame(self, self._client, parent_frame, frame_id)
        self._frames[frame_id] = frame
        self.emit(FrameManagerEvent.FRAME_ATTACHED, frame)

    def _on_frame_navigated(self, frame_payload: Dict[str, Any]) -> None:
        is_main_frame = not frame_payload.get("parentId")
        if is_main_frame:
            frame = self._main_frame
        else:
            frame = self._frames.get(frame_payload["id"])
        if not is_main_frame and frame is None:
            logger.debug(f"Navigated frame {frame_payload['id']} is not attached")
            return

        if frame is not None:
            for child in frame.child_frames:
                self._remove_frames_recursively(child)

        if is_main_frame:
            if frame is not None:
                self._frames.pop(frame.id, None)
                frame._id = frame_payload["id"]
            else:
                frame = Frame(self, self._client, None, frame_payload["id"])
            self._frames[frame_payload["id"]] = frame
            self._main_frame = frame

        frame._navigated(frame_payload)
        self.emit(FrameManagerEvent.FRAME_NAVIGATED, frame)

    def _on_frame_navigated_within_document(self, frame_id: str, url: str) -> None:
        frame = self._frames.get(frame_id)
        if frame is None:
            return
        frame._navigated_within_document(url)
        self.emit(FrameManagerEvent.FRAME_NAVIGATED_WITHIN_DOCUMENT, frame)
        self.emit(FrameManagerEvent.FRAME_NAVIGATED, frame)

    def _on_frame_detached(self, frame_id: str) -> None:
        frame = self._frames.get(frame_id)
        if frame is not None:
            self._remove_frames_recursively(frame)

    def _on_execution_context_created(self, context_payload: Dict[str, Any]) -> None:
        aux_data = context_payload.get("auxData") or {}
        frame_id = aux_data.get("frameId")
        frame = self._frames.get(frame_id) if frame_id else None
        context = ExecutionContext(self._client, context_payload, frame)
        self._contexts[context_payload["id"]] = context
        if frame is not None and aux_data.get("isDefault"):
            frame._set_default_context(context)
        self.emit(FrameManagerEvent.EXECUTION_CONTEXT_CREATED, context)

    def _on_execution_context_destroyed(self, context_id: int) -> None:
        context = self._contexts.pop(context_id, None)
        if context is None:
            return
        frame = context.frame
        if frame is not None and frame._current_context is context:
            frame._set_default_context(None)
        self.emit(FrameManagerEvent.EXECUTION_CONTEXT_DESTROYED, context)

    def _on_execution_contexts_cleared(self) -> None:
        for context in self._contexts.values():
            frame = context.frame
            if frame is not None and frame._current_context is context:
                frame._set_default_context(None)
        self._contexts.clear()

    def _remove_frames_recursively(self, frame: "Frame") -> None:
        for child in frame.child_frames:
            self._remove_frames_recursively(child)
        frame._detach()
        self._frames.pop(frame.id, None)
        self.emit(FrameManagerEvent.FRAME_DETACHED, frame)


class Frame:
    """
    A frame of the page.

    Holds the frame's lifecycle state and its default execution context, and
    offers DOM queries, evaluation and waits scoped to the frame.
    """

    def __init__(self, frame_manager: FrameManager, client: Any, parent_frame: Optional["Frame"], frame_id: str):
        self._frame_manager = frame_manager
        self._client = client
        self._parent_frame = parent_frame
        self._id = frame_id
        self._url = ""
        self._name = ""
        self._loader_id = ""
        self._detached = False
        self._lifecycle_events: Set[str] = set()
        self._child_frames: Set["Frame"] = set()
        self._wait_tasks: Set[WaitTask] = set()
        self._current_context: Optional[ExecutionContext] = None
        self._context_future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._document: Optional[ElementHandle] = None
        if parent_frame is not None:
            parent_frame._child_frames.add(self)

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    @property
    def parent_frame(self) -> Optional["Frame"]:
        return self._parent_frame

    @property
    def child_frames(self) -> List["Frame"]:
        return list(self._child_frames)

    def is_detached(self) -> bool:
        return self._detached

    @property
    def lifecycle_events(self) -> Set[str]:
        return set(self._lifecycle_events)

    def _set_default_context(self, context: Optional[ExecutionContext]) -> None:
        self._document = None
        self._current_context = context
        if self._context_future.done():
            self._context_future = asyncio.get_running_loop().create_future()
        if context is None:
            return
        self._context_future.set_result(context)
        for wait_task in list(self._wait_tasks):
            schedule(wait_task.rerun(), name="wait task rerun")

    async def execution_context(self) -> ExecutionContext:
        """Wait for and return the default execution context of the frame."""
        if self._detached:
            raise PageError(f"Execution context is not available in detached frame \"{self._url}\"")
        return await self._context_future

    async def evaluate_handle(self, page_function: PageFunction, *args: Any) -> JSHandle:
        context = await self.execution_context()
        return await context.evaluate_handle(page_function, *args)

    async def evaluate(self, page_function: PageFunction, *args: Any) -> Any:
        context = await self.execution_context()
        return await context.evaluate(page_function, *args)

    async def _get_document(self) -> ElementHandle:
        if self._document is None:
            context = await self.execution_context()
            document = await context.evaluate_handle("document")
            self._document = document.as_element()
        return self._document

    async def query_selector(self, selector: str) -> Optional[ElementHandle]:
        document = await self._get_document()
        return await document.query_selector(selector)

    async def query_selector_all(self, selector: str) -> List[ElementHandle]:
        document = await self._get_document()
        return await document.query_selector_all(selector)

    async def xpath(self, expression: str) -> List[ElementHandle]:
        document = await self._get_document()
        return await document.xpath(expression)

    async def query_selector_eval(self, selector: str, page_function: PageFunction, *args: Any) -> Any:
        document = await self._get_document()
        return await document.query_selector_eval(selector, page_function, *args)

    async def query_selector_all_eval(self, selector: str, page_function: PageFunction, *args: Any) -> Any:
        document = await self._get_document()
        return await document.query_selector_all_eval(selector, page_function, *args)

    async def content(self) -> str:
        """Get the full HTML of the frame, doctype included."""
        return await self.evaluate(
            """() => {
                let content = '';
                if (document.doctype)
                    content = new XMLSerializer().serializeToString(document.doctype);
                if (document.documentElement)
                    content += document.documentElement.outerHTML;
                return content;
            }"""
        )

    async def set_content(
        self,
        html: str,
        timeout: Optional[float] = None,
        wait_until: Union[None, str, Iterable[str]] = None,
    ) -> None:
        """Replace the frame document and wait for the lifecycle milestones."""
        timeout = self._frame_manager._timeout_settings.navigation_timeout(timeout)
        await self.evaluate(
            """html => {
                document.open();
                document.write(html);
                document.close();
            }""",
            html,
        )
        watcher = LifecycleWatcher(
            self._frame_manager, self, wait_until, timeout, self._frame_manager._close_signal
        )
        try:
            await watcher.race(watcher.lifecycle_future)
        finally:
            watcher.dispose()

    async def title(self) -> str:
        return await self.evaluate("() => document.title")

    async def _element(self, selector: str) -> ElementHandle:
        handle = await self.query_selector(selector)
        if handle is None:
            raise ElementNotFoundError(f"No node found for selector: {selector}")
        return handle

    async def click(self, selector: str, button: str = "left", click_count: int = 1, delay: float = 0) -> None:
        handle = await self._element(selector)
        try:
            await handle.click(button=button, click_count=click_count, delay=delay)
        finally:
            await handle.dispose()

    async def focus(self, selector: str) -> None:
        handle = await self._element(selector)
        try:
            await handle.focus()
        finally:
            await handle.dispose()

    async def hover(self, selector: str) -> None:
        handle = await self._element(selector)
        try:
            await handle.hover()
        finally:
            await handle.dispose()

    async def select(self, selector: str, *values: str) -> List[str]:
        handle = await self._element(selector)
        try:
            return await handle.select(*values)
        finally:
            await handle.dispose()

    async def tap(self, selector: str) -> None:
        handle = await self._element(selector)
        try:
            await handle.tap()
        finally:
            await handle.dispose()

    async def type(self, selector: str, text: str, delay: float = 0) -> None:
        handle = await self._element(selector)
        try:
            await handle.type(text, delay=delay)
        finally:
            await handle.dispose()

    async def wait_for_selector(
        self, selector: str, visible: bool = False, hidden: bool = False, timeout: Optional[float] = None
    ) -> Optional[ElementHandle]:
        """
        Wait until an element matching a CSS selector appears.

        Args:
            selector: CSS selector
            visible: Also wait for the element to be visible
            hidden: Wait for the element to be hidden or absent instead
            timeout: Seconds, None for the page default, 0 for no timeout

        Returns:
            The element, or None when waiting for it to be hidden

        Raises:
            TimeoutError: If the condition is not met in time
        """
        return await self._wait_for_selector_or_xpath(selector, False, visible, hidden, timeout)

    async def wait_for_xpath(
        self, xpath: str, visible: bool = False, hidden: bool = False, timeout: Optional[float] = None
    ) -> Optional[ElementHandle]:
        """Wait until an element matching an XPath expression appears."""
        return await self._wait_for_selector_or_xpath(xpath, True, visible, hidden, timeout)

    async def _wait_for_selector_or_xpath(
        self, selector_or_xpath: str, is_xpath: bool, visible: bool, hidden: bool, timeout: Optional[float]
    ) -> Optional[ElementHandle]:
        timeout = self._frame_manager._timeout_settings.timeout(timeout)
        polling = "raf" if visible or hidden else "mutation"
        kind = "XPath" if is_xpath else "selector"
        title = f'{kind} "{selector_or_xpath}"{" to be hidden" if hidden else ""}'
        wait_task = WaitTask(
            self,
            JSFunction(WAIT_FOR_SELECTOR_OR_XPATH),
            title,
            polling,
            timeout,
            self._frame_manager._close_signal,
            selector_or_xpath,
            is_xpath,
            visible,
            hidden,
        )
        handle = await wait_task
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        return element

    async def wait_for_function(
        self,
        page_function: PageFunction,
        *args: Any,
        polling: Union[str, float] = "raf",
        timeout: Optional[float] = None,
    ) -> JSHandle:
        """
        Wait until a function (or expression) returns a truthy value in the frame.

        Args:
            page_function: Function source or expression
            *args: Arguments passed to the function
            polling: 'raf', 'mutation' or an interval in seconds
            timeout: Seconds, None for the page default, 0 for no timeout

        Returns:
            Handle to the truthy value
        """
        timeout = self._frame_manager._timeout_settings.timeout(timeout)
        return await WaitTask(
            self,
            to_page_function(page_function),
            "function",
            polling,
            timeout,
            self._frame_manager._close_signal,
            *args,
        )

    def _navigated(self, frame_payload: Dict[str, Any]) -> None:
        self._name = frame_payload.get("name", "")
        self._url = frame_payload.get("url", "") + frame_payload.get("urlFragment", "")
        self._loader_id = frame_payload.get("loaderId", self._loader_id)

    def _navigated_within_document(self, url: str) -> None:
        self._url = url

    def _on_lifecycle_event(self, loader_id: str, name: str) -> None:
        if name == "init":
            self._loader_id = loader_id
            self._lifecycle_events.clear()
        self._lifecycle_events.add(name)

    def _on_loading_stopped(self) -> None:
        self._lifecycle_events.add("DOMContentLoaded")
        self._lifecycle_events.add("load")

    def _detach(self) -> None:
        self._detached = True
        for wait_task in list(self._wait_tasks):
            wait_task.terminate(PageError("Waiting failed: frame got detached."))
        if self._parent_frame is not None:
            self._parent_frame._child_frames.discard(self)
        self._parent_frame = None

    def __repr__(self) -> str:
        return f"<Frame {self._id} {self._url!r}>"
