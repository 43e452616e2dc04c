"""
Page controller: drives a single browser tab over a CDP session.
"""
from __future__ import annotations

import asyncio
import base64
import inspect
import json
import logging
import math
import mimetypes
import traceback
import weakref
from collections import deque
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Deque,
    Dict,
    Iterable,
    List,
    Optional,
    TypeVar,
    Union,
)

from cdp_page.core.events import EventEmitter, SessionEvent, schedule
from cdp_page.core.exceptions import CDPProtocolError

from .dialog import Dialog
from .emulation import EmulationManager
from .events import FrameManagerEvent, NetworkEvent, PageEvent
from .exceptions import (
    PageError,
    TargetClosedError,
    TargetCrashedError,
    UsageError,
)
from .file_chooser import FileChooser
from .frame_manager import Frame, FrameManager
from .helpers import (
    CloseSignal,
    JSExpression,
    JSFunction,
    PageFunction,
    evaluation_string,
    get_exception_message,
    is_js_function,
    release_object,
    to_page_function,
    value_from_remote_object,
    wait_for_event,
    wait_with_timeout,
)
from .input import Keyboard, Mouse, Touchscreen
from .js_handle import ElementHandle, JSHandle, create_js_handle
from .lifecycle import expected_lifecycle
from .network import Request, Response
from .task_queue import TaskQueue
from .timeout_settings import TimeoutSettings
from .worker import Worker

if TYPE_CHECKING:
    from .browser import Browser, BrowserContext, Target

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUPPORTED_METRICS = (
    "Timestamp",
    "Documents",
    "Frames",
    "JSEventListeners",
    "Nodes",
    "LayoutCount",
    "RecalcStyleCount",
    "LayoutDuration",
    "RecalcStyleDuration",
    "ScriptDuration",
    "TaskDuration",
    "JSHeapUsedSize",
    "JSHeapTotalSize",
)

# Paper sizes in inches
PAPER_FORMATS = {
    "letter": {"width": 8.5, "height": 11},
    "legal": {"width": 8.5, "height": 14},
    "tabloid": {"width": 11, "height": 17},
    "ledger": {"width": 17, "height": 11},
    "a0": {"width": 33.1, "height": 46.8},
    "a1": {"width": 23.4, "height": 33.1},
    "a2": {"width": 16.54, "height": 23.4},
    "a3": {"width": 11.7, "height": 16.54},
    "a4": {"width": 8.27, "height": 11.7},
    "a5": {"width": 5.83, "height": 8.27},
    "a6": {"width": 4.13, "height": 5.83},
}

UNIT_TO_PIXELS = {"px": 1, "in": 96, "cm": 37.8, "mm": 3.78}

ADD_PAGE_BINDING = """
function addPageBinding(type, bindingName) {
  const binding = window[bindingName];
  window[bindingName] = (...args) => {
    const me = window[bindingName];
    let callbacks = me.callbacks;
    if (!callbacks) {
      callbacks = new Map();
      me.callbacks = callbacks;
    }
    const seq = (me.lastSeq || 0) + 1;
    me.lastSeq = seq;
    const promise = new Promise((resolve, reject) => callbacks.set(seq, {resolve, reject}));
    binding(JSON.stringify({type, name: bindingName, seq, args}));
    return promise;
  };
}
"""

DELIVER_RESULT = """
function deliverResult(name, seq, result) {
  window[name].callbacks.get(seq).resolve(result);
  window[name].callbacks.delete(seq);
}
"""

DELIVER_ERROR = """
function deliverError(name, seq, message, stack) {
  const error = new Error(message);
  error.stack = stack;
  window[name].callbacks.get(seq).reject(error);
  window[name].callbacks.delete(seq);
}
"""


def convert_print_parameter_to_inches(parameter: Union[None, int, float, str]) -> Optional[float]:
    """
    Convert a PDF size parameter into inches.

    Args:
        parameter: Pixels as a number, or a string with a px/in/cm/mm suffix

    Returns:
        The size in inches, or None if parameter is None

    Raises:
        UsageError: If the value cannot be parsed
    """
    if parameter is None:
        return None
    if isinstance(parameter, (int, float)) and not isinstance(parameter, bool):
        pixels = parameter
    elif isinstance(parameter, str):
        unit = parameter[-2:].lower()
        if unit in UNIT_TO_PIXELS:
            value_text = parameter[:-2]
        else:
            unit = "px"
            value_text = parameter
        try:
            value = float(value_text)
        except ValueError:
            raise UsageError(f"Failed to parse parameter value: {parameter}")
        pixels = value * UNIT_TO_PIXELS[unit]
    else:
        raise UsageError(f"pdf() cannot handle parameter type: {type(parameter).__name__}")
    return pixels / 96


def _console_text(handle: JSHandle) -> str:
    remote = handle._remote_object
    if remote.get("objectId"):
        return handle.to_string()
    if remote.get("type") == "undefined":
        return "undefined"
    value = value_from_remote_object(remote)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConsoleMessage:
    """A console message dispatched through the ``console`` event."""

    def __init__(
        self,
        type: str,
        text: str,
        args: Optional[List[JSHandle]] = None,
        location: Optional[Dict[str, Any]] = None,
    ):
        self._type = type
        self._text = text
        self._args = args or []
        self._location = location or {}

    @property
    def type(self) -> str:
        return self._type

    @property
    def text(self) -> str:
        return self._text

    @property
    def args(self) -> List[JSHandle]:
        return list(self._args)

    @property
    def location(self) -> Dict[str, Any]:
        return dict(self._location)

    def __repr__(self) -> str:
        return f"<ConsoleMessage {self._type}: {self._text!r}>"


class Page(EventEmitter):
    """
    Manages a browser page/tab via CDP.

    Wraps a protocol session bound to one page target. Imperative calls are
    turned into protocol commands, and protocol notifications into ``PageEvent``
    events. Every wait races its completion against a timer and the page close
    signal; once the page closes or crashes, pending waits fail with
    ``TargetClosedError`` and new calls fail before sending anything.

    Use ``await Page.create(...)`` rather than the constructor.
    """

    def __init__(
        self,
        client: Any,
        target_id: str,
        browser: Optional["Browser"] = None,
        ignore_https_errors: bool = False,
        default_timeout: Optional[float] = None,
        navigation_timeout: Optional[float] = None,
    ) -> None:
        super().__init__()
        self._client = client
        self._target_id = target_id
        self._browser_ref = weakref.ref(browser) if browser is not None else None
        self._closed = False
        self._close_emitted = False
        self._close_error: Optional[Exception] = None
        self._close_signal = CloseSignal()
        self._timeout_settings = TimeoutSettings(default_timeout, navigation_timeout)
        self._keyboard = Keyboard(client)
        self._mouse = Mouse(client, self._keyboard)
        self._touchscreen = Touchscreen(client, self._keyboard)
        self._frame_manager = FrameManager(
            client, self, ignore_https_errors, self._timeout_settings, self._close_signal
        )
        self._emulation_manager = EmulationManager(client)
        self._capture_queue = TaskQueue()
        self._page_bindings: Dict[str, Callable[..., Any]] = {}
        self._javascript_enabled = True
        self._viewport: Optional[Dict[str, Any]] = None
        self._workers: Dict[str, Worker] = {}
        self._file_chooser_interceptors: Deque[asyncio.Future] = deque()
        self._file_chooser_interception_enabled = False

        frame_manager = self._frame_manager
        frame_manager.on(FrameManagerEvent.FRAME_ATTACHED, lambda frame: self.emit(PageEvent.FRAME_ATTACHED, frame))
        frame_manager.on(FrameManagerEvent.FRAME_DETACHED, lambda frame: self.emit(PageEvent.FRAME_DETACHED, frame))
        frame_manager.on(FrameManagerEvent.FRAME_NAVIGATED, lambda frame: self.emit(PageEvent.FRAME_NAVIGATED, frame))

        network_manager = frame_manager.network_manager
        network_manager.on(NetworkEvent.REQUEST, lambda request: self.emit(PageEvent.REQUEST, request))
        network_manager.on(NetworkEvent.RESPONSE, lambda response: self.emit(PageEvent.RESPONSE, response))
        network_manager.on(NetworkEvent.REQUEST_FAILED, lambda request: self.emit(PageEvent.REQUEST_FAILED, request))
        network_manager.on(NetworkEvent.REQUEST_FINISHED, lambda request: self.emit(PageEvent.REQUEST_FINISHED, request))

        client.on("Target.attachedToTarget", self._on_attached_to_target)
        client.on("Target.detachedFromTarget", self._on_detached_from_target)
        client.on("Page.domContentEventFired", lambda event: self.emit(PageEvent.DOMCONTENTLOADED))
        client.on("Page.loadEventFired", lambda event: self.emit(PageEvent.LOAD))
        client.on("Runtime.consoleAPICalled", self._on_console_api)
        client.on("Runtime.bindingCalled", self._on_binding_called)
        client.on("Page.javascriptDialogOpening", self._on_dialog)
        client.on("Runtime.exceptionThrown", lambda event: self._handle_exception(event["exceptionDetails"]))
        client.on("Inspector.targetCrashed", lambda event: self._on_target_crashed())
        client.on("Performance.metrics", self._emit_metrics)
        client.on("Log.entryAdded", self._on_log_entry_added)
        client.on("Page.fileChooserOpened", self._on_file_chooser)
        client.on(SessionEvent.DISCONNECTED, lambda: self._did_close())

    @classmethod
    async def create(
        cls,
        client: Any,
        target_id: str,
        browser: Optional["Browser"] = None,
        ignore_https_errors: bool = False,
        default_viewport: Optional[Dict[str, Any]] = None,
        default_timeout: Optional[float] = None,
        navigation_timeout: Optional[float] = None,
    ) -> "Page":
        """
        Create a page and enable the protocol domains it depends on.

        Args:
            client: Session bound to the page target
            target_id: Target id of the page
            browser: Owning browser, held weakly
            ignore_https_errors: Ignore certificate errors
            default_viewport: Viewport applied before the page is returned
            default_timeout: Default timeout in seconds for waits
            navigation_timeout: Default timeout in seconds for navigations

        Returns:
            The initialized page
        """
        page = cls(client, target_id, browser, ignore_https_errors, default_timeout, navigation_timeout)
        await page._initialize()
        if default_viewport:
            await page.set_viewport(default_viewport)
        return page

    async def _initialize(self) -> None:
        await asyncio.gather(
            self._frame_manager.initialize(),
            self._client.send(
                "Target.setAutoAttach",
                {"autoAttach": True, "waitForDebuggerOnStart": False, "flatten": True},
            ),
            self._client.send("Performance.enable"),
            self._client.send("Log.enable"),
        )

    async def __aenter__(self) -> "Page":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Lifecycle

    def _ensure_open(self) -> None:
        if self._close_error is not None:
            raise type(self._close_error)(*self._close_error.args)

    def _terminate(self, error: Exception) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_error = error
        self._close_signal.fire(error)
        self._capture_queue.close(error)

    def _did_close(self) -> None:
        if self._close_emitted:
            return
        self._close_emitted = True
        self._terminate(TargetClosedError("Target closed"))
        self.emit(PageEvent.CLOSE)

    def _on_target_crashed(self) -> None:
        logger.error(f"Page {self._target_id} crashed")
        self._terminate(TargetCrashedError("Page crashed!"))
        self.emit(PageEvent.ERROR, TargetCrashedError("Page crashed!"))

    async def _race_close(self, awaitable: Awaitable[T]) -> T:
        return await wait_with_timeout(awaitable, None, "", self._close_signal)

    async def close(self, run_before_unload: bool = False) -> None:
        """
        Close the page.

        Args:
            run_before_unload: Run beforeunload handlers; the page may stay open
        """
        if self._close_emitted or isinstance(self._close_error, TargetCrashedError):
            return
        if run_before_unload:
            self._ensure_open()
            await self._client.send("Page.close")
            return
        connection = self._client.connection
        try:
            if connection is not None:
                await connection.send_command("Target.closeTarget", {"targetId": self._target_id})
        finally:
            self._did_close()

    def is_closed(self) -> bool:
        return self._closed

    # Accessors

    @property
    def client(self) -> Any:
        return self._client

    @property
    def target_id(self) -> str:
        return self._target_id

    @property
    def browser(self) -> Optional["Browser"]:
        if self._browser_ref is None:
            return None
        return self._browser_ref()

    @property
    def target(self) -> Optional["Target"]:
        browser = self.browser
        if browser is None:
            return None
        return browser.target(self._target_id)

    @property
    def browser_context(self) -> Optional["BrowserContext"]:
        target = self.target
        return target.browser_context if target is not None else None

    @property
    def main_frame(self) -> Optional[Frame]:
        return self._frame_manager.main_frame

    @property
    def frames(self) -> List[Frame]:
        return self._frame_manager.frames()

    @property
    def workers(self) -> List[Worker]:
        return list(self._workers.values())

    @property
    def keyboard(self) -> Keyboard:
        return self._keyboard

    @property
    def mouse(self) -> Mouse:
        return self._mouse

    @property
    def touchscreen(self) -> Touchscreen:
        return self._touchscreen

    @property
    def viewport(self) -> Optional[Dict[str, Any]]:
        return dict(self._viewport) if self._viewport is not None else None

    @property
    def is_javascript_enabled(self) -> bool:
        return self._javascript_enabled

    @property
    def url(self) -> str:
        frame = self.main_frame
        return frame.url if frame is not None else ""

    # Protocol event handlers

    def _on_attached_to_target(self, event: Dict[str, Any]) -> None:
        target_info = event["targetInfo"]
        session_id = event["sessionId"]
        if target_info.get("type") != "worker":
            schedule(
                self._client.send("Target.detachFromTarget", {"sessionId": session_id}),
                name="Target.detachFromTarget",
            )
            return
        connection = self._client.connection
        session = connection.session(session_id) if connection is not None else None
        if session is None:
            logger.debug(f"No session for attached worker {target_info.get('url')}")
            return
        worker = Worker(session, target_info.get("url", ""), self._add_console_message, self._handle_exception)
        self._workers[session_id] = worker
        self.emit(PageEvent.WORKER_CREATED, worker)

    def _on_detached_from_target(self, event: Dict[str, Any]) -> None:
        worker = self._workers.pop(event["sessionId"], None)
        if worker is not None:
            self.emit(PageEvent.WORKER_DESTROYED, worker)

    def _on_log_entry_added(self, event: Dict[str, Any]) -> None:
        entry = event["entry"]
        for arg in entry.get("args", []):
            schedule(release_object(self._client, arg), name="Runtime.releaseObject")
        if entry.get("source") == "worker":
            return
        self.emit(
            PageEvent.CONSOLE,
            ConsoleMessage(
                entry["level"],
                entry.get("text", ""),
                [],
                {"url": entry.get("url"), "lineNumber": entry.get("lineNumber")},
            ),
        )

    def _on_console_api(self, event: Dict[str, Any]) -> None:
        context_id = event.get("executionContextId", 0)
        if context_id == 0:
            # Messages from DevTools or extensions have no page context
            return
        context = self._frame_manager.execution_context_by_id(context_id)
        if context is None:
            logger.debug(f"Console message for unknown execution context {context_id}")
            return
        args = [create_js_handle(context, arg) for arg in event.get("args", [])]
        self._add_console_message(event["type"], args, event.get("stackTrace"))

    def _add_console_message(
        self, type: str, args: List[JSHandle], stack_trace: Optional[Dict[str, Any]]
    ) -> None:
        if not self.listener_count(PageEvent.CONSOLE):
            for arg in args:
                schedule(arg.dispose(), name="JSHandle.dispose")
            return
        location: Dict[str, Any] = {}
        if stack_trace and stack_trace.get("callFrames"):
            call_frame = stack_trace["callFrames"][0]
            location = {
                "url": call_frame.get("url"),
                "lineNumber": call_frame.get("lineNumber"),
                "columnNumber": call_frame.get("columnNumber"),
            }
        text = " ".join(_console_text(arg) for arg in args)
        self.emit(PageEvent.CONSOLE, ConsoleMessage(type, text, args, location))

    def _on_dialog(self, event: Dict[str, Any]) -> None:
        dialog = Dialog(self._client, event["type"], event.get("message", ""), event.get("defaultPrompt", ""))
        self.emit(PageEvent.DIALOG, dialog)

    def _handle_exception(self, exception_details: Dict[str, Any]) -> None:
        self.emit(PageEvent.PAGEERROR, PageError(get_exception_message(exception_details)))

    def _emit_metrics(self, event: Dict[str, Any]) -> None:
        self.emit(
            PageEvent.METRICS,
            {"title": event.get("title"), "metrics": self._build_metrics_object(event.get("metrics", []))},
        )

    @staticmethod
    def _build_metrics_object(metrics: Iterable[Dict[str, Any]]) -> Dict[str, float]:
        return {
            metric["name"]: metric["value"]
            for metric in metrics
            if metric["name"] in SUPPORTED_METRICS
        }

    def _on_binding_called(self, event: Dict[str, Any]) -> None:
        try:
            payload = json.loads(event["payload"])
        except (KeyError, ValueError) as e:
            logger.debug(f"Ignoring malformed binding payload: {e}")
            return
        if payload.get("type") != "exposedFun":
            return
        name = payload.get("name")
        if name not in self._page_bindings:
            return
        schedule(
            self._deliver_binding_result(
                name, payload["seq"], payload.get("args", []), event["executionContextId"]
            ),
            name=f"binding {name}",
        )

    async def _deliver_binding_result(self, name: str, seq: int, args: List[Any], context_id: int) -> None:
        handler = self._page_bindings[name]
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                result = await result
            expression = evaluation_string(DELIVER_RESULT, name, seq, result)
        except Exception as e:
            expression = evaluation_string(DELIVER_ERROR, name, seq, str(e), traceback.format_exc())
        if self._closed:
            return
        try:
            await self._client.send("Runtime.evaluate", {"expression": expression, "contextId": context_id})
        except CDPProtocolError as e:
            logger.debug(f"Failed to deliver result of binding {name}: {e}")

    def _on_file_chooser(self, event: Dict[str, Any]) -> None:
        while self._file_chooser_interceptors and self._file_chooser_interceptors[0].done():
            self._file_chooser_interceptors.popleft()
        if not self._file_chooser_interceptors:
            logger.debug("File chooser opened with no pending interceptor")
            return
        future = self._file_chooser_interceptors.popleft()
        schedule(self._resolve_file_chooser(future, event), name="file chooser")

    async def _resolve_file_chooser(self, future: asyncio.Future, event: Dict[str, Any]) -> None:
        try:
            frame = self._frame_manager.frame(event.get("frameId")) or self.main_frame
            context = await frame.execution_context()
            result = await self._client.send(
                "DOM.resolveNode",
                {"backendNodeId": event["backendNodeId"], "executionContextId": context._context_id},
            )
            element = create_js_handle(context, result["object"])
        except Exception as e:
            if not future.done():
                future.set_exception(e)
            return
        if not future.done():
            future.set_result(FileChooser(element, event))
        else:
            await element.dispose()

    # Navigation

    async def goto(
        self,
        url: str,
        referer: Optional[str] = None,
        timeout: Optional[float] = None,
        wait_until: Union[None, str, Iterable[str]] = None,
    ) -> Optional[Response]:
        """
        Navigate to a URL.

        Args:
            url: URL to navigate to
            referer: Referer header value
            timeout: Seconds, None for the default navigation timeout, 0 for none
            wait_until: 'load', 'domcontentloaded', 'networkidle0',
                'networkidle2', or a list of them

        Returns:
            The main resource response, None for same-document navigations

        Raises:
            NavigationError: If navigation fails or the frame detaches
            TimeoutError: If the milestones are not reached in time
        """
        self._ensure_open()
        return await self._frame_manager.navigate_frame(self.main_frame, url, referer, timeout, wait_until)

    async def wait_for_navigation(
        self, timeout: Optional[float] = None, wait_until: Union[None, str, Iterable[str]] = None
    ) -> Optional[Response]:
        """Wait for the main frame to navigate, whoever started it."""
        self._ensure_open()
        return await self._frame_manager.wait_for_frame_navigation(self.main_frame, timeout, wait_until)

    async def _navigate_with(
        self,
        action: Awaitable[Any],
        timeout: Optional[float],
        wait_until: Union[None, str, Iterable[str]],
    ) -> Optional[Response]:
        navigation = asyncio.ensure_future(self.wait_for_navigation(timeout=timeout, wait_until=wait_until))
        try:
            await self._race_close(action)
        except BaseException:
            if navigation.done() and not navigation.cancelled():
                navigation.exception()
            else:
                navigation.cancel()
            raise
        return await navigation

    async def reload(
        self, timeout: Optional[float] = None, wait_until: Union[None, str, Iterable[str]] = None
    ) -> Optional[Response]:
        self._ensure_open()
        expected_lifecycle(wait_until)
        return await self._navigate_with(self._client.send("Page.reload"), timeout, wait_until)

    async def go_back(
        self, timeout: Optional[float] = None, wait_until: Union[None, str, Iterable[str]] = None
    ) -> Optional[Response]:
        """Navigate back in history; returns None if there is no previous entry."""
        return await self._go(-1, timeout, wait_until)

    async def go_forward(
        self, timeout: Optional[float] = None, wait_until: Union[None, str, Iterable[str]] = None
    ) -> Optional[Response]:
        """Navigate forward in history; returns None if there is no next entry."""
        return await self._go(1, timeout, wait_until)

    async def _go(
        self, delta: int, timeout: Optional[float], wait_until: Union[None, str, Iterable[str]]
    ) -> Optional[Response]:
        self._ensure_open()
        expected_lifecycle(wait_until)
        history = await self._race_close(self._client.send("Page.getNavigationHistory"))
        index = history["currentIndex"] + delta
        entries = history["entries"]
        if index < 0 or index >= len(entries):
            return None
        entry = entries[index]
        return await self._navigate_with(
            self._client.send("Page.navigateToHistoryEntry", {"entryId": entry["id"]}),
            timeout,
            wait_until,
        )

    async def set_content(
        self, html: str, timeout: Optional[float] = None, wait_until: Union[None, str, Iterable[str]] = None
    ) -> None:
        self._ensure_open()
        await self.main_frame.set_content(html, timeout=timeout, wait_until=wait_until)

    async def content(self) -> str:
        self._ensure_open()
        return await self._race_close(self.main_frame.content())

    async def title(self) -> str:
        self._ensure_open()
        return await self._race_close(self.main_frame.title())

    # Queries and evaluation

    async def query_selector(self, selector: str) -> Optional[ElementHandle]:
        self._ensure_open()
        return await self._race_close(self.main_frame.query_selector(selector))

    async def query_selector_all(self, selector: str) -> List[ElementHandle]:
        self._ensure_open()
        return await self._race_close(self.main_frame.query_selector_all(selector))

    async def xpath(self, expression: str) -> List[ElementHandle]:
        self._ensure_open()
        return await self._race_close(self.main_frame.xpath(expression))

    async def query_selector_eval(self, selector: str, page_function: PageFunction, *args: Any) -> Any:
        """
        Run a function on the first element matching a selector.

        Raises:
            ElementNotFoundError: If nothing matches
        """
        self._ensure_open()
        return await self._race_close(self.main_frame.query_selector_eval(selector, page_function, *args))

    async def query_selector_all_eval(self, selector: str, page_function: PageFunction, *args: Any) -> Any:
        """Run a function on the array of all elements matching a selector."""
        self._ensure_open()
        return await self._race_close(self.main_frame.query_selector_all_eval(selector, page_function, *args))

    J = query_selector
    JJ = query_selector_all
    Jx = xpath
    Jeval = query_selector_eval
    JJeval = query_selector_all_eval

    async def evaluate(self, page_function: PageFunction, *args: Any) -> Any:
        """
        Evaluate a function or expression in the main frame.

        Args:
            page_function: Function source, expression, JSFunction or JSExpression
            *args: JSON-serializable values or JSHandles passed to a function

        Returns:
            The result by value; remote promises are awaited

        Raises:
            EvaluationError: If the code throws in the page
            UsageError: If an argument or the result cannot be transferred
        """
        self._ensure_open()
        return await self._race_close(self.main_frame.evaluate(page_function, *args))

    async def evaluate_handle(self, page_function: PageFunction, *args: Any) -> JSHandle:
        """Evaluate in the main frame and return a handle to the result."""
        self._ensure_open()
        return await self._race_close(self.main_frame.evaluate_handle(page_function, *args))

    async def evaluate_on_new_document(self, page_function: PageFunction, *args: Any) -> str:
        """
        Run code in every new document before its own scripts.

        Returns:
            Identifier of the registered script
        """
        self._ensure_open()
        function = to_page_function(page_function)
        if isinstance(function, JSFunction):
            source = evaluation_string(function.source, *args)
        else:
            if args:
                raise UsageError("Arguments cannot be passed to a JavaScript expression")
            source = function.source
        result = await self._client.send("Page.addScriptToEvaluateOnNewDocument", {"source": source})
        return result.get("identifier", "")

    async def query_objects(self, prototype_handle: JSHandle) -> JSHandle:
        self._ensure_open()
        context = await self._race_close(self.main_frame.execution_context())
        return await context.query_objects(prototype_handle)

    # Interaction

    async def click(self, selector: str, button: str = "left", click_count: int = 1, delay: float = 0) -> None:
        self._ensure_open()
        await self._race_close(self.main_frame.click(selector, button=button, click_count=click_count, delay=delay))

    async def focus(self, selector: str) -> None:
        self._ensure_open()
        await self._race_close(self.main_frame.focus(selector))

    async def hover(self, selector: str) -> None:
        self._ensure_open()
        await self._race_close(self.main_frame.hover(selector))

    async def select(self, selector: str, *values: str) -> List[str]:
        self._ensure_open()
        return await self._race_close(self.main_frame.select(selector, *values))

    async def tap(self, selector: str) -> None:
        self._ensure_open()
        await self._race_close(self.main_frame.tap(selector))

    async def type(self, selector: str, text: str, delay: float = 0) -> None:
        self._ensure_open()
        await self._race_close(self.main_frame.type(selector, text, delay=delay))

    # Waits

    async def wait_for(
        self,
        selector_or_function_or_timeout: Union[str, float, JSFunction, JSExpression],
        *args: Any,
        visible: bool = False,
        hidden: bool = False,
        timeout: Optional[float] = None,
        polling: Union[str, float] = "raf",
    ) -> Optional[JSHandle]:
        """
        Dispatch to the matching wait based on the first argument.

        A number sleeps for that many seconds, a string starting with '//' is
        an XPath, other function source goes to wait_for_function, and any
        other string is a CSS selector.
        """
        target = selector_or_function_or_timeout
        if isinstance(target, (int, float)) and not isinstance(target, bool):
            self._ensure_open()
            await self._race_close(asyncio.sleep(target))
            return None
        if isinstance(target, (JSFunction, JSExpression)):
            return await self.wait_for_function(target, *args, polling=polling, timeout=timeout)
        if isinstance(target, str):
            if is_js_function(target):
                return await self.wait_for_function(target, *args, polling=polling, timeout=timeout)
            if target.startswith("//"):
                return await self.wait_for_xpath(target, visible=visible, hidden=hidden, timeout=timeout)
            return await self.wait_for_selector(target, visible=visible, hidden=hidden, timeout=timeout)
        raise UsageError(f"Unsupported target type: {type(target).__name__}")

    async def wait_for_selector(
        self, selector: str, visible: bool = False, hidden: bool = False, timeout: Optional[float] = None
    ) -> Optional[ElementHandle]:
        """
        Wait for an element matching a CSS selector.

        Args:
            selector: CSS selector
            visible: Also require the element to be visible
            hidden: Wait for the element to be hidden or absent instead
            timeout: Seconds, None for the default timeout, 0 for none

        Returns:
            The element, or None when waiting for it to be hidden
        """
        self._ensure_open()
        return await self.main_frame.wait_for_selector(selector, visible=visible, hidden=hidden, timeout=timeout)

    async def wait_for_xpath(
        self, xpath: str, visible: bool = False, hidden: bool = False, timeout: Optional[float] = None
    ) -> Optional[ElementHandle]:
        self._ensure_open()
        return await self.main_frame.wait_for_xpath(xpath, visible=visible, hidden=hidden, timeout=timeout)

    async def wait_for_function(
        self,
        page_function: PageFunction,
        *args: Any,
        polling: Union[str, float] = "raf",
        timeout: Optional[float] = None,
    ) -> JSHandle:
        self._ensure_open()
        return await self.main_frame.wait_for_function(page_function, *args, polling=polling, timeout=timeout)

    @staticmethod
    def _url_predicate(url_or_predicate: Union[str, Callable[[Any], bool]]) -> Callable[[Any], bool]:
        if isinstance(url_or_predicate, str):
            return lambda item: item.url == url_or_predicate
        if callable(url_or_predicate):
            return url_or_predicate
        raise UsageError("Expected a URL string or a predicate callable")

    async def wait_for_request(
        self, url_or_predicate: Union[str, Callable[[Request], bool]], timeout: Optional[float] = None
    ) -> Request:
        """
        Wait for a request issued after this call.

        Args:
            url_or_predicate: Exact URL, or a callable returning True for the wanted request
            timeout: Seconds, None for the default timeout, 0 for none
        """
        self._ensure_open()
        predicate = self._url_predicate(url_or_predicate)
        timeout = self._timeout_settings.timeout(timeout)
        return await wait_for_event(
            self._frame_manager.network_manager,
            NetworkEvent.REQUEST,
            predicate,
            timeout,
            f"Timeout of {timeout} seconds exceeded while waiting for request",
            self._close_signal,
        )

    async def wait_for_response(
        self, url_or_predicate: Union[str, Callable[[Response], bool]], timeout: Optional[float] = None
    ) -> Response:
        """Wait for a response received after this call."""
        self._ensure_open()
        predicate = self._url_predicate(url_or_predicate)
        timeout = self._timeout_settings.timeout(timeout)
        return await wait_for_event(
            self._frame_manager.network_manager,
            NetworkEvent.RESPONSE,
            predicate,
            timeout,
            f"Timeout of {timeout} seconds exceeded while waiting for response",
            self._close_signal,
        )

    async def wait_for_file_chooser(self, timeout: Optional[float] = None) -> FileChooser:
        """
        Wait for the page to open a file chooser.

        Must be called before the action that opens the chooser. Concurrent
        waits are served in call order.
        """
        self._ensure_open()
        timeout = self._timeout_settings.timeout(timeout)
        future = asyncio.get_running_loop().create_future()
        self._file_chooser_interceptors.append(future)
        try:
            if not self._file_chooser_interception_enabled:
                self._file_chooser_interception_enabled = True
                try:
                    await self._client.send("Page.setInterceptFileChooserDialog", {"enabled": True})
                except Exception:
                    self._file_chooser_interception_enabled = False
                    raise
            return await wait_with_timeout(
                future,
                timeout,
                f"Waiting for file chooser failed: timeout {timeout} seconds exceeded",
                self._close_signal,
            )
        finally:
            try:
                self._file_chooser_interceptors.remove(future)
            except ValueError:
                pass

    # Capture

    async def screenshot(
        self,
        path: Optional[str] = None,
        format: Optional[str] = None,
        quality: Optional[int] = None,
        full_page: bool = False,
        clip: Optional[Dict[str, float]] = None,
        omit_background: bool = False,
        encoding: str = "binary",
    ) -> Union[bytes, str]:
        """
        Take a screenshot of the page.

        Args:
            path: File to write the image to
            format: 'png' or 'jpeg'; inferred from path when omitted
            quality: JPEG quality between 0 and 100
            full_page: Capture the whole scrollable page
            clip: Region with x, y, width and height
            omit_background: Transparent background for PNG
            encoding: 'binary' or 'base64'

        Returns:
            Image bytes, or a base64 string
        """
        self._ensure_open()
        screenshot_type = None
        if format is not None:
            if format not in ("png", "jpeg"):
                raise UsageError(f"Unknown format value: {format}")
            screenshot_type = format
        elif path:
            mime_type, _ = mimetypes.guess_type(path)
            if mime_type == "image/png":
                screenshot_type = "png"
            elif mime_type == "image/jpeg":
                screenshot_type = "jpeg"
            else:
                raise UsageError(f"Unsupported screenshot mime type: {mime_type}")
        if screenshot_type is None:
            screenshot_type = "png"

        if quality is not None:
            if screenshot_type != "jpeg":
                raise UsageError(f"quality is unsupported for the {screenshot_type} screenshots")
            if not 0 <= quality <= 100:
                raise UsageError(f"Expected quality to be between 0 and 100, but found {quality}")
        if clip is not None and full_page:
            raise UsageError("clip and full_page are exclusive")
        if clip is not None and (clip.get("width") == 0 or clip.get("height") == 0):
            raise UsageError("clip width and height must be non-zero")
        if encoding not in ("binary", "base64"):
            raise UsageError(f"Unknown encoding: {encoding}")

        return await self._race_close(
            self._capture_queue.post_task(
                lambda: self._screenshot_task(
                    screenshot_type, quality, full_page, clip, omit_background, encoding, path
                )
            )
        )

    async def _screenshot_task(
        self,
        screenshot_type: str,
        quality: Optional[int],
        full_page: bool,
        clip: Optional[Dict[str, float]],
        omit_background: bool,
        encoding: str,
        path: Optional[str],
    ) -> Union[bytes, str]:
        await self._client.send("Target.activateTarget", {"targetId": self._target_id})
        if clip is not None:
            x = round(clip["x"])
            y = round(clip["y"])
            clip = {
                "x": x,
                "y": y,
                "width": round(clip["width"] + clip["x"] - x),
                "height": round(clip["height"] + clip["y"] - y),
                "scale": clip.get("scale", 1),
            }

        overrode_metrics = False
        try:
            if full_page:
                metrics = await self._client.send("Page.getLayoutMetrics")
                width = math.ceil(metrics["contentSize"]["width"])
                height = math.ceil(metrics["contentSize"]["height"])
                clip = {"x": 0, "y": 0, "width": width, "height": height, "scale": 1}
                viewport = self._viewport or {}
                if viewport.get("is_landscape"):
                    screen_orientation = {"angle": 90, "type": "landscapePrimary"}
                else:
                    screen_orientation = {"angle": 0, "type": "portraitPrimary"}
                overrode_metrics = True
                await self._client.send(
                    "Emulation.setDeviceMetricsOverride",
                    {
                        "mobile": viewport.get("is_mobile", False),
                        "width": width,
                        "height": height,
                        "deviceScaleFactor": viewport.get("device_scale_factor", 1),
                        "screenOrientation": screen_orientation,
                    },
                )

            transparent = omit_background and screenshot_type == "png"
            if transparent:
                await self._client.send(
                    "Emulation.setDefaultBackgroundColorOverride",
                    {"color": {"r": 0, "g": 0, "b": 0, "a": 0}},
                )
            try:
                params: Dict[str, Any] = {"format": screenshot_type}
                if quality is not None:
                    params["quality"] = quality
                if clip is not None:
                    params["clip"] = clip
                result = await self._client.send("Page.captureScreenshot", params)
            finally:
                if transparent and not self._closed:
                    await self._client.send("Emulation.setDefaultBackgroundColorOverride")
        finally:
            if overrode_metrics and not self._closed:
                if self._viewport is not None:
                    await self._emulation_manager.emulate_viewport(self._viewport)
                else:
                    await self._client.send("Emulation.clearDeviceMetricsOverride")

        buffer = base64.b64decode(result["data"])
        if path:
            with open(path, "wb") as f:
                f.write(buffer)
        if encoding == "base64":
            return result["data"]
        return buffer

    async def pdf(
        self,
        path: Optional[str] = None,
        scale: float = 1,
        display_header_footer: bool = False,
        header_template: str = "",
        footer_template: str = "",
        print_background: bool = False,
        landscape: bool = False,
        page_ranges: str = "",
        format: Optional[str] = None,
        width: Union[None, float, str] = None,
        height: Union[None, float, str] = None,
        prefer_css_page_size: bool = False,
        margin: Optional[Dict[str, Union[float, str]]] = None,
    ) -> bytes:
        """
        Print the page to PDF.

        Args:
            path: File to write the PDF to
            scale: Rendering scale
            display_header_footer: Print header and footer
            header_template: HTML template of the header
            footer_template: HTML template of the footer
            print_background: Print background graphics
            landscape: Landscape orientation
            page_ranges: Pages to print, e.g. '1-5, 8'
            format: Paper format such as 'A4' or 'Letter'; wins over width/height
            width: Paper width as pixels or a string with a px/in/cm/mm unit
            height: Paper height, same units as width
            prefer_css_page_size: Let CSS @page size win
            margin: Dict of top/right/bottom/left, same units as width

        Returns:
            PDF bytes
        """
        self._ensure_open()
        paper_width = 8.5
        paper_height = 11.0
        if format is not None:
            paper_format = PAPER_FORMATS.get(format.lower())
            if paper_format is None:
                raise UsageError(f"Unknown paper format: {format}")
            paper_width = paper_format["width"]
            paper_height = paper_format["height"]
        else:
            paper_width = convert_print_parameter_to_inches(width) or paper_width
            paper_height = convert_print_parameter_to_inches(height) or paper_height

        margin = margin or {}
        params = {
            "transferMode": "ReturnAsBase64",
            "landscape": landscape,
            "displayHeaderFooter": display_header_footer,
            "headerTemplate": header_template,
            "footerTemplate": footer_template,
            "printBackground": print_background,
            "scale": scale,
            "paperWidth": paper_width,
            "paperHeight": paper_height,
            "marginTop": convert_print_parameter_to_inches(margin.get("top")) or 0,
            "marginBottom": convert_print_parameter_to_inches(margin.get("bottom")) or 0,
            "marginLeft": convert_print_parameter_to_inches(margin.get("left")) or 0,
            "marginRight": convert_print_parameter_to_inches(margin.get("right")) or 0,
            "pageRanges": page_ranges,
            "preferCSSPageSize": prefer_css_page_size,
        }
        result = await self._race_close(
            self._capture_queue.post_task(lambda: self._client.send("Page.printToPDF", params))
        )
        buffer = base64.b64decode(result["data"])
        if path:
            with open(path, "wb") as f:
                f.write(buffer)
        return buffer

    # Configuration

    async def set_viewport(self, viewport: Dict[str, Any]) -> None:
        """
        Set the viewport.

        Args:
            viewport: Dict with width and height, plus optional
                device_scale_factor, is_mobile, has_touch and is_landscape
        """
        self._ensure_open()
        needs_reload = await self._emulation_manager.emulate_viewport(viewport)
        self._viewport = dict(viewport)
        if needs_reload:
            await self.reload()

    async def emulate(self, device: Dict[str, Any]) -> None:
        """Emulate a device given as a dict with 'viewport' and 'user_agent'."""
        self._ensure_open()
        await asyncio.gather(
            self.set_viewport(device["viewport"]),
            self.set_user_agent(device["user_agent"]),
        )

    async def set_user_agent(self, user_agent: str) -> None:
        self._ensure_open()
        await self._frame_manager.network_manager.set_user_agent(user_agent)

    async def set_extra_http_headers(self, headers: Dict[str, str]) -> None:
        self._ensure_open()
        await self._frame_manager.network_manager.set_extra_http_headers(headers)

    async def authenticate(self, credentials: Optional[Dict[str, str]]) -> None:
        self._ensure_open()
        await self._frame_manager.network_manager.authenticate(credentials)

    async def set_request_interception(self, value: bool) -> None:
        self._ensure_open()
        await self._frame_manager.network_manager.set_request_interception(value)

    async def set_offline_mode(self, enabled: bool) -> None:
        self._ensure_open()
        await self._frame_manager.network_manager.set_offline_mode(enabled)

    async def set_cache_enabled(self, enabled: bool = True) -> None:
        self._ensure_open()
        await self._frame_manager.network_manager.set_cache_enabled(enabled)

    async def cookies(self, *urls: str) -> List[Dict[str, Any]]:
        """Get cookies for the given URLs, or the current URL."""
        self._ensure_open()
        result = await self._client.send("Network.getCookies", {"urls": list(urls) or [self.url]})
        return result.get("cookies", [])

    async def delete_cookie(self, *cookies: Dict[str, Any]) -> None:
        self._ensure_open()
        page_url = self.url
        for cookie in cookies:
            item = dict(cookie)
            if "url" not in item and page_url.startswith("http"):
                item["url"] = page_url
            await self._client.send("Network.deleteCookies", item)

    async def set_cookie(self, *cookies: Dict[str, Any]) -> None:
        """
        Set cookies, defaulting their url to the current page.

        Raises:
            UsageError: On a blank or data: page without explicit url
        """
        self._ensure_open()
        page_url = self.url
        items = []
        for cookie in cookies:
            item = dict(cookie)
            if "url" not in item and page_url.startswith("http"):
                item["url"] = page_url
            if item.get("url") == "about:blank":
                raise UsageError(f'Blank page can not have cookie "{item.get("name")}"')
            if str(item.get("url", "")).startswith("data:"):
                raise UsageError(f'Data URL page can not have cookie "{item.get("name")}"')
            items.append(item)
        await self.delete_cookie(*items)
        if items:
            await self._client.send("Network.setCookies", {"cookies": items})

    async def set_javascript_enabled(self, enabled: bool) -> None:
        self._ensure_open()
        if self._javascript_enabled == enabled:
            return
        await self._client.send("Emulation.setScriptExecutionDisabled", {"value": not enabled})
        self._javascript_enabled = enabled

    async def set_bypass_csp(self, enabled: bool) -> None:
        self._ensure_open()
        await self._client.send("Page.setBypassCSP", {"enabled": enabled})

    async def emulate_media_type(self, media_type: Optional[str] = None) -> None:
        self._ensure_open()
        if media_type not in ("screen", "print", None):
            raise UsageError(f"Unsupported media type: {media_type}")
        await self._client.send("Emulation.setEmulatedMedia", {"media": media_type or ""})

    async def emulate_timezone(self, timezone_id: Optional[str] = None) -> None:
        self._ensure_open()
        try:
            await self._client.send("Emulation.setTimezoneOverride", {"timezoneId": timezone_id or ""})
        except CDPProtocolError as e:
            if "Invalid timezone" in e.message:
                raise UsageError(f"Invalid timezone ID: {timezone_id}")
            raise

    async def set_geolocation(self, longitude: float, latitude: float, accuracy: float = 0) -> None:
        """
        Override the geolocation.

        Raises:
            UsageError: If a coordinate is out of range
        """
        self._ensure_open()
        if not -180 <= longitude <= 180:
            raise UsageError(f"Invalid longitude {longitude}: precondition -180 <= LONGITUDE <= 180 failed.")
        if not -90 <= latitude <= 90:
            raise UsageError(f"Invalid latitude {latitude}: precondition -90 <= LATITUDE <= 90 failed.")
        if accuracy < 0:
            raise UsageError(f"Invalid accuracy {accuracy}: precondition 0 <= ACCURACY failed.")
        await self._client.send(
            "Emulation.setGeolocationOverride",
            {"longitude": longitude, "latitude": latitude, "accuracy": accuracy},
        )

    def set_default_timeout(self, timeout: float) -> None:
        """Set the default timeout in seconds for waits; 0 disables it."""
        self._timeout_settings.set_default_timeout(timeout)

    def set_default_navigation_timeout(self, timeout: float) -> None:
        """Set the default timeout in seconds for navigations; 0 disables it."""
        self._timeout_settings.set_default_navigation_timeout(timeout)

    async def expose_function(self, name: str, handler: Callable[..., Any]) -> None:
        """
        Expose a Python callable to the page as ``window[name]``.

        The page-side function returns a promise resolved with the handler's
        result, or rejected with its error. Async handlers are awaited.

        Raises:
            UsageError: If the name is already exposed
        """
        self._ensure_open()
        if name in self._page_bindings:
            raise UsageError(f'Failed to add page binding with name {name}: window["{name}"] already exists!')
        if not callable(handler):
            raise UsageError(f"Handler for {name} is not callable")
        self._page_bindings[name] = handler

        expression = evaluation_string(ADD_PAGE_BINDING, "exposedFun", name)
        try:
            await self._client.send("Runtime.addBinding", {"name": name})
            await self._client.send("Page.addScriptToEvaluateOnNewDocument", {"source": expression})
        except Exception:
            del self._page_bindings[name]
            raise
        await asyncio.gather(
            *(self._install_binding(frame, expression) for frame in self.frames)
        )

    async def _install_binding(self, frame: Frame, expression: str) -> None:
        context = frame._current_context
        if context is None:
            return
        try:
            await context.evaluate(JSExpression(expression))
        except Exception as e:
            logger.debug(f"Failed to install binding in frame {frame.id}: {e}")

    async def metrics(self) -> Dict[str, float]:
        """Get runtime metrics such as Nodes, JSHeapUsedSize and LayoutCount."""
        self._ensure_open()
        response = await self._client.send("Performance.getMetrics")
        return self._build_metrics_object(response.get("metrics", []))

    async def bring_to_front(self) -> None:
        self._ensure_open()
        await self._client.send("Page.bringToFront")

    def __repr__(self) -> str:
        return f"<Page {self._target_id} {self.url!r}>"
