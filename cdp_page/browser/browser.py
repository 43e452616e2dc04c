"""
Browser module for CDP Page.
Tracks the targets of a Chrome instance and creates pages for them.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import aiohttp

from cdp_page.core.connection import CDPConnection
from cdp_page.core.events import ConnectionEvent, EventEmitter, schedule
from cdp_page.core.exceptions import CDPConnectionError, CDPError
from cdp_page.core.protocol import CDPProtocol

from .events import BrowserEvent, PageEvent
from .exceptions import BrowserError, UsageError
from .helpers import wait_with_timeout
from .page import Page

if TYPE_CHECKING:
    from cdp_page.utils.config import BrowserConfig

logger = logging.getLogger(__name__)


class Target:
    """
    A browser target: a page, worker, service worker or other debuggable entity.
    """

    def __init__(self, browser: "Browser", target_info: Dict[str, Any], browser_context: "BrowserContext"):
        self._browser = browser
        self._target_info = target_info
        self._browser_context = browser_context
        self._target_id = target_info["targetId"]
        self._page_task: Optional[asyncio.Task] = None
        self._is_initialized = self.type != "page" or self.url != ""
        self._closed = False

    @property
    def target_id(self) -> str:
        return self._target_id

    @property
    def type(self) -> str:
        return self._target_info.get("type", "other")

    @property
    def url(self) -> str:
        return self._target_info.get("url", "")

    @property
    def browser(self) -> "Browser":
        return self._browser

    @property
    def browser_context(self) -> "BrowserContext":
        return self._browser_context

    @property
    def opener(self) -> Optional["Target"]:
        opener_id = self._target_info.get("openerId")
        if not opener_id:
            return None
        return self._browser.target(opener_id)

    async def page(self) -> Optional[Page]:
        """
        Get the page of this target, attaching to it on first use.

        Returns:
            The page, or None if the target is not a page
        """
        if self.type not in ("page", "background_page"):
            return None
        if self._page_task is None:
            self._page_task = asyncio.ensure_future(self._create_page())
        return await self._page_task

    def _materialized_page(self) -> Optional[Page]:
        task = self._page_task
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    async def _create_page(self) -> Page:
        browser = self._browser
        session = await browser.connection.create_session(self._target_id)
        return await Page.create(
            session,
            self._target_id,
            browser,
            ignore_https_errors=browser._ignore_https_errors,
            default_viewport=browser._default_viewport,
            default_timeout=browser._default_timeout,
            navigation_timeout=browser._navigation_timeout,
        )

    def _info_changed(self, target_info: Dict[str, Any]) -> bool:
        """Update the target info; returns True when the target just became initialized."""
        self._target_info = target_info
        if not self._is_initialized and (self.type != "page" or self.url != ""):
            self._is_initialized = True
            return True
        return False

    async def _announce_popup(self) -> None:
        opener = self.opener
        if opener is None or opener._page_task is None or self.type != "page":
            return
        opener_page = await opener._page_task
        if not opener_page.listener_count(PageEvent.POPUP):
            return
        popup = await self.page()
        opener_page.emit(PageEvent.POPUP, popup)

    def __repr__(self) -> str:
        return f"<Target {self.type} {self._target_id} {self.url!r}>"


class BrowserContext(EventEmitter):
    """
    A browser context; the default one, or an isolated incognito context.
    """

    def __init__(self, browser: "Browser", context_id: Optional[str] = None):
        super().__init__()
        self._browser = browser
        self._id = context_id

    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def browser(self) -> "Browser":
        return self._browser

    def is_incognito(self) -> bool:
        return self._id is not None

    def targets(self) -> List[Target]:
        return [target for target in self._browser.targets() if target.browser_context is self]

    async def pages(self) -> List[Page]:
        pages = await asyncio.gather(
            *(target.page() for target in self.targets() if target.type == "page")
        )
        return [page for page in pages if page is not None]

    async def wait_for_target(self, predicate: Callable[[Target], bool], timeout: float = 30.0) -> Target:
        return await self._browser.wait_for_target(
            lambda target: target.browser_context is self and predicate(target), timeout
        )

    async def new_page(self) -> Page:
        return await self._browser._create_page_in_context(self._id)

    async def close(self) -> None:
        """
        Dispose an incognito context together with its pages.

        Raises:
            UsageError: For the default context
        """
        if self._id is None:
            raise UsageError("Non-incognito profiles cannot be closed!")
        await self._browser._dispose_context(self._id)


class Browser(EventEmitter):
    """
    Chrome DevTools Protocol browser controller.

    Connects to a running Chrome over its remote debugging endpoint, keeps a
    registry of targets, and hands out ``Page`` objects for page targets.

    Args:
        host: The hostname where Chrome is running.
        port: The port number for Chrome's remote debugging protocol.
        max_retries: Maximum number of endpoint discovery attempts.
        ignore_https_errors: Ignore certificate errors in new pages.
        default_viewport: Viewport applied to new pages.
        default_timeout: Default wait timeout of new pages, in seconds.
        navigation_timeout: Default navigation timeout of new pages, in seconds.
        ws_endpoint: Browser WebSocket URL; skips endpoint discovery.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 9222,
        max_retries: int = 3,
        ignore_https_errors: bool = False,
        default_viewport: Optional[Dict[str, Any]] = None,
        default_timeout: Optional[float] = None,
        navigation_timeout: Optional[float] = None,
        ws_endpoint: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.max_retries = max_retries
        self.ws_endpoint = ws_endpoint
        self._ignore_https_errors = ignore_https_errors
        self._default_viewport = default_viewport
        self._default_timeout = default_timeout
        self._navigation_timeout = navigation_timeout
        self._connection: Optional[CDPConnection] = None
        self._targets: Dict[str, Target] = {}
        self._default_context = BrowserContext(self)
        self._contexts: Dict[str, BrowserContext] = {}
        self._closing = False

    @classmethod
    def from_config(cls, config: "BrowserConfig") -> "Browser":
        return cls(
            host=config.host,
            port=config.port,
            max_retries=config.max_retries,
            ignore_https_errors=config.ignore_https_errors,
            default_viewport=config.default_viewport,
            default_timeout=config.default_timeout,
            navigation_timeout=config.navigation_timeout,
            ws_endpoint=config.ws_endpoint,
        )

    @property
    def connection(self) -> CDPConnection:
        if self._connection is None:
            raise BrowserError("Browser is not connected")
        return self._connection

    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.connected

    async def connect(self) -> None:
        """
        Connect to Chrome DevTools and start target discovery.

        Raises:
            CDPConnectionError: If the endpoint cannot be reached
        """
        if self.is_connected():
            return
        if self.ws_endpoint:
            ws_url = CDPProtocol.parse_ws_url(self.ws_endpoint)
        else:
            ws_url = await self._get_ws_url()
        connection = CDPConnection(ws_url)
        await connection.connect()
        self._attach(connection)
        await connection.send_command("Target.setDiscoverTargets", {"discover": True})
        logger.info(f"Connected to Chrome at {ws_url}")

    def _attach(self, connection: CDPConnection) -> None:
        self._connection = connection
        connection.on("Target.targetCreated", self._on_target_created)
        connection.on("Target.targetDestroyed", self._on_target_destroyed)
        connection.on("Target.targetInfoChanged", self._on_target_info_changed)
        connection.on(ConnectionEvent.DISCONNECTED, lambda: self.emit(BrowserEvent.DISCONNECTED))

    async def _get_ws_url(self) -> str:
        """
        Get the WebSocket URL from Chrome's debugging interface.

        Raises:
            CDPConnectionError: If the URL could not be fetched after max retries
        """
        url = f"http://{self.host}:{self.port}/json/version"
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(url) as response:
                        data = await response.json(content_type=None)
                ws_url = data["webSocketDebuggerUrl"]
                if "localhost:9222" in ws_url:
                    ws_url = ws_url.replace("localhost:9222", f"{self.host}:{self.port}")
                return ws_url
            except (aiohttp.ClientError, KeyError, ValueError) as e:
                last_error = e
                if attempt < self.max_retries:
                    logger.warning(f"Connection attempt {attempt} failed, retrying...")
                    await asyncio.sleep(1)
        raise CDPConnectionError(
            f"Failed to get WebSocket URL after {self.max_retries} attempts: {last_error}"
        )

    async def __aenter__(self) -> "Browser":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Target registry

    def _context_for(self, context_id: Optional[str]) -> BrowserContext:
        if context_id and context_id in self._contexts:
            return self._contexts[context_id]
        return self._default_context

    def _on_target_created(self, event: Dict[str, Any]) -> None:
        target_info = event["targetInfo"]
        target = Target(self, target_info, self._context_for(target_info.get("browserContextId")))
        self._targets[target.target_id] = target
        if target._is_initialized:
            self._on_target_initialized(target)

    def _on_target_initialized(self, target: Target) -> None:
        self.emit(BrowserEvent.TARGET_CREATED, target)
        target.browser_context.emit(BrowserEvent.TARGET_CREATED, target)
        if target.opener is not None:
            schedule(target._announce_popup(), name="popup")

    def _on_target_destroyed(self, event: Dict[str, Any]) -> None:
        target = self._targets.pop(event["targetId"], None)
        if target is None:
            return
        target._closed = True
        if target._is_initialized:
            self.emit(BrowserEvent.TARGET_DESTROYED, target)
            target.browser_context.emit(BrowserEvent.TARGET_DESTROYED, target)

    def _on_target_info_changed(self, event: Dict[str, Any]) -> None:
        target_info = event["targetInfo"]
        target = self._targets.get(target_info["targetId"])
        if target is None:
            logger.debug(f"Info changed for unknown target {target_info['targetId']}")
            return
        previous_url = target.url
        was_initialized = target._is_initialized
        if target._info_changed(target_info):
            self._on_target_initialized(target)
        elif was_initialized and previous_url != target.url:
            self.emit(BrowserEvent.TARGET_CHANGED, target)
            target.browser_context.emit(BrowserEvent.TARGET_CHANGED, target)

    def targets(self) -> List[Target]:
        return [target for target in self._targets.values() if target._is_initialized]

    def target(self, target_id: str) -> Optional[Target]:
        return self._targets.get(target_id)

    async def wait_for_target(self, predicate: Callable[[Target], bool], timeout: float = 30.0) -> Target:
        """
        Wait for a target matching a predicate, existing or future.

        Args:
            predicate: Called with each target
            timeout: Seconds; 0 disables the timeout

        Raises:
            TimeoutError: If no target matches in time
        """
        for target in self.targets():
            if predicate(target):
                return target
        future = asyncio.get_running_loop().create_future()

        def check(target: Target) -> None:
            if not future.done() and predicate(target):
                future.set_result(target)

        subscriptions = [
            self.on(BrowserEvent.TARGET_CREATED, check),
            self.on(BrowserEvent.TARGET_CHANGED, check),
        ]
        try:
            return await wait_with_timeout(future, timeout, f"waiting for target failed: timeout {timeout} seconds exceeded")
        finally:
            for subscription in subscriptions:
                subscription.dispose()

    # Pages and contexts

    async def new_page(self) -> Page:
        """Create a new page in the default browser context."""
        return await self._default_context.new_page()

    async def _create_page_in_context(self, context_id: Optional[str]) -> Page:
        params: Dict[str, Any] = {"url": "about:blank"}
        if context_id:
            params["browserContextId"] = context_id
        result = await self.connection.send_command("Target.createTarget", params)
        target_id = result["targetId"]
        logger.debug(f"Created target with ID: {target_id}")
        target = self._targets.get(target_id)
        if target is None or not target._is_initialized:
            target = await self.wait_for_target(lambda t: t.target_id == target_id)
        page = await target.page()
        if page is None:
            raise BrowserError(f"Failed to create page for target {target_id}")
        return page

    async def pages(self) -> List[Page]:
        """Get the pages of every browser context."""
        contexts = [self._default_context, *self._contexts.values()]
        results = await asyncio.gather(*(context.pages() for context in contexts))
        return [page for pages in results for page in pages]

    async def create_incognito_browser_context(self) -> BrowserContext:
        result = await self.connection.send_command("Target.createBrowserContext")
        context = BrowserContext(self, result["browserContextId"])
        self._contexts[context.id] = context
        return context

    def browser_contexts(self) -> List[BrowserContext]:
        return [self._default_context, *self._contexts.values()]

    @property
    def default_browser_context(self) -> BrowserContext:
        return self._default_context

    async def _dispose_context(self, context_id: str) -> None:
        await self.connection.send_command("Target.disposeBrowserContext", {"browserContextId": context_id})
        self._contexts.pop(context_id, None)

    async def version(self) -> str:
        result = await self.connection.send_command("Browser.getVersion")
        return result["product"]

    async def user_agent(self) -> str:
        result = await self.connection.send_command("Browser.getVersion")
        return result["userAgent"]

    # Shutdown

    async def close(self) -> None:
        """Close every page opened through this browser and disconnect."""
        if self._closing:
            return
        self._closing = True
        try:
            pages = [
                page
                for page in (target._materialized_page() for target in list(self._targets.values()))
                if page is not None and not page.is_closed()
            ]
            if pages:
                await asyncio.gather(*(self._close_page_with_timeout(page) for page in pages))
            await self.disconnect()
            logger.info("Browser closed")
        finally:
            self._closing = False

    async def _close_page_with_timeout(self, page: Page) -> None:
        try:
            await asyncio.wait_for(page.close(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout closing page {page.target_id}")
        except CDPError as e:
            logger.warning(f"Error closing page: {e}")

    async def disconnect(self) -> None:
        """Disconnect from Chrome without closing its pages."""
        if self._connection is None:
            return
        connection = self._connection
        await connection.disconnect()
        self._connection = None
        self._targets.clear()
