"""
Shared fixtures: an in-memory protocol session that stands in for Chrome.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import pytest_asyncio

from cdp_page.browser.page import Page
from cdp_page.core.events import EventEmitter, SessionEvent
from cdp_page.core.exceptions import CDPConnectionError

logger = logging.getLogger(__name__)

Handler = Union[Dict[str, Any], Callable[[Dict[str, Any]], Any]]

MAIN_FRAME_TREE = {
    "frameTree": {
        "frame": {"id": "main", "loaderId": "loader-1", "url": "about:blank"},
        "childFrames": [],
    }
}


class FakeSession(EventEmitter):
    """
    Records every command sent to it and answers through per-method handlers.

    A handler is either a result dict or a callable taking the params; the
    callable may return a dict, an awaitable, or raise. Methods without a
    handler answer ``{}``.
    """

    def __init__(self):
        super().__init__()
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False
        self.sessions: Dict[str, "FakeSession"] = {}
        self._handlers: Dict[str, Handler] = {}

    @property
    def connection(self) -> Optional["FakeSession"]:
        return None if self.closed else self

    def set_handler(self, method: str, handler: Handler) -> None:
        self._handlers[method] = handler

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self.closed:
            raise CDPConnectionError(f"Protocol error ({method}): Session closed.")
        params = params or {}
        self.sent.append((method, params))
        handler = self._handlers.get(method)
        if handler is None:
            return {}
        result = handler(params) if callable(handler) else handler
        if inspect.isawaitable(result):
            result = await result
        return result

    async def send_command(self, method: str, params: Optional[Dict[str, Any]] = None, session_id=None) -> Any:
        return await self.send(method, params)

    def session(self, session_id: str) -> Optional["FakeSession"]:
        return self.sessions.get(session_id)

    def dispatch(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        self.emit(method, params or {})

    def dispatch_soon(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        asyncio.get_running_loop().call_soon(self.dispatch, method, params)

    def methods(self) -> List[str]:
        return [method for method, _ in self.sent]

    def params_of(self, method: str) -> List[Dict[str, Any]]:
        return [params for sent_method, params in self.sent if sent_method == method]

    def disconnect(self) -> None:
        self.closed = True
        self.emit(SessionEvent.DISCONNECTED)


class FakeConnection(FakeSession):
    """A browser-level connection that hands out FakeSessions for targets."""

    def __init__(self):
        super().__init__()
        self.connected = True

    async def create_session(self, target_id: str) -> FakeSession:
        session = FakeSession()
        session.set_handler("Page.getFrameTree", MAIN_FRAME_TREE)
        self.sessions[target_id] = session
        return session

    async def disconnect(self) -> None:
        self.connected = False


async def settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def load_main_frame(session: FakeSession, loader_id: str = "loader-1") -> None:
    for name in ("init", "DOMContentLoaded", "load"):
        session.dispatch(
            "Page.lifecycleEvent", {"frameId": "main", "loaderId": loader_id, "name": name}
        )


def create_context(session: FakeSession, context_id: int = 1, frame_id: str = "main") -> None:
    session.dispatch(
        "Runtime.executionContextCreated",
        {"context": {"id": context_id, "auxData": {"frameId": frame_id, "isDefault": True}}},
    )


@pytest.fixture
def session() -> FakeSession:
    fake = FakeSession()
    fake.set_handler("Page.getFrameTree", MAIN_FRAME_TREE)
    return fake


@pytest_asyncio.fixture
async def page(session):
    """A loaded page on about:blank with execution context 1."""
    created = await Page.create(session, "target-1")
    load_main_frame(session)
    create_context(session)
    yield created
    if not created.is_closed():
        created._did_close()
    await settle()
