"""
Tests for the browser target registry, contexts and page creation.
"""
import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as DevToolsServer

from cdp_page.browser.browser import Browser
from cdp_page.browser.events import BrowserEvent, PageEvent
from cdp_page.browser.exceptions import BrowserError, TimeoutError, UsageError
from cdp_page.core.exceptions import CDPConnectionError

from .conftest import FakeConnection, settle


def target_info(target_id, url="about:blank", target_type="page", **extra):
    info = {"targetId": target_id, "type": target_type, "url": url, "title": "", "attached": False}
    info.update(extra)
    return info


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def browser(connection):
    browser = Browser()
    browser._attach(connection)
    return browser


def test_unconnected_browser_has_no_connection():
    browser = Browser()

    assert not browser.is_connected()
    with pytest.raises(BrowserError):
        browser.connection


@pytest.mark.asyncio
async def test_target_is_announced_once_initialized(browser, connection):
    created = []
    changed = []
    destroyed = []
    browser.on(BrowserEvent.TARGET_CREATED, created.append)
    browser.on(BrowserEvent.TARGET_CHANGED, changed.append)
    browser.on(BrowserEvent.TARGET_DESTROYED, destroyed.append)

    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("t1", url="")})
    assert created == []
    assert browser.targets() == []

    connection.dispatch("Target.targetInfoChanged", {"targetInfo": target_info("t1", url="about:blank")})
    assert len(created) == 1
    target = created[0]
    assert target.url == "about:blank"
    assert browser.targets() == [target]
    assert changed == []

    connection.dispatch("Target.targetInfoChanged", {"targetInfo": target_info("t1", url="http://example.test/")})
    assert changed == [target]

    connection.dispatch("Target.targetDestroyed", {"targetId": "t1"})
    assert destroyed == [target]
    assert browser.target("t1") is None


@pytest.mark.asyncio
async def test_context_events_follow_browser_events(browser, connection):
    context_events = []
    browser.default_browser_context.on(BrowserEvent.TARGET_CREATED, context_events.append)

    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("w1", url="", target_type="service_worker")})

    assert [target.type for target in context_events] == ["service_worker"]
    assert browser.default_browser_context.targets() == context_events


@pytest.mark.asyncio
async def test_wait_for_target_sees_future_targets(browser, connection):
    waiter = asyncio.ensure_future(browser.wait_for_target(lambda target: target.url.endswith("/popup")))
    await settle()

    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("t1")})
    assert not waiter.done()
    connection.dispatch("Target.targetInfoChanged", {"targetInfo": target_info("t1", url="http://a/popup")})

    target = await waiter
    assert target.target_id == "t1"
    assert browser.listener_count(BrowserEvent.TARGET_CREATED) == 0


@pytest.mark.asyncio
async def test_wait_for_target_timeout(browser):
    with pytest.raises(TimeoutError, match="waiting for target failed: timeout 0.05 seconds exceeded"):
        await browser.wait_for_target(lambda target: False, timeout=0.05)


@pytest.mark.asyncio
async def test_new_page_attaches_to_created_target(browser, connection):
    def create_target(params):
        connection.dispatch("Target.targetCreated", {"targetInfo": target_info("t9")})
        return {"targetId": "t9"}

    connection.set_handler("Target.createTarget", create_target)

    page = await browser.new_page()

    assert connection.params_of("Target.createTarget") == [{"url": "about:blank"}]
    assert page.target_id == "t9"
    assert page.browser is browser
    assert page.target is browser.target("t9")
    assert page.browser_context is browser.default_browser_context
    assert await browser.pages() == [page]
    assert await page.target.page() is page
    page_session = connection.sessions["t9"]
    assert "Page.enable" in page_session.methods()


@pytest.mark.asyncio
async def test_new_page_waits_for_late_target(browser, connection):
    connection.set_handler("Target.createTarget", {"targetId": "t5"})
    creating = asyncio.ensure_future(browser.new_page())
    await settle()
    assert not creating.done()

    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("t5")})

    page = await creating
    assert page.target_id == "t5"


@pytest.mark.asyncio
async def test_non_page_targets_have_no_page(browser, connection):
    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("w1", url="w.js", target_type="worker")})

    assert await browser.target("w1").page() is None


@pytest.mark.asyncio
async def test_incognito_context_lifecycle(browser, connection):
    connection.set_handler("Target.createBrowserContext", {"browserContextId": "ctx-1"})

    context = await browser.create_incognito_browser_context()

    assert context.is_incognito()
    assert context.id == "ctx-1"
    assert browser.browser_contexts() == [browser.default_browser_context, context]

    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("t2", browserContextId="ctx-1")})
    assert [target.target_id for target in context.targets()] == ["t2"]
    assert browser.default_browser_context.targets() == []

    await context.close()

    assert connection.params_of("Target.disposeBrowserContext") == [{"browserContextId": "ctx-1"}]
    assert browser.browser_contexts() == [browser.default_browser_context]


@pytest.mark.asyncio
async def test_default_context_cannot_be_closed(browser):
    assert not browser.default_browser_context.is_incognito()

    with pytest.raises(UsageError):
        await browser.default_browser_context.close()


@pytest.mark.asyncio
async def test_popup_is_announced_on_opener(browser, connection):
    connection.set_handler(
        "Target.createTarget",
        lambda params: connection.dispatch("Target.targetCreated", {"targetInfo": target_info("opener")})
        or {"targetId": "opener"},
    )
    opener = await browser.new_page()
    popup = asyncio.get_running_loop().create_future()
    opener.on(PageEvent.POPUP, popup.set_result)

    connection.dispatch("Target.targetCreated", {"targetInfo": target_info("child", url="http://a/", openerId="opener")})

    child = await asyncio.wait_for(popup, 1)
    assert child.target_id == "child"
    assert child.target.opener is opener.target


@pytest.mark.asyncio
async def test_close_closes_pages_and_disconnects(browser, connection):
    connection.set_handler(
        "Target.createTarget",
        lambda params: connection.dispatch("Target.targetCreated", {"targetInfo": target_info("t1")})
        or {"targetId": "t1"},
    )
    page = await browser.new_page()

    await browser.close()

    assert page.is_closed()
    assert connection.sessions["t1"].params_of("Target.closeTarget") == [{"targetId": "t1"}]
    assert not connection.connected
    assert not browser.is_connected()


@pytest.mark.asyncio
async def test_version_and_user_agent(browser, connection):
    connection.set_handler("Browser.getVersion", {"product": "HeadlessChrome/120.0", "userAgent": "Mozilla/5.0"})

    assert await browser.version() == "HeadlessChrome/120.0"
    assert await browser.user_agent() == "Mozilla/5.0"


@pytest.mark.asyncio
async def test_websocket_url_is_discovered_over_http():
    async def version(request):
        return web.json_response({"webSocketDebuggerUrl": "ws://localhost:9222/devtools/browser/abc"})

    app = web.Application()
    app.router.add_get("/json/version", version)
    server = DevToolsServer(app, host="127.0.0.1")
    await server.start_server()
    port = server.port
    try:
        browser = Browser(host="127.0.0.1", port=port, max_retries=1)

        ws_url = await browser._get_ws_url()
    finally:
        await server.close()

    assert ws_url == f"ws://127.0.0.1:{port}/devtools/browser/abc"


@pytest.mark.asyncio
async def test_websocket_url_discovery_failure():
    browser = Browser(host="127.0.0.1", port=1, max_retries=1)

    with pytest.raises(CDPConnectionError, match="after 1 attempts"):
        await browser._get_ws_url()
