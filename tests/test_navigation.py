"""
Tests for navigation and lifecycle waits.
"""
import asyncio

import pytest

from cdp_page.browser.exceptions import NavigationError, TargetClosedError, TimeoutError, UsageError

from .conftest import settle

URL = "http://example.test/index.html"


def navigate_to(session, url, loader_id="loader-2", milestones=("DOMContentLoaded", "load"), status=200):
    """Handler for Page.navigate that plays a full document navigation."""

    def handler(params):
        session.dispatch_soon(
            "Network.requestWillBeSent",
            {
                "requestId": loader_id,
                "loaderId": loader_id,
                "frameId": params["frameId"],
                "type": "Document",
                "request": {"url": url, "method": "GET", "headers": {}},
            },
        )
        session.dispatch_soon(
            "Network.responseReceived",
            {"requestId": loader_id, "response": {"url": url, "status": status, "headers": {}}},
        )
        session.dispatch_soon(
            "Page.lifecycleEvent", {"frameId": "main", "loaderId": loader_id, "name": "init"}
        )
        session.dispatch_soon(
            "Page.frameNavigated", {"frame": {"id": "main", "loaderId": loader_id, "url": url}}
        )
        for name in milestones:
            session.dispatch_soon(
                "Page.lifecycleEvent", {"frameId": "main", "loaderId": loader_id, "name": name}
            )
        return {"frameId": "main", "loaderId": loader_id}

    return handler


def commit_new_document(session, url=URL, loader_id="loader-2"):
    session.dispatch_soon("Page.lifecycleEvent", {"frameId": "main", "loaderId": loader_id, "name": "init"})
    session.dispatch_soon("Page.frameNavigated", {"frame": {"id": "main", "loaderId": loader_id, "url": url}})
    session.dispatch_soon("Page.lifecycleEvent", {"frameId": "main", "loaderId": loader_id, "name": "load"})


@pytest.mark.asyncio
async def test_goto_returns_main_resource_response(page, session):
    session.set_handler("Page.navigate", navigate_to(session, URL))

    response = await page.goto(URL, referer="http://ref.test/")

    assert response is not None
    assert response.status == 200
    assert response.ok
    assert response.url == URL
    assert page.url == URL
    assert session.params_of("Page.navigate") == [
        {"url": URL, "referrer": "http://ref.test/", "frameId": "main"}
    ]


@pytest.mark.asyncio
async def test_goto_waits_for_every_requested_milestone(page, session):
    session.set_handler(
        "Page.navigate",
        navigate_to(session, URL, milestones=("DOMContentLoaded", "load", "networkAlmostIdle", "networkIdle")),
    )

    response = await page.goto(URL, wait_until=["load", "networkidle0"])

    assert response.status == 200


@pytest.mark.asyncio
async def test_goto_reports_navigation_error_text(page, session):
    session.set_handler(
        "Page.navigate", {"frameId": "main", "errorText": "net::ERR_NAME_NOT_RESOLVED"}
    )

    with pytest.raises(NavigationError, match="net::ERR_NAME_NOT_RESOLVED at http://nowhere.test/"):
        await page.goto("http://nowhere.test/")


@pytest.mark.asyncio
async def test_goto_times_out_when_milestones_never_arrive(page, session):
    session.set_handler("Page.navigate", {"frameId": "main", "loaderId": "loader-2"})

    with pytest.raises(TimeoutError, match="Navigation timeout of 0.05 seconds exceeded"):
        await page.goto(URL, timeout=0.05)


@pytest.mark.asyncio
async def test_goto_uses_default_navigation_timeout(page, session):
    session.set_handler("Page.navigate", {"frameId": "main", "loaderId": "loader-2"})
    page.set_default_navigation_timeout(0.05)

    with pytest.raises(TimeoutError):
        await page.goto(URL)


@pytest.mark.asyncio
async def test_unknown_wait_until_fails_before_navigating(page, session):
    with pytest.raises(UsageError, match="Unknown value for wait_until: networkidle"):
        await page.goto(URL, wait_until="networkidle")

    assert "Page.navigate" not in session.methods()


@pytest.mark.asyncio
async def test_same_document_navigation_resolves_without_response(page, session):
    def handler(params):
        session.dispatch_soon(
            "Page.navigatedWithinDocument", {"frameId": "main", "url": "about:blank#section"}
        )
        return {"frameId": "main"}

    session.set_handler("Page.navigate", handler)

    response = await page.goto("about:blank#section")

    assert response is None
    assert page.url == "about:blank#section"


@pytest.mark.asyncio
async def test_navigation_is_rejected_when_frame_detaches(page, session):
    session.dispatch("Page.frameAttached", {"frameId": "child", "parentFrameId": "main"})
    child = page._frame_manager.frame("child")

    def handler(params):
        session.dispatch_soon("Page.frameDetached", {"frameId": "child"})
        return {"frameId": "child", "loaderId": "child-loader"}

    session.set_handler("Page.navigate", handler)

    with pytest.raises(NavigationError, match="Navigating frame was detached"):
        await page._frame_manager.navigate_frame(child, URL)


@pytest.mark.asyncio
async def test_navigation_is_rejected_when_page_closes(page, session):
    session.set_handler("Page.navigate", {"frameId": "main", "loaderId": "loader-2"})
    navigation = asyncio.ensure_future(page.goto(URL, timeout=0))
    await settle()

    session.disconnect()

    with pytest.raises(TargetClosedError):
        await navigation


@pytest.mark.asyncio
async def test_wait_for_navigation_observes_navigation_started_elsewhere(page, session):
    waiter = asyncio.ensure_future(page.wait_for_navigation())
    await settle()
    assert not waiter.done()

    commit_new_document(session)

    assert await waiter is None
    assert page.url == URL


@pytest.mark.asyncio
async def test_reload_waits_for_the_new_document(page, session):
    session.set_handler("Page.reload", lambda params: commit_new_document(session, "about:blank") or {})

    assert await page.reload() is None
    assert "Page.reload" in session.methods()
    assert page.main_frame._loader_id == "loader-2"


@pytest.mark.asyncio
async def test_go_back_at_history_start_returns_none(page, session):
    session.set_handler(
        "Page.getNavigationHistory",
        {"currentIndex": 0, "entries": [{"id": 1, "url": "about:blank"}]},
    )

    assert await page.go_back() is None
    assert "Page.navigateToHistoryEntry" not in session.methods()


@pytest.mark.asyncio
async def test_go_back_navigates_to_previous_entry(page, session):
    session.set_handler(
        "Page.getNavigationHistory",
        {"currentIndex": 1, "entries": [{"id": 7, "url": URL}, {"id": 8, "url": "about:blank"}]},
    )
    session.set_handler(
        "Page.navigateToHistoryEntry", lambda params: commit_new_document(session) or {}
    )

    assert await page.go_back() is None
    assert session.params_of("Page.navigateToHistoryEntry") == [{"entryId": 7}]
    assert page.url == URL


@pytest.mark.asyncio
async def test_go_forward_at_history_end_returns_none(page, session):
    session.set_handler(
        "Page.getNavigationHistory",
        {"currentIndex": 1, "entries": [{"id": 7, "url": URL}, {"id": 8, "url": "about:blank"}]},
    )

    assert await page.go_forward() is None
    assert "Page.navigateToHistoryEntry" not in session.methods()


@pytest.mark.asyncio
async def test_set_content_writes_document_and_waits_for_load(page, session):
    await page.set_content("<p>hi</p>")

    calls = session.params_of("Runtime.callFunctionOn")
    assert calls[-1]["arguments"] == [{"value": "<p>hi</p>"}]
    assert calls[-1]["executionContextId"] == 1
