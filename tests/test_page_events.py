"""
Tests for protocol notifications turned into page events.
"""
import pytest

from cdp_page.browser.dialog import Dialog, DialogType
from cdp_page.browser.events import PageEvent
from cdp_page.browser.exceptions import PageError
from cdp_page.browser.page import ConsoleMessage

from .conftest import FakeSession, settle


@pytest.mark.asyncio
async def test_console_api_called_emits_console_message(page, session):
    messages = []
    page.on(PageEvent.CONSOLE, messages.append)

    session.dispatch(
        "Runtime.consoleAPICalled",
        {
            "type": "log",
            "args": [
                {"type": "string", "value": "hello"},
                {"type": "number", "value": 5},
                {"type": "boolean", "value": True},
                {"type": "undefined"},
            ],
            "executionContextId": 1,
            "stackTrace": {"callFrames": [{"url": "http://a/app.js", "lineNumber": 3, "columnNumber": 7}]},
        },
    )

    assert len(messages) == 1
    message = messages[0]
    assert isinstance(message, ConsoleMessage)
    assert message.type == "log"
    assert message.text == "hello 5 true undefined"
    assert len(message.args) == 4
    assert message.location == {"url": "http://a/app.js", "lineNumber": 3, "columnNumber": 7}


@pytest.mark.asyncio
async def test_console_from_context_zero_is_ignored(page, session):
    messages = []
    page.on(PageEvent.CONSOLE, messages.append)

    session.dispatch(
        "Runtime.consoleAPICalled",
        {"type": "log", "args": [{"type": "string", "value": "x"}], "executionContextId": 0},
    )

    assert messages == []


@pytest.mark.asyncio
async def test_console_args_are_released_without_listeners(page, session):
    session.dispatch(
        "Runtime.consoleAPICalled",
        {"type": "log", "args": [{"type": "object", "objectId": "obj-1"}], "executionContextId": 1},
    )
    await settle()

    assert {"objectId": "obj-1"} in session.params_of("Runtime.releaseObject")


@pytest.mark.asyncio
async def test_log_entry_emits_console_message(page, session):
    messages = []
    page.on(PageEvent.CONSOLE, messages.append)

    session.dispatch(
        "Log.entryAdded",
        {"entry": {"level": "error", "text": "Failed to load", "source": "network", "url": "http://a/x"}},
    )
    session.dispatch(
        "Log.entryAdded",
        {"entry": {"level": "info", "text": "from worker", "source": "worker"}},
    )

    assert [(m.type, m.text) for m in messages] == [("error", "Failed to load")]


@pytest.mark.asyncio
async def test_dialog_is_emitted_and_left_open(page, session):
    dialogs = []
    page.on(PageEvent.DIALOG, dialogs.append)

    session.dispatch(
        "Page.javascriptDialogOpening",
        {"type": "prompt", "message": "Name?", "defaultPrompt": "anon"},
    )
    await settle()

    assert len(dialogs) == 1
    dialog = dialogs[0]
    assert isinstance(dialog, Dialog)
    assert dialog.type == DialogType.PROMPT
    assert dialog.message == "Name?"
    assert dialog.default_value == "anon"
    assert "Page.handleJavaScriptDialog" not in session.methods()

    await dialog.accept("bob")
    assert session.params_of("Page.handleJavaScriptDialog") == [{"accept": True, "promptText": "bob"}]


@pytest.mark.asyncio
async def test_dialog_without_listener_is_not_auto_resolved(page, session):
    session.dispatch("Page.javascriptDialogOpening", {"type": "alert", "message": "hi"})
    await settle()

    assert "Page.handleJavaScriptDialog" not in session.methods()


@pytest.mark.asyncio
async def test_uncaught_exception_emits_pageerror(page, session):
    errors = []
    page.on(PageEvent.PAGEERROR, errors.append)

    session.dispatch(
        "Runtime.exceptionThrown",
        {"exceptionDetails": {"text": "Uncaught", "exception": {"description": "Error: boom\n    at <anonymous>:1:7"}}},
    )

    assert len(errors) == 1
    assert isinstance(errors[0], PageError)
    assert str(errors[0]).startswith("Error: boom")


@pytest.mark.asyncio
async def test_metrics_event_keeps_supported_metrics(page, session):
    events = []
    page.on(PageEvent.METRICS, events.append)

    session.dispatch(
        "Performance.metrics",
        {"title": "checkpoint", "metrics": [{"name": "Nodes", "value": 12}, {"name": "Bogus", "value": 1}]},
    )

    assert events == [{"title": "checkpoint", "metrics": {"Nodes": 12}}]


@pytest.mark.asyncio
async def test_load_events_are_forwarded_in_order(page, session):
    events = []
    page.on(PageEvent.DOMCONTENTLOADED, lambda: events.append("domcontentloaded"))
    page.on(PageEvent.LOAD, lambda: events.append("load"))

    session.dispatch("Page.domContentEventFired", {"timestamp": 1})
    session.dispatch("Page.loadEventFired", {"timestamp": 2})

    assert events == ["domcontentloaded", "load"]


@pytest.mark.asyncio
async def test_frame_events_are_forwarded(page, session):
    attached = []
    detached = []
    page.on(PageEvent.FRAME_ATTACHED, attached.append)
    page.on(PageEvent.FRAME_DETACHED, detached.append)

    session.dispatch("Page.frameAttached", {"frameId": "child", "parentFrameId": "main"})

    assert len(attached) == 1
    child = attached[0]
    assert child.parent_frame is page.main_frame
    assert child in page.frames

    session.dispatch("Page.frameDetached", {"frameId": "child"})

    assert detached == [child]
    assert child.is_detached()
    assert child not in page.frames


@pytest.mark.asyncio
async def test_network_events_are_forwarded(page, session):
    requests = []
    responses = []
    finished = []
    page.on(PageEvent.REQUEST, requests.append)
    page.on(PageEvent.RESPONSE, responses.append)
    page.on(PageEvent.REQUEST_FINISHED, finished.append)

    session.dispatch(
        "Network.requestWillBeSent",
        {
            "requestId": "r1",
            "loaderId": "loader-1",
            "frameId": "main",
            "type": "XHR",
            "request": {"url": "http://a/api", "method": "POST", "headers": {"X-Token": "1"}},
        },
    )
    session.dispatch(
        "Network.responseReceived",
        {"requestId": "r1", "response": {"url": "http://a/api", "status": 201, "headers": {}}},
    )
    session.dispatch("Network.loadingFinished", {"requestId": "r1"})

    assert len(requests) == 1
    request = requests[0]
    assert request.url == "http://a/api"
    assert request.method == "POST"
    assert request.headers == {"x-token": "1"}
    assert request.frame is page.main_frame
    assert not request.is_navigation_request()
    assert responses[0].status == 201
    assert responses[0].request is request
    assert finished == [request]


@pytest.mark.asyncio
async def test_worker_lifecycle_events(page, session):
    created = []
    destroyed = []
    page.on(PageEvent.WORKER_CREATED, created.append)
    page.on(PageEvent.WORKER_DESTROYED, destroyed.append)
    worker_session = FakeSession()
    session.sessions["worker-session"] = worker_session

    session.dispatch(
        "Target.attachedToTarget",
        {
            "sessionId": "worker-session",
            "targetInfo": {"targetId": "w1", "type": "worker", "url": "http://a/worker.js"},
            "waitingForDebugger": False,
        },
    )
    await settle()

    assert len(created) == 1
    worker = created[0]
    assert worker.url == "http://a/worker.js"
    assert page.workers == [worker]
    assert "Runtime.enable" in worker_session.methods()

    session.dispatch("Target.detachedFromTarget", {"sessionId": "worker-session"})

    assert destroyed == [worker]
    assert page.workers == []


@pytest.mark.asyncio
async def test_worker_console_reaches_the_page(page, session):
    messages = []
    page.on(PageEvent.CONSOLE, messages.append)
    worker_session = FakeSession()
    session.sessions["worker-session"] = worker_session
    session.dispatch(
        "Target.attachedToTarget",
        {"sessionId": "worker-session", "targetInfo": {"targetId": "w1", "type": "worker", "url": "w.js"}},
    )
    worker_session.dispatch("Runtime.executionContextCreated", {"context": {"id": 9}})

    worker_session.dispatch(
        "Runtime.consoleAPICalled",
        {"type": "info", "args": [{"type": "string", "value": "from worker"}], "executionContextId": 9},
    )

    assert [m.text for m in messages] == ["from worker"]


@pytest.mark.asyncio
async def test_non_worker_targets_are_detached(page, session):
    created = []
    page.on(PageEvent.WORKER_CREATED, created.append)

    session.dispatch(
        "Target.attachedToTarget",
        {"sessionId": "iframe-session", "targetInfo": {"targetId": "f1", "type": "iframe", "url": ""}},
    )
    await settle()

    assert created == []
    assert session.params_of("Target.detachFromTarget") == [{"sessionId": "iframe-session"}]
