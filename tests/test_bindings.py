"""
Tests for functions exposed to the page.
"""
import json

import pytest

from cdp_page.browser.exceptions import UsageError
from cdp_page.core.exceptions import CDPProtocolError

from .conftest import settle


def binding_called(session, name, seq, args, payload_type="exposedFun", context_id=1):
    session.dispatch(
        "Runtime.bindingCalled",
        {
            "name": name,
            "payload": json.dumps({"type": payload_type, "name": name, "seq": seq, "args": args}),
            "executionContextId": context_id,
        },
    )


def delivered_expressions(session):
    return [
        params["expression"]
        for params in session.params_of("Runtime.evaluate")
        if "deliver" in params["expression"]
    ]


@pytest.mark.asyncio
async def test_expose_function_installs_binding(page, session):
    await page.expose_function("compute", lambda a, b: a + b)

    assert session.params_of("Runtime.addBinding") == [{"name": "compute"}]
    source = session.params_of("Page.addScriptToEvaluateOnNewDocument")[0]["source"]
    assert source.endswith('("exposedFun", "compute")')
    installed = session.params_of("Runtime.evaluate")
    assert installed[-1]["expression"].startswith(source)
    assert installed[-1]["contextId"] == 1


@pytest.mark.asyncio
async def test_expose_function_twice_is_rejected(page, session):
    await page.expose_function("compute", lambda: None)

    with pytest.raises(UsageError, match="compute"):
        await page.expose_function("compute", lambda: None)

    assert len(session.params_of("Runtime.addBinding")) == 1


@pytest.mark.asyncio
async def test_failed_expose_function_can_be_retried(page, session):
    def refuse(params):
        raise CDPProtocolError("Binding failed", "Runtime.addBinding")

    session.set_handler("Runtime.addBinding", refuse)
    with pytest.raises(CDPProtocolError, match="Binding failed"):
        await page.expose_function("compute", lambda: None)

    session.set_handler("Runtime.addBinding", {})
    await page.expose_function("compute", lambda: None)

    assert len(session.params_of("Runtime.addBinding")) == 2
    assert len(session.params_of("Page.addScriptToEvaluateOnNewDocument")) == 1


@pytest.mark.asyncio
async def test_binding_call_delivers_result(page, session):
    await page.expose_function("compute", lambda a, b: a + b)

    binding_called(session, "compute", 1, [2, 3])
    await settle()

    expressions = delivered_expressions(session)
    assert len(expressions) == 1
    assert "deliverResult" in expressions[0]
    assert expressions[0].endswith('("compute", 1, 5)')


@pytest.mark.asyncio
async def test_async_handler_is_awaited(page, session):
    async def lookup(key):
        return {"key": key, "found": True}

    await page.expose_function("lookup", lookup)

    binding_called(session, "lookup", 4, ["a"])
    await settle()

    expressions = delivered_expressions(session)
    assert expressions[0].endswith('("lookup", 4, {"key": "a", "found": true})')


@pytest.mark.asyncio
async def test_handler_error_is_delivered_as_rejection(page, session):
    def broken():
        raise ValueError("no luck")

    await page.expose_function("broken", broken)

    binding_called(session, "broken", 2, [])
    await settle()

    expressions = delivered_expressions(session)
    assert len(expressions) == 1
    assert "deliverError" in expressions[0]
    assert '"broken", 2, "no luck"' in expressions[0]


@pytest.mark.asyncio
async def test_result_goes_to_calling_context(page, session):
    await page.expose_function("compute", lambda: 1)
    session.dispatch(
        "Runtime.executionContextCreated",
        {"context": {"id": 5, "auxData": {"frameId": "main", "isDefault": False}}},
    )

    binding_called(session, "compute", 1, [], context_id=5)
    await settle()

    delivered = [
        params for params in session.params_of("Runtime.evaluate") if "deliver" in params["expression"]
    ]
    assert delivered[0]["contextId"] == 5


@pytest.mark.asyncio
async def test_unrelated_binding_payloads_are_ignored(page, session):
    await page.expose_function("compute", lambda: 1)

    binding_called(session, "other", 1, [])
    binding_called(session, "compute", 2, [], payload_type="somethingElse")
    session.dispatch(
        "Runtime.bindingCalled", {"name": "compute", "payload": "not json", "executionContextId": 1}
    )
    await settle()

    assert delivered_expressions(session) == []
