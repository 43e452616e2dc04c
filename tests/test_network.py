"""
Tests for request interception, responses and page network settings.
"""
import base64

import pytest

from cdp_page.browser.events import PageEvent
from cdp_page.browser.exceptions import PageError, UsageError
from cdp_page.core.exceptions import CDPProtocolError

from .conftest import settle


def request_will_be_sent(session, request_id="r1", url="http://a/data.json", **extra):
    event = {
        "requestId": request_id,
        "loaderId": "loader-1",
        "frameId": "main",
        "type": "XHR",
        "request": {"url": url, "method": "GET", "headers": {}},
    }
    event.update(extra)
    session.dispatch("Network.requestWillBeSent", event)


def request_paused(session, interception_id="fetch-1", network_id="r1", url="http://a/data.json"):
    session.dispatch(
        "Fetch.requestPaused",
        {"requestId": interception_id, "networkId": network_id, "request": {"url": url, "method": "GET"}},
    )


@pytest.fixture
def requests(page):
    collected = []
    page.on(PageEvent.REQUEST, collected.append)
    return collected


@pytest.mark.asyncio
async def test_interception_enables_fetch_domain(page, session):
    await page.set_request_interception(True)

    assert session.params_of("Fetch.enable") == [{"handleAuthRequests": True, "patterns": [{"urlPattern": "*"}]}]
    assert session.params_of("Network.setCacheDisabled")[-1] == {"cacheDisabled": True}

    await page.set_request_interception(False)

    assert "Fetch.disable" in session.methods()
    assert session.params_of("Network.setCacheDisabled")[-1] == {"cacheDisabled": False}


@pytest.mark.asyncio
async def test_intercepted_request_waits_for_both_events(page, session, requests):
    await page.set_request_interception(True)

    request_will_be_sent(session)
    assert requests == []
    request_paused(session)

    assert len(requests) == 1
    await requests[0].continue_(headers={"X-Test": "1"})
    assert session.params_of("Fetch.continueRequest") == [
        {"requestId": "fetch-1", "headers": [{"name": "X-Test", "value": "1"}]}
    ]


@pytest.mark.asyncio
async def test_paused_before_will_be_sent(page, session, requests):
    await page.set_request_interception(True)

    request_paused(session)
    request_will_be_sent(session)

    assert len(requests) == 1
    assert requests[0]._interception_id == "fetch-1"


@pytest.mark.asyncio
async def test_respond_fulfills_request(page, session, requests):
    await page.set_request_interception(True)
    request_will_be_sent(session)
    request_paused(session)

    await requests[0].respond(status=404, content_type="text/plain", body="missing")

    params = session.params_of("Fetch.fulfillRequest")[0]
    assert params["responseCode"] == 404
    assert params["responsePhrase"] == "Not Found"
    assert {"name": "content-type", "value": "text/plain"} in params["responseHeaders"]
    assert {"name": "content-length", "value": "7"} in params["responseHeaders"]
    assert base64.b64decode(params["body"]) == b"missing"

    with pytest.raises(UsageError, match="already handled"):
        await requests[0].abort()


@pytest.mark.asyncio
async def test_abort_uses_error_reason(page, session, requests):
    await page.set_request_interception(True)
    request_will_be_sent(session)
    request_paused(session)

    with pytest.raises(UsageError, match="Unknown error code"):
        await requests[0].abort("nope")
    await requests[0].abort("timedout")

    assert session.params_of("Fetch.failRequest") == [{"requestId": "fetch-1", "errorReason": "TimedOut"}]


@pytest.mark.asyncio
async def test_requests_cannot_be_handled_without_interception(page, session, requests):
    request_will_be_sent(session)

    with pytest.raises(UsageError, match="Request Interception is not enabled!"):
        await requests[0].continue_()


@pytest.mark.asyncio
async def test_interception_protocol_errors_reach_the_caller(page, session, requests):
    def invalid(params):
        raise CDPProtocolError("Invalid InterceptionId.", "Fetch.continueRequest")

    session.set_handler("Fetch.continueRequest", invalid)
    await page.set_request_interception(True)
    request_will_be_sent(session)
    request_paused(session)

    with pytest.raises(CDPProtocolError, match="Invalid InterceptionId."):
        await requests[0].continue_()


@pytest.mark.asyncio
async def test_response_body_is_fetched_after_loading_finished(page, session):
    responses = []
    page.on(PageEvent.RESPONSE, responses.append)
    session.set_handler(
        "Network.getResponseBody",
        {"body": base64.b64encode(b'{"ok": true}').decode(), "base64Encoded": True},
    )
    request_will_be_sent(session)
    session.dispatch(
        "Network.responseReceived",
        {"requestId": "r1", "response": {"url": "http://a/data.json", "status": 200, "headers": {"Content-Type": "application/json"}}},
    )
    session.dispatch("Network.loadingFinished", {"requestId": "r1"})

    response = responses[0]
    assert response.headers == {"content-type": "application/json"}
    assert await response.json() == {"ok": True}
    assert await response.text() == '{"ok": true}'
    assert len(session.params_of("Network.getResponseBody")) == 1


@pytest.mark.asyncio
async def test_redirect_builds_chain_and_has_no_body(page, session, requests):
    responses = []
    page.on(PageEvent.RESPONSE, responses.append)
    request_will_be_sent(session, url="http://a/old")
    request_will_be_sent(
        session,
        url="http://a/new",
        redirectResponse={"url": "http://a/old", "status": 302, "headers": {"Location": "/new"}},
    )

    assert [request.url for request in requests] == ["http://a/old", "http://a/new"]
    assert requests[1].redirect_chain == [requests[0]]
    assert responses[0].status == 302
    with pytest.raises(PageError, match="redirect"):
        await responses[0].buffer()


@pytest.mark.asyncio
async def test_failed_request_reports_failure(page, session, requests):
    failed = []
    page.on(PageEvent.REQUEST_FAILED, failed.append)
    request_will_be_sent(session)

    session.dispatch("Network.loadingFailed", {"requestId": "r1", "errorText": "net::ERR_FAILED"})

    assert failed == requests
    assert failed[0].failure() == {"errorText": "net::ERR_FAILED"}


@pytest.mark.asyncio
async def test_authentication_answers_challenges(page, session):
    await page.authenticate({"username": "user", "password": "secret"})
    assert "Fetch.enable" in session.methods()

    session.dispatch("Fetch.authRequired", {"requestId": "fetch-9"})
    session.dispatch("Fetch.authRequired", {"requestId": "fetch-9"})
    await settle()

    answers = [p["authChallengeResponse"]["response"] for p in session.params_of("Fetch.continueWithAuth")]
    assert answers == ["ProvideCredentials", "CancelAuth"]


@pytest.mark.asyncio
async def test_extra_headers_are_lowercased_and_validated(page, session):
    await page.set_extra_http_headers({"X-Trace": "abc"})
    assert session.params_of("Network.setExtraHTTPHeaders") == [{"headers": {"x-trace": "abc"}}]

    with pytest.raises(UsageError):
        await page.set_extra_http_headers({"X-Count": 1})


@pytest.mark.asyncio
async def test_offline_mode_is_sent_only_on_change(page, session):
    await page.set_offline_mode(True)
    await page.set_offline_mode(True)

    assert len(session.params_of("Network.emulateNetworkConditions")) == 1
    assert session.params_of("Network.emulateNetworkConditions")[0]["offline"] is True


@pytest.mark.asyncio
async def test_cookies_on_blank_page(page, session):
    session.set_handler("Network.getCookies", {"cookies": [{"name": "a", "value": "1"}]})

    assert await page.cookies("http://a/") == [{"name": "a", "value": "1"}]
    assert session.params_of("Network.getCookies") == [{"urls": ["http://a/"]}]

    with pytest.raises(UsageError, match='Blank page can not have cookie "sid"'):
        await page.set_cookie({"name": "sid", "value": "x", "url": "about:blank"})

    await page.set_cookie({"name": "sid", "value": "x", "url": "http://a/"})
    assert session.params_of("Network.deleteCookies") == [{"name": "sid", "value": "x", "url": "http://a/"}]
    assert session.params_of("Network.setCookies") == [{"cookies": [{"name": "sid", "value": "x", "url": "http://a/"}]}]


@pytest.mark.asyncio
async def test_emulation_settings(page, session):
    await page.set_user_agent("agent/1.0")
    await page.set_javascript_enabled(False)
    await page.set_javascript_enabled(False)
    await page.emulate_media_type("print")
    await page.set_geolocation(longitude=13.4, latitude=52.5)

    assert session.params_of("Network.setUserAgentOverride") == [{"userAgent": "agent/1.0"}]
    assert session.params_of("Emulation.setScriptExecutionDisabled") == [{"value": True}]
    assert not page.is_javascript_enabled
    assert session.params_of("Emulation.setEmulatedMedia") == [{"media": "print"}]
    assert session.params_of("Emulation.setGeolocationOverride") == [
        {"longitude": 13.4, "latitude": 52.5, "accuracy": 0}
    ]

    with pytest.raises(UsageError):
        await page.emulate_media_type("braille")
    with pytest.raises(UsageError, match="Invalid longitude"):
        await page.set_geolocation(longitude=200, latitude=0)


@pytest.mark.asyncio
async def test_metrics_are_filtered(page, session):
    session.set_handler(
        "Performance.getMetrics",
        {"metrics": [{"name": "JSHeapUsedSize", "value": 1024}, {"name": "Unknown", "value": 1}]},
    )

    assert await page.metrics() == {"JSHeapUsedSize": 1024}


@pytest.mark.asyncio
async def test_javascript_flag_follows_the_browser(page, session):
    def refuse(params):
        raise CDPProtocolError("Target closed.", "Emulation.setScriptExecutionDisabled")

    session.set_handler("Emulation.setScriptExecutionDisabled", refuse)

    with pytest.raises(CDPProtocolError):
        await page.set_javascript_enabled(False)

    assert page.is_javascript_enabled
