"""
Network layer: request/response tracking, headers, interception and auth.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from cdp_page.core.events import EventEmitter, schedule

from .events import NetworkEvent
from .exceptions import PageError, UsageError

if TYPE_CHECKING:
    from .frame_manager import Frame, FrameManager

logger = logging.getLogger(__name__)

ERROR_REASONS = {
    "aborted": "Aborted",
    "accessdenied": "AccessDenied",
    "addressunreachable": "AddressUnreachable",
    "blockedbyclient": "BlockedByClient",
    "blockedbyresponse": "BlockedByResponse",
    "connectionaborted": "ConnectionAborted",
    "connectionclosed": "ConnectionClosed",
    "connectionfailed": "ConnectionFailed",
    "connectionrefused": "ConnectionRefused",
    "connectionreset": "ConnectionReset",
    "internetdisconnected": "InternetDisconnected",
    "namenotresolved": "NameNotResolved",
    "timedout": "TimedOut",
    "failed": "Failed",
}

STATUS_TEXTS = {
    200: "OK",
    201: "Created",
    204: "No Content",
    301: "Moved Permanently",
    302: "Found",
    304: "Not Modified",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


class NetworkManager(EventEmitter):
    """
    Turns Network/Fetch domain events into Request and Response objects.
    """

    def __init__(self, client: Any, ignore_https_errors: bool, frame_manager: "FrameManager"):
        super().__init__()
        self._client = client
        self._ignore_https_errors = ignore_https_errors
        self._frame_manager = frame_manager
        self._requests: Dict[str, "Request"] = {}
        self._request_will_be_sent_events: Dict[str, Dict[str, Any]] = {}
        self._interception_ids: Dict[str, str] = {}
        self._extra_http_headers: Dict[str, str] = {}
        self._offline = False
        self._credentials: Optional[Dict[str, str]] = None
        self._attempted_authentications: Set[str] = set()
        self._user_request_interception_enabled = False
        self._protocol_request_interception_enabled = False
        self._user_cache_disabled = False

        client.on("Fetch.requestPaused", self._on_request_paused)
        client.on("Fetch.authRequired", self._on_auth_required)
        client.on("Network.requestWillBeSent", self._on_request_will_be_sent)
        client.on("Network.requestServedFromCache", self._on_request_served_from_cache)
        client.on("Network.responseReceived", self._on_response_received)
        client.on("Network.loadingFinished", self._on_loading_finished)
        client.on("Network.loadingFailed", self._on_loading_failed)

    async def initialize(self) -> None:
        await self._client.send("Network.enable")
        if self._ignore_https_errors:
            await self._client.send("Security.setIgnoreCertificateErrors", {"ignore": True})

    async def authenticate(self, credentials: Optional[Dict[str, str]]) -> None:
        """
        Answer HTTP authentication challenges.

        Args:
            credentials: Dict with username and password, or None to stop
        """
        self._credentials = credentials
        await self._update_protocol_request_interception()

    async def set_extra_http_headers(self, headers: Dict[str, str]) -> None:
        """
        Send extra headers with every request.

        Raises:
            UsageError: If a header value is not a string
        """
        extra_headers = {}
        for name, value in headers.items():
            if not isinstance(value, str):
                raise UsageError(
                    f'Expected value of header "{name}" to be str, but "{type(value).__name__}" is found.'
                )
            extra_headers[name.lower()] = value
        self._extra_http_headers = extra_headers
        await self._client.send("Network.setExtraHTTPHeaders", {"headers": extra_headers})

    def extra_http_headers(self) -> Dict[str, str]:
        return dict(self._extra_http_headers)

    async def set_offline_mode(self, value: bool) -> None:
        if self._offline == value:
            return
        self._offline = value
        await self._client.send(
            "Network.emulateNetworkConditions",
            {"offline": value, "latency": 0, "downloadThroughput": -1, "uploadThroughput": -1},
        )

    async def set_user_agent(self, user_agent: str) -> None:
        await self._client.send("Network.setUserAgentOverride", {"userAgent": user_agent})

    async def set_cache_enabled(self, enabled: bool) -> None:
        self._user_cache_disabled = not enabled
        await self._update_protocol_cache_disabled()

    async def set_request_interception(self, value: bool) -> None:
        self._user_request_interception_enabled = value
        await self._update_protocol_request_interception()

    async def _update_protocol_request_interception(self) -> None:
        enabled = self._user_request_interception_enabled or bool(self._credentials)
        if enabled == self._protocol_request_interception_enabled:
            return
        self._protocol_request_interception_enabled = enabled
        if enabled:
            await asyncio.gather(
                self._update_protocol_cache_disabled(),
                self._client.send(
                    "Fetch.enable",
                    {"handleAuthRequests": True, "patterns": [{"urlPattern": "*"}]},
                ),
            )
        else:
            await asyncio.gather(
                self._update_protocol_cache_disabled(),
                self._client.send("Fetch.disable"),
            )

    async def _update_protocol_cache_disabled(self) -> None:
        await self._client.send(
            "Network.setCacheDisabled",
            {"cacheDisabled": self._user_cache_disabled or self._protocol_request_interception_enabled},
        )

    def _on_request_will_be_sent(self, event: Dict[str, Any]) -> None:
        if self._protocol_request_interception_enabled and not event["request"]["url"].startswith("data:"):
            request_id = event["requestId"]
            interception_id = self._interception_ids.pop(request_id, None)
            if interception_id is not None:
                self._on_request(event, interception_id)
            else:
                self._request_will_be_sent_events[request_id] = event
            return
        self._on_request(event, None)

    def _on_auth_required(self, event: Dict[str, Any]) -> None:
        response = "Default"
        if event["requestId"] in self._attempted_authentications:
            response = "CancelAuth"
        elif self._credentials:
            response = "ProvideCredentials"
            self._attempted_authentications.add(event["requestId"])
        logger.debug(f"Answering auth challenge for {event['requestId']} with {response}")
        credentials = self._credentials or {}
        schedule(
            self._client.send(
                "Fetch.continueWithAuth",
                {
                    "requestId": event["requestId"],
                    "authChallengeResponse": {
                        "response": response,
                        "username": credentials.get("username"),
                        "password": credentials.get("password"),
                    },
                },
            ),
            name="Fetch.continueWithAuth",
        )

    def _on_request_paused(self, event: Dict[str, Any]) -> None:
        if not self._user_request_interception_enabled and self._protocol_request_interception_enabled:
            schedule(
                self._client.send("Fetch.continueRequest", {"requestId": event["requestId"]}),
                name="Fetch.continueRequest",
            )

        network_request_id = event.get("networkId")
        interception_id = event["requestId"]
        if network_request_id and network_request_id in self._request_will_be_sent_events:
            request_will_be_sent = self._request_will_be_sent_events.pop(network_request_id)
            self._on_request(request_will_be_sent, interception_id)
        elif network_request_id:
            self._interception_ids[network_request_id] = interception_id

    def _on_request(self, event: Dict[str, Any], interception_id: Optional[str]) -> None:
        redirect_chain: List["Request"] = []
        if event.get("redirectResponse"):
            request = self._requests.get(event["requestId"])
            if request is not None:
                self._handle_request_redirect(request, event["redirectResponse"])
                redirect_chain = request._redirect_chain
        frame_id = event.get("frameId")
        frame = self._frame_manager.frame(frame_id) if frame_id else None
        request = Request(
            self._client,
            frame,
            interception_id,
            self._user_request_interception_enabled,
            event,
            redirect_chain,
        )
        self._requests[event["requestId"]] = request
        self.emit(NetworkEvent.REQUEST, request)

    def _on_request_served_from_cache(self, event: Dict[str, Any]) -> None:
        request = self._requests.get(event["requestId"])
        if request is not None:
            request._from_memory_cache = True

    def _handle_request_redirect(self, request: "Request", response_payload: Dict[str, Any]) -> None:
        response = Response(self._client, request, response_payload)
        request._response = response
        request._redirect_chain.append(request)
        response._body_loaded(PageError("Response body is unavailable for redirect responses"))
        self._requests.pop(request._request_id, None)
        self._attempted_authentications.discard(request._interception_id)
        self.emit(NetworkEvent.RESPONSE, response)
        self.emit(NetworkEvent.REQUEST_FINISHED, request)

    def _on_response_received(self, event: Dict[str, Any]) -> None:
        request = self._requests.get(event["requestId"])
        if request is None:
            return
        response = Response(self._client, request, event["response"])
        request._response = response
        self.emit(NetworkEvent.RESPONSE, response)

    def _on_loading_finished(self, event: Dict[str, Any]) -> None:
        request = self._requests.pop(event["requestId"], None)
        if request is None:
            return
        if request.response is not None:
            request.response._body_loaded(None)
        self._attempted_authentications.discard(request._interception_id)
        self.emit(NetworkEvent.REQUEST_FINISHED, request)

    def _on_loading_failed(self, event: Dict[str, Any]) -> None:
        request = self._requests.pop(event["requestId"], None)
        if request is None:
            return
        request._failure_text = event.get("errorText")
        if request.response is not None:
            request.response._body_loaded(None)
        self._attempted_authentications.discard(request._interception_id)
        self.emit(NetworkEvent.REQUEST_FAILED, request)


class Request:
    """A network request issued by the page."""

    def __init__(
        self,
        client: Any,
        frame: Optional["Frame"],
        interception_id: Optional[str],
        allow_interception: bool,
        event: Dict[str, Any],
        redirect_chain: List["Request"],
    ):
        self._client = client
        self._request_id = event["requestId"]
        self._is_navigation_request = (
            event["requestId"] == event.get("loaderId") and event.get("type") == "Document"
        )
        self._interception_id = interception_id
        self._allow_interception = allow_interception
        self._interception_handled = False
        self._response: Optional["Response"] = None
        self._failure_text: Optional[str] = None
        self._from_memory_cache = False
        self._frame = frame
        self._redirect_chain = redirect_chain

        payload = event["request"]
        self._url = payload["url"] + payload.get("urlFragment", "")
        self._resource_type = event.get("type", "Other").lower()
        self._method = payload.get("method", "GET")
        self._post_data = payload.get("postData")
        self._headers = {name.lower(): value for name, value in payload.get("headers", {}).items()}

    @property
    def url(self) -> str:
        return self._url

    @property
    def resource_type(self) -> str:
        return self._resource_type

    @property
    def method(self) -> str:
        return self._method

    @property
    def post_data(self) -> Optional[str]:
        return self._post_data

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def response(self) -> Optional["Response"]:
        return self._response

    @property
    def frame(self) -> Optional["Frame"]:
        return self._frame

    @property
    def redirect_chain(self) -> List["Request"]:
        return list(self._redirect_chain)

    def is_navigation_request(self) -> bool:
        return self._is_navigation_request

    def failure(self) -> Optional[Dict[str, str]]:
        if self._failure_text is None:
            return None
        return {"errorText": self._failure_text}

    def _check_interceptable(self) -> None:
        if not self._allow_interception:
            raise UsageError("Request Interception is not enabled!")
        if self._interception_handled:
            raise UsageError("Request is already handled!")

    async def continue_(
        self,
        url: Optional[str] = None,
        method: Optional[str] = None,
        post_data: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Let an intercepted request proceed, optionally overriding parts of it."""
        if self._url.startswith("data:"):
            return
        self._check_interceptable()
        self._interception_handled = True
        params: Dict[str, Any] = {"requestId": self._interception_id}
        if url is not None:
            params["url"] = url
        if method is not None:
            params["method"] = method
        if post_data is not None:
            params["postData"] = base64.b64encode(post_data.encode("utf-8")).decode("ascii")
        if headers is not None:
            params["headers"] = [{"name": name, "value": str(value)} for name, value in headers.items()]
        await self._client.send("Fetch.continueRequest", params)

    async def respond(
        self,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
        body: Any = b"",
    ) -> None:
        """Fulfill an intercepted request with a canned response."""
        if self._url.startswith("data:"):
            return
        self._check_interceptable()
        self._interception_handled = True

        body_bytes = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        response_headers = {name.lower(): str(value) for name, value in (headers or {}).items()}
        if content_type:
            response_headers["content-type"] = content_type
        if body_bytes and "content-length" not in response_headers:
            response_headers["content-length"] = str(len(body_bytes))

        await self._client.send(
            "Fetch.fulfillRequest",
            {
                "requestId": self._interception_id,
                "responseCode": status,
                "responsePhrase": STATUS_TEXTS.get(status, ""),
                "responseHeaders": [
                    {"name": name, "value": value} for name, value in response_headers.items()
                ],
                "body": base64.b64encode(body_bytes).decode("ascii"),
            },
        )

    async def abort(self, error_code: str = "failed") -> None:
        """Fail an intercepted request with a network error."""
        if self._url.startswith("data:"):
            return
        error_reason = ERROR_REASONS.get(error_code)
        if error_reason is None:
            raise UsageError(f"Unknown error code: {error_code}")
        self._check_interceptable()
        self._interception_handled = True
        await self._client.send(
            "Fetch.failRequest",
            {"requestId": self._interception_id, "errorReason": error_reason},
        )

    def __repr__(self) -> str:
        return f"<Request {self._method} {self._url}>"


class Response:
    """The response received for a Request."""

    def __init__(self, client: Any, request: Request, payload: Dict[str, Any]):
        self._client = client
        self._request = request
        self._body_loaded_future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._content: Optional[bytes] = None
        self._url = request.url
        self._status = payload.get("status", 0)
        self._status_text = payload.get("statusText", "")
        self._from_disk_cache = bool(payload.get("fromDiskCache"))
        self._from_service_worker = bool(payload.get("fromServiceWorker"))
        self._headers = {name.lower(): value for name, value in payload.get("headers", {}).items()}
        self._remote_address = {
            "ip": payload.get("remoteIPAddress"),
            "port": payload.get("remotePort"),
        }

    def _body_loaded(self, error: Optional[Exception]) -> None:
        if not self._body_loaded_future.done():
            self._body_loaded_future.set_result(error)

    @property
    def url(self) -> str:
        return self._url

    @property
    def status(self) -> int:
        return self._status

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def ok(self) -> bool:
        return self._status == 0 or 200 <= self._status <= 299

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def remote_address(self) -> Dict[str, Any]:
        return dict(self._remote_address)

    @property
    def request(self) -> Request:
        return self._request

    @property
    def frame(self) -> Optional["Frame"]:
        return self._request.frame

    def from_cache(self) -> bool:
        return self._from_disk_cache or self._request._from_memory_cache

    def from_service_worker(self) -> bool:
        return self._from_service_worker

    async def buffer(self) -> bytes:
        """
        Get the response body.

        Raises:
            PageError: If the body is unavailable, e.g. for redirects
        """
        if self._content is None:
            error = await self._body_loaded_future
            if error is not None:
                raise error
            response = await self._client.send(
                "Network.getResponseBody", {"requestId": self._request._request_id}
            )
            body = response.get("body", "")
            if response.get("base64Encoded"):
                self._content = base64.b64decode(body)
            else:
                self._content = body.encode("utf-8")
        return self._content

    async def text(self) -> str:
        content = await self.buffer()
        return content.decode("utf-8")

    async def json(self) -> Any:
        return json.loads(await self.text())

    def __repr__(self) -> str:
        return f"<Response {self._status} {self._url}>"
