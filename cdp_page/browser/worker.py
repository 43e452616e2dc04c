"""
Dedicated and shared workers spawned by the page.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from cdp_page.core.events import EventEmitter, schedule

from .helpers import PageFunction
from .js_handle import ExecutionContext, JSHandle, create_js_handle

logger = logging.getLogger(__name__)

ConsoleCallback = Callable[[str, List[JSHandle], Optional[Dict[str, Any]]], None]
ExceptionCallback = Callable[[Dict[str, Any]], None]


class Worker(EventEmitter):
    """A web worker attached to the page through its own session."""

    def __init__(
        self,
        client: Any,
        url: str,
        console_api_called: ConsoleCallback,
        exception_thrown: ExceptionCallback,
    ):
        super().__init__()
        self._client = client
        self._url = url
        self._context_future: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_context_created(event: Dict[str, Any]) -> None:
            if not self._context_future.done():
                self._context_future.set_result(ExecutionContext(client, event["context"]))

        def on_console_api_called(event: Dict[str, Any]) -> None:
            if not self._context_future.done():
                return
            context = self._context_future.result()
            args = [create_js_handle(context, arg) for arg in event.get("args", [])]
            console_api_called(event["type"], args, event.get("stackTrace"))

        client.once("Runtime.executionContextCreated", on_context_created)
        client.on("Runtime.consoleAPICalled", on_console_api_called)
        client.on("Runtime.exceptionThrown", lambda event: exception_thrown(event["exceptionDetails"]))
        schedule(client.send("Runtime.enable"), name=f"Runtime.enable for worker {url}")

    @property
    def url(self) -> str:
        return self._url

    @property
    def client(self) -> Any:
        return self._client

    async def execution_context(self) -> ExecutionContext:
        return await self._context_future

    async def evaluate(self, page_function: PageFunction, *args: Any) -> Any:
        context = await self.execution_context()
        return await context.evaluate(page_function, *args)

    async def evaluate_handle(self, page_function: PageFunction, *args: Any) -> JSHandle:
        context = await self.execution_context()
        return await context.evaluate_handle(page_function, *args)

    def __repr__(self) -> str:
        return f"<Worker {self._url!r}>"
