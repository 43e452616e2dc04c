"""
Polling waits evaluated inside a frame.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional, Union

from cdp_page.core.exceptions import CDPProtocolError

from .exceptions import TimeoutError, UsageError
from .helpers import CloseSignal, JSExpression, JSFunction

if TYPE_CHECKING:
    from .frame_manager import Frame
    from .js_handle import JSHandle

logger = logging.getLogger(__name__)

WAIT_FOR_PREDICATE_PAGE_FUNCTION = """
async function waitForPredicatePageFunction(predicateBody, polling, timeout, ...args) {
  const predicate = new Function('...args', predicateBody);
  let timedOut = false;
  if (timeout)
    setTimeout(() => timedOut = true, timeout);
  if (polling === 'raf')
    return await pollRaf();
  if (polling === 'mutation')
    return await pollMutation();
  if (typeof polling === 'number')
    return await pollInterval(polling);

  function pollMutation() {
    const success = predicate(...args);
    if (success)
      return Promise.resolve(success);
    let fulfill;
    const result = new Promise(x => fulfill = x);
    const observer = new MutationObserver(() => {
      if (timedOut) {
        observer.disconnect();
        fulfill();
      }
      const success = predicate(...args);
      if (success) {
        observer.disconnect();
        fulfill(success);
      }
    });
    observer.observe(document, {childList: true, subtree: true, attributes: true});
    return result;
  }

  function pollRaf() {
    let fulfill;
    const result = new Promise(x => fulfill = x);
    onRaf();
    return result;

    function onRaf() {
      if (timedOut) {
        fulfill();
        return;
      }
      const success = predicate(...args);
      if (success)
        fulfill(success);
      else
        requestAnimationFrame(onRaf);
    }
  }

  function pollInterval(pollInterval) {
    let fulfill;
    const result = new Promise(x => fulfill = x);
    onTimeout();
    return result;

    function onTimeout() {
      if (timedOut) {
        fulfill();
        return;
      }
      const success = predicate(...args);
      if (success)
        fulfill(success);
      else
        setTimeout(onTimeout, pollInterval);
    }
  }
}
"""

WAIT_FOR_SELECTOR_OR_XPATH = """
(selectorOrXPath, isXPath, waitForVisible, waitForHidden) => {
  const node = isXPath
    ? document.evaluate(selectorOrXPath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null).singleNodeValue
    : document.querySelector(selectorOrXPath);
  if (!node)
    return waitForHidden;
  if (!waitForVisible && !waitForHidden)
    return node;
  const element = node.nodeType === Node.TEXT_NODE ? node.parentElement : node;
  const style = window.getComputedStyle(element);
  const isVisible = style && style.visibility !== 'hidden' && hasVisibleBoundingBox();
  const success = (waitForVisible === isVisible || waitForHidden === !isVisible);
  return success ? node : null;

  function hasVisibleBoundingBox() {
    const rect = element.getBoundingClientRect();
    return !!(rect.top || rect.bottom || rect.width || rect.height);
  }
}
"""

_LOST_CONTEXT_MESSAGES = (
    "Execution context was destroyed",
    "Cannot find context with specified id",
)


class WaitTask:
    """
    Re-runnable in-page polling task.

    The predicate is re-installed whenever the frame gets a new execution
    context, so a wait survives navigations. It finishes when the predicate
    returns a truthy value, on timeout, or when the page closes.
    """

    def __init__(
        self,
        frame: "Frame",
        predicate: Union[JSFunction, JSExpression],
        title: str,
        polling: Union[str, float],
        timeout: float,
        close_signal: Optional[CloseSignal],
        *args: Any,
    ):
        if isinstance(polling, str):
            if polling not in ("raf", "mutation"):
                raise UsageError(f"Unknown polling option: {polling}")
        elif polling <= 0:
            raise UsageError(f"Cannot poll with non-positive interval: {polling}")

        self._frame = frame
        self._polling = polling if isinstance(polling, str) else polling * 1000
        self._timeout = timeout
        self._args = args
        self._run_count = 0
        self._terminated = False
        if isinstance(predicate, JSFunction):
            self._predicate_body = f"return ({predicate.source})(...args)"
        else:
            self._predicate_body = f"return ({predicate.source})"
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

        frame._wait_tasks.add(self)

        self._timer = None
        self._remove_close_callback = None
        if timeout:
            message = f"waiting for {title} failed: timeout {timeout} seconds exceeded"
            self._timer = asyncio.get_running_loop().call_later(
                timeout, self.terminate, TimeoutError(message)
            )
        self._remove_close_callback = (
            close_signal.add_callback(self.terminate) if close_signal else None
        )
        asyncio.ensure_future(self.rerun())

    def __await__(self):
        return self.future.__await__()

    def terminate(self, error: Exception) -> None:
        self._terminated = True
        if not self.future.done():
            self.future.set_exception(error)
        self._cleanup()

    async def rerun(self) -> None:
        self._run_count += 1
        run_count = self._run_count
        success: Optional["JSHandle"] = None
        error: Optional[Exception] = None
        try:
            context = await self._frame.execution_context()
            success = await context.evaluate_handle(
                JSFunction(WAIT_FOR_PREDICATE_PAGE_FUNCTION),
                self._predicate_body,
                self._polling,
                self._timeout * 1000,
                *self._args,
            )
        except Exception as e:
            error = e

        if self._terminated or run_count != self._run_count:
            if success is not None:
                await success.dispose()
            return

        if error is None and success is not None and not _is_truthy(success):
            await success.dispose()
            return

        if isinstance(error, CDPProtocolError) and any(
            message in error.message for message in _LOST_CONTEXT_MESSAGES
        ):
            logger.debug(f"Wait task lost its execution context: {error}")
            return

        if error is not None:
            if not self.future.done():
                self.future.set_exception(error)
        elif not self.future.done():
            self.future.set_result(success)
        self._cleanup()

    def _cleanup(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._remove_close_callback is not None:
            self._remove_close_callback()
            self._remove_close_callback = None
        self._frame._wait_tasks.discard(self)


def _is_truthy(handle: "JSHandle") -> bool:
    remote = handle._remote_object
    if remote.get("objectId"):
        return True
    if remote.get("unserializableValue"):
        return remote["unserializableValue"] not in ("-0", "NaN", "0n")
    return bool(remote.get("value"))

