"""
Execution contexts and handles to remote JavaScript objects.
"""
from __future__ import annotations

import json
import logging
import math
import os
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from cdp_page.core.exceptions import CDPProtocolError

from .exceptions import ElementNotFoundError, EvaluationError, PageError, UsageError
from .helpers import (
    JSExpression,
    PageFunction,
    get_exception_message,
    release_object,
    to_page_function,
    value_from_remote_object,
)

if TYPE_CHECKING:
    from .frame_manager import Frame

logger = logging.getLogger(__name__)

EVALUATION_SCRIPT_URL = "__cdp_page_evaluation_script__"
SOURCE_URL_PATTERN = re.compile(r"^[\040\t]*//[@#] sourceURL=\s*(\S*?)\s*$", re.MULTILINE)


class ExecutionContext:
    """
    A JavaScript execution context, usually the main world of a frame.

    Every evaluation goes through ``_evaluate_internal``: expressions use
    ``Runtime.evaluate``, functions use ``Runtime.callFunctionOn``.
    """

    def __init__(self, client: Any, context_payload: Dict[str, Any], frame: Optional["Frame"] = None):
        self._client = client
        self._frame = frame
        self._context_id = context_payload["id"]
        aux_data = context_payload.get("auxData", {"isDefault": False})
        self._is_default = bool(aux_data.get("isDefault"))

    @property
    def frame(self) -> Optional["Frame"]:
        return self._frame

    async def evaluate(self, page_function: PageFunction, *args: Any) -> Any:
        """
        Evaluate code in this context and return the result by value.

        Args:
            page_function: Function source or expression
            *args: Arguments passed to a function

        Returns:
            The JSON value of the result

        Raises:
            EvaluationError: If the code throws in the page
            UsageError: If the arguments or the result cannot be serialized
        """
        return await self._evaluate_internal(True, page_function, *args)

    async def evaluate_handle(self, page_function: PageFunction, *args: Any) -> "JSHandle":
        """Evaluate code in this context and return a handle to the result."""
        return await self._evaluate_internal(False, page_function, *args)

    async def _evaluate_internal(self, return_by_value: bool, page_function: PageFunction, *args: Any) -> Any:
        function = to_page_function(page_function)

        if isinstance(function, JSExpression):
            if args:
                raise UsageError("Arguments cannot be passed to a JavaScript expression")
            expression = function.source
            if not SOURCE_URL_PATTERN.search(expression):
                expression = f"{expression}\n//# sourceURL={EVALUATION_SCRIPT_URL}"
            method = "Runtime.evaluate"
            params = {
                "expression": expression,
                "contextId": self._context_id,
                "returnByValue": return_by_value,
                "awaitPromise": True,
                "userGesture": True,
            }
        else:
            arguments = [self._convert_argument(arg) for arg in args]
            method = "Runtime.callFunctionOn"
            params = {
                "functionDeclaration": f"{function.source}\n//# sourceURL={EVALUATION_SCRIPT_URL}\n",
                "executionContextId": self._context_id,
                "arguments": arguments,
                "returnByValue": return_by_value,
                "awaitPromise": True,
                "userGesture": True,
            }

        try:
            response = await self._client.send(method, params)
        except CDPProtocolError as e:
            raise self._rewrite_error(e) from e

        exception_details = response.get("exceptionDetails")
        if exception_details:
            message = get_exception_message(exception_details)
            raise EvaluationError(message.split("\n", 1)[0], message)

        remote_object = response.get("result", {})
        if return_by_value:
            if remote_object.get("subtype") == "node":
                raise UsageError("DOM nodes cannot be returned by value, use evaluate_handle()")
            return value_from_remote_object(remote_object)
        return create_js_handle(self, remote_object)

    def _rewrite_error(self, error: CDPProtocolError) -> Exception:
        if "Object reference chain is too long" in error.message or \
                "Object couldn't be returned by value" in error.message:
            return UsageError(f"Result is not serializable: {error.message}")
        return error

    def _convert_argument(self, arg: Any) -> Dict[str, Any]:
        if isinstance(arg, JSHandle):
            if arg._disposed:
                raise UsageError("JSHandle is disposed!")
            if arg._context is not self:
                raise UsageError("JSHandles can be evaluated only in the context they were created!")
            remote = arg._remote_object
            if remote.get("unserializableValue"):
                return {"unserializableValue": remote["unserializableValue"]}
            if not remote.get("objectId"):
                return {"value": remote.get("value")}
            return {"objectId": remote["objectId"]}

        if isinstance(arg, float):
            if math.isnan(arg):
                return {"unserializableValue": "NaN"}
            if math.isinf(arg):
                return {"unserializableValue": "Infinity" if arg > 0 else "-Infinity"}
            if arg == 0 and math.copysign(1.0, arg) < 0:
                return {"unserializableValue": "-0"}

        try:
            json.dumps(arg, allow_nan=False)
        except (TypeError, ValueError):
            raise UsageError(f"Argument of type {type(arg).__name__} is not serializable")
        return {"value": arg}

    async def query_objects(self, prototype_handle: "JSHandle") -> "JSHandle":
        """Return an array handle of all objects sharing a prototype."""
        if prototype_handle._disposed:
            raise UsageError("Prototype JSHandle is disposed!")
        object_id = prototype_handle._remote_object.get("objectId")
        if not object_id:
            raise UsageError("Prototype JSHandle must not be referencing primitive value")
        response = await self._client.send(
            "Runtime.queryObjects", {"prototypeObjectId": object_id}
        )
        return create_js_handle(self, response["objects"])


def create_js_handle(context: ExecutionContext, remote_object: Dict[str, Any]) -> "JSHandle":
    frame = context.frame
    if remote_object.get("subtype") == "node" and frame is not None:
        return ElementHandle(context, context._client, remote_object, frame)
    return JSHandle(context, context._client, remote_object)


class JSHandle:
    """Handle to a remote JavaScript object; release it with dispose()."""

    def __init__(self, context: ExecutionContext, client: Any, remote_object: Dict[str, Any]):
        self._context = context
        self._client = client
        self._remote_object = remote_object
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def execution_context(self) -> ExecutionContext:
        return self._context

    async def evaluate(self, page_function: PageFunction, *args: Any) -> Any:
        return await self._context.evaluate(page_function, self, *args)

    async def evaluate_handle(self, page_function: PageFunction, *args: Any) -> "JSHandle":
        return await self._context.evaluate_handle(page_function, self, *args)

    async def get_property(self, property_name: str) -> "JSHandle":
        """Get a handle to one property of the object."""
        return await self.evaluate_handle(
            "(object, propertyName) => object[propertyName]", property_name
        )

    async def get_properties(self) -> Dict[str, "JSHandle"]:
        """Get handles to the enumerable own properties of the object."""
        response = await self._client.send(
            "Runtime.getProperties",
            {"objectId": self._remote_object.get("objectId"), "ownProperties": True},
        )
        result = {}
        for prop in response.get("result", []):
            if not prop.get("enumerable"):
                continue
            result[prop["name"]] = create_js_handle(self._context, prop["value"])
        return result

    async def json_value(self) -> Any:
        """Get the JSON representation of the object."""
        object_id = self._remote_object.get("objectId")
        if object_id:
            response = await self._client.send(
                "Runtime.callFunctionOn",
                {
                    "functionDeclaration": "function() { return this; }",
                    "objectId": object_id,
                    "returnByValue": True,
                    "awaitPromise": True,
                },
            )
            return value_from_remote_object(response["result"])
        return value_from_remote_object(self._remote_object)

    def as_element(self) -> Optional["ElementHandle"]:
        return None

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        await release_object(self._client, self._remote_object)

    def to_string(self) -> str:
        if self._remote_object.get("objectId"):
            kind = self._remote_object.get("subtype") or self._remote_object.get("type")
            return f"JSHandle@{kind}"
        return f"JSHandle:{value_from_remote_object(self._remote_object)}"

    def __repr__(self) -> str:
        return self.to_string()


class ElementHandle(JSHandle):
    """Handle to a DOM element, with element-level interaction helpers."""

    def __init__(self, context: ExecutionContext, client: Any, remote_object: Dict[str, Any], frame: "Frame"):
        super().__init__(context, client, remote_object)
        self._frame = frame

    @property
    def _page(self):
        return self._frame._frame_manager.page

    def as_element(self) -> "ElementHandle":
        return self

    async def content_frame(self) -> Optional["Frame"]:
        """Return the frame an iframe element owns, if any."""
        node_info = await self._client.send(
            "DOM.describeNode", {"objectId": self._remote_object.get("objectId")}
        )
        frame_id = node_info.get("node", {}).get("frameId")
        if not frame_id:
            return None
        return self._frame._frame_manager.frame(frame_id)

    async def _scroll_into_view_if_needed(self) -> None:
        error = await self.evaluate(
            """async element => {
                if (!element.isConnected)
                    return 'Node is detached from document';
                if (element.nodeType !== Node.ELEMENT_NODE)
                    return 'Node is not of type HTMLElement';
                const visibleRatio = await new Promise(resolve => {
                    const observer = new IntersectionObserver(entries => {
                        resolve(entries[0].intersectionRatio);
                        observer.disconnect();
                    });
                    observer.observe(element);
                });
                if (visibleRatio !== 1.0)
                    element.scrollIntoView({block: 'center', inline: 'center', behavior: 'instant'});
                return false;
            }"""
        )
        if error:
            raise PageError(error)

    async def box_model(self) -> Optional[Dict[str, Any]]:
        """
        Get the box model of the element.

        Returns:
            Dict with content/padding/border/margin quads (lists of points)
            plus width and height, or None if the element is not rendered
        """
        try:
            result = await self._client.send(
                "DOM.getBoxModel", {"objectId": self._remote_object.get("objectId")}
            )
        except CDPProtocolError as e:
            logger.debug(f"Could not compute box model: {e}")
            return None
        model = result["model"]

        def to_points(quad: List[float]) -> List[Dict[str, float]]:
            return [{"x": quad[i], "y": quad[i + 1]} for i in range(0, 8, 2)]

        return {
            "content": to_points(model["content"]),
            "padding": to_points(model["padding"]),
            "border": to_points(model["border"]),
            "margin": to_points(model["margin"]),
            "width": model["width"],
            "height": model["height"],
        }

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        """Get the border box of the element relative to the main frame viewport."""
        model = await self.box_model()
        if model is None:
            return None
        xs = [point["x"] for point in model["border"]]
        ys = [point["y"] for point in model["border"]]
        x, y = min(xs), min(ys)
        return {"x": x, "y": y, "width": max(xs) - x, "height": max(ys) - y}

    async def _clickable_point(self) -> Dict[str, float]:
        model = await self.box_model()
        if model is None or model["width"] <= 0 or model["height"] <= 0:
            raise PageError("Node is either not visible or not an HTMLElement")
        points = model["content"]
        return {
            "x": sum(point["x"] for point in points) / 4,
            "y": sum(point["y"] for point in points) / 4,
        }

    async def hover(self) -> None:
        await self._scroll_into_view_if_needed()
        point = await self._clickable_point()
        await self._page.mouse.move(point["x"], point["y"])

    async def click(self, button: str = "left", click_count: int = 1, delay: float = 0) -> None:
        """
        Scroll the element into view and click its center.

        Args:
            button: Mouse button (left, middle, right)
            click_count: Number of clicks
            delay: Seconds between mousedown and mouseup
        """
        await self._scroll_into_view_if_needed()
        point = await self._clickable_point()
        await self._page.mouse.click(
            point["x"], point["y"], button=button, click_count=click_count, delay=delay
        )

    async def tap(self) -> None:
        await self._scroll_into_view_if_needed()
        point = await self._clickable_point()
        await self._page.touchscreen.tap(point["x"], point["y"])

    async def focus(self) -> None:
        await self.evaluate("element => element.focus()")

    async def type(self, text: str, delay: float = 0) -> None:
        await self.focus()
        await self._page.keyboard.type(text, delay=delay)

    async def press(self, key: str, delay: float = 0) -> None:
        await self.focus()
        await self._page.keyboard.press(key, delay=delay)

    async def select(self, *values: str) -> List[str]:
        """Select options of a <select> element by value."""
        for value in values:
            if not isinstance(value, str):
                raise UsageError(f'Values must be strings. Found value "{value}" of type {type(value).__name__}')
        return await self.evaluate(
            """(element, values) => {
                if (element.nodeName.toLowerCase() !== 'select')
                    throw new Error('Element is not a <select> element.');
                const options = Array.from(element.options);
                element.value = undefined;
                for (const option of options) {
                    option.selected = values.includes(option.value);
                    if (option.selected && !element.multiple)
                        break;
                }
                element.dispatchEvent(new Event('input', { bubbles: true }));
                element.dispatchEvent(new Event('change', { bubbles: true }));
                return options.filter(option => option.selected).map(option => option.value);
            }""",
            list(values),
        )

    async def upload_file(self, *file_paths: str) -> None:
        """Set the files of an <input type=file> element."""
        files = [os.path.abspath(path) for path in file_paths]
        await self._client.send(
            "DOM.setFileInputFiles",
            {"objectId": self._remote_object.get("objectId"), "files": files},
        )

    async def query_selector(self, selector: str) -> Optional["ElementHandle"]:
        handle = await self.evaluate_handle(
            "(element, selector) => element.querySelector(selector)", selector
        )
        element = handle.as_element()
        if element is not None:
            return element
        await handle.dispose()
        return None

    async def query_selector_all(self, selector: str) -> List["ElementHandle"]:
        array_handle = await self.evaluate_handle(
            "(element, selector) => element.querySelectorAll(selector)", selector
        )
        return await self._collect_elements(array_handle)

    async def xpath(self, expression: str) -> List["ElementHandle"]:
        array_handle = await self.evaluate_handle(
            """(element, expression) => {
                const document = element.ownerDocument || element;
                const iterator = document.evaluate(expression, element, null, XPathResult.ORDERED_NODE_ITERATOR_TYPE);
                const array = [];
                let item;
                while ((item = iterator.iterateNext()))
                    array.push(item);
                return array;
            }""",
            expression,
        )
        return await self._collect_elements(array_handle)

    async def _collect_elements(self, array_handle: JSHandle) -> List["ElementHandle"]:
        properties = await array_handle.get_properties()
        await array_handle.dispose()
        result = []
        for handle in properties.values():
            element = handle.as_element()
            if element is not None:
                result.append(element)
            else:
                await handle.dispose()
        return result

    async def query_selector_eval(self, selector: str, page_function: PageFunction, *args: Any) -> Any:
        """
        Run a function on the first element matching a selector.

        Raises:
            ElementNotFoundError: If nothing matches
        """
        element = await self.query_selector(selector)
        if element is None:
            raise ElementNotFoundError(f'failed to find element matching selector "{selector}"')
        try:
            return await element.evaluate(page_function, *args)
        finally:
            await element.dispose()

    async def query_selector_all_eval(self, selector: str, page_function: PageFunction, *args: Any) -> Any:
        """Run a function on the array of all elements matching a selector."""
        array_handle = await self.evaluate_handle(
            "(element, selector) => Array.from(element.querySelectorAll(selector))", selector
        )
        try:
            return await array_handle.evaluate(page_function, *args)
        finally:
            await array_handle.dispose()
