"""
Input module for CDP Page.
Contains the keyboard, mouse and touchscreen devices of a page.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set, Union

from .exceptions import UsageError

logger = logging.getLogger(__name__)

# Map of special keys to their key codes and physical codes
KEY_DEFINITIONS: Dict[str, Dict[str, Union[int, str]]] = {
    "Enter": {"keyCode": 13, "key": "Enter", "code": "Enter", "text": "\r"},
    "Tab": {"keyCode": 9, "key": "Tab", "code": "Tab"},
    "Escape": {"keyCode": 27, "key": "Escape", "code": "Escape"},
    "Backspace": {"keyCode": 8, "key": "Backspace", "code": "Backspace"},
    "Delete": {"keyCode": 46, "key": "Delete", "code": "Delete"},
    "ArrowUp": {"keyCode": 38, "key": "ArrowUp", "code": "ArrowUp"},
    "ArrowDown": {"keyCode": 40, "key": "ArrowDown", "code": "ArrowDown"},
    "ArrowLeft": {"keyCode": 37, "key": "ArrowLeft", "code": "ArrowLeft"},
    "ArrowRight": {"keyCode": 39, "key": "ArrowRight", "code": "ArrowRight"},
    "Home": {"keyCode": 36, "key": "Home", "code": "Home"},
    "End": {"keyCode": 35, "key": "End", "code": "End"},
    "PageUp": {"keyCode": 33, "key": "PageUp", "code": "PageUp"},
    "PageDown": {"keyCode": 34, "key": "PageDown", "code": "PageDown"},
    "Control": {"keyCode": 17, "key": "Control", "code": "ControlLeft"},
    "Shift": {"keyCode": 16, "key": "Shift", "code": "ShiftLeft"},
    "Alt": {"keyCode": 18, "key": "Alt", "code": "AltLeft"},
    "Meta": {"keyCode": 91, "key": "Meta", "code": "MetaLeft"},
    " ": {"keyCode": 32, "key": " ", "code": "Space", "text": " "},
}

MODIFIER_BITS = {"Alt": 1, "Control": 2, "Meta": 4, "Shift": 8}


def _describe_key(key: str) -> Dict[str, Any]:
    definition = KEY_DEFINITIONS.get(key)
    if definition is not None:
        return {
            "key": definition["key"],
            "keyCode": definition["keyCode"],
            "code": definition["code"],
            "text": definition.get("text", ""),
        }
    if len(key) != 1:
        raise UsageError(f'Unknown key: "{key}"')
    if key.isalpha():
        code = f"Key{key.upper()}"
        key_code = ord(key.upper())
    elif key.isdigit():
        code = f"Digit{key}"
        key_code = ord(key)
    else:
        code = ""
        key_code = 0
    return {"key": key, "keyCode": key_code, "code": code, "text": key}


class Keyboard:
    """
    Simulates keyboard input via CDP.
    """

    def __init__(self, client: Any):
        self._client = client
        self._modifiers = 0
        self._pressed_keys: Set[str] = set()

    @property
    def modifiers(self) -> int:
        return self._modifiers

    async def down(self, key: str, text: Optional[str] = None) -> None:
        """
        Dispatch a keydown event.

        Args:
            key: Key name (e.g., 'Enter', 'Shift', 'a')
            text: Text to insert; defaults to the key's own text
        """
        description = _describe_key(key)
        auto_repeat = description["code"] in self._pressed_keys
        self._pressed_keys.add(description["code"])
        self._modifiers |= MODIFIER_BITS.get(description["key"], 0)

        if text is None:
            text = description["text"]
        await self._client.send(
            "Input.dispatchKeyEvent",
            {
                "type": "keyDown" if text else "rawKeyDown",
                "modifiers": self._modifiers,
                "windowsVirtualKeyCode": description["keyCode"],
                "code": description["code"],
                "key": description["key"],
                "text": text,
                "unmodifiedText": text,
                "autoRepeat": auto_repeat,
                "location": 0,
                "isKeypad": False,
            },
        )

    async def up(self, key: str) -> None:
        """Dispatch a keyup event."""
        description = _describe_key(key)
        self._modifiers &= ~MODIFIER_BITS.get(description["key"], 0)
        self._pressed_keys.discard(description["code"])
        await self._client.send(
            "Input.dispatchKeyEvent",
            {
                "type": "keyUp",
                "modifiers": self._modifiers,
                "key": description["key"],
                "windowsVirtualKeyCode": description["keyCode"],
                "code": description["code"],
                "location": 0,
            },
        )

    async def send_character(self, char: str) -> None:
        """Insert text without key events."""
        await self._client.send("Input.insertText", {"text": char})

    async def type(self, text: str, delay: float = 0) -> None:
        """
        Type text one character at a time.

        Args:
            text: Text to type
            delay: Seconds between keystrokes
        """
        for char in text:
            if char in KEY_DEFINITIONS or len(char) == 1 and char.isalnum():
                await self.press(char)
            else:
                await self.send_character(char)
            if delay > 0:
                await asyncio.sleep(delay)

    async def press(self, key: str, text: Optional[str] = None, delay: float = 0) -> None:
        """
        Press and release a key.

        Args:
            key: Key to press (e.g., 'Enter', 'Tab', 'a')
            text: Text to insert on keydown
            delay: Seconds between keydown and keyup
        """
        await self.down(key, text)
        if delay > 0:
            await asyncio.sleep(delay)
        await self.up(key)


class Mouse:
    """
    Simulates mouse input via CDP.
    """

    def __init__(self, client: Any, keyboard: Keyboard):
        self._client = client
        self._keyboard = keyboard
        self._x = 0.0
        self._y = 0.0
        self._button = "none"

    async def _mouse_event(self, type: str, x: float, y: float, button: str, click_count: int = 0) -> None:
        await self._client.send(
            "Input.dispatchMouseEvent",
            {
                "type": type,
                "x": x,
                "y": y,
                "button": button,
                "clickCount": click_count,
                "modifiers": self._keyboard.modifiers,
            },
        )

    async def move(self, x: float, y: float, steps: int = 1) -> None:
        """Move the pointer, interpolating intermediate positions."""
        from_x, from_y = self._x, self._y
        self._x, self._y = x, y
        for i in range(1, steps + 1):
            await self._mouse_event(
                "mouseMoved",
                from_x + (x - from_x) * (i / steps),
                from_y + (y - from_y) * (i / steps),
                self._button,
            )

    async def click(
        self, x: float, y: float, button: str = "left", click_count: int = 1, delay: float = 0
    ) -> None:
        """
        Click at a position.

        Args:
            x: X coordinate
            y: Y coordinate
            button: Mouse button (left, middle, right)
            click_count: Number of clicks
            delay: Seconds between mousedown and mouseup
        """
        await self.move(x, y)
        await self.down(button=button, click_count=click_count)
        if delay > 0:
            await asyncio.sleep(delay)
        await self.up(button=button, click_count=click_count)

    async def down(self, button: str = "left", click_count: int = 1) -> None:
        self._button = button
        await self._mouse_event("mousePressed", self._x, self._y, button, click_count)

    async def up(self, button: str = "left", click_count: int = 1) -> None:
        self._button = "none"
        await self._mouse_event("mouseReleased", self._x, self._y, button, click_count)

    async def wheel(self, delta_x: float = 0, delta_y: float = 0) -> None:
        await self._client.send(
            "Input.dispatchMouseEvent",
            {
                "type": "mouseWheel",
                "x": self._x,
                "y": self._y,
                "deltaX": delta_x,
                "deltaY": delta_y,
                "modifiers": self._keyboard.modifiers,
                "pointerType": "mouse",
            },
        )


class Touchscreen:
    """
    Simulates touch input via CDP.
    """

    def __init__(self, client: Any, keyboard: Keyboard):
        self._client = client
        self._keyboard = keyboard

    async def tap(self, x: float, y: float) -> None:
        touch_points = [{"x": round(x), "y": round(y)}]
        await self._client.send(
            "Input.dispatchTouchEvent",
            {"type": "touchStart", "touchPoints": touch_points, "modifiers": self._keyboard.modifiers},
        )
        await self._client.send(
            "Input.dispatchTouchEvent",
            {"type": "touchEnd", "touchPoints": [], "modifiers": self._keyboard.modifiers},
        )
