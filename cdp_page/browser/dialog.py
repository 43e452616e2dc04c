"""
JavaScript dialogs raised by the page.
"""
import logging
from enum import Enum
from typing import Any, Optional

from .exceptions import UsageError

logger = logging.getLogger(__name__)


class DialogType(str, Enum):
    ALERT = "alert"
    BEFOREUNLOAD = "beforeunload"
    CONFIRM = "confirm"
    PROMPT = "prompt"


class Dialog:
    """
    An alert, confirm, prompt or beforeunload dialog.

    The page stays blocked until ``accept`` or ``dismiss`` is called.
    """

    def __init__(self, client: Any, type: str, message: str, default_value: str = ""):
        self._client = client
        self._type = DialogType(type)
        self._message = message
        self._default_value = default_value
        self._handled = False

    @property
    def type(self) -> DialogType:
        return self._type

    @property
    def message(self) -> str:
        return self._message

    @property
    def default_value(self) -> str:
        return self._default_value

    @property
    def handled(self) -> bool:
        return self._handled

    async def accept(self, prompt_text: Optional[str] = None) -> None:
        """
        Accept the dialog.

        Args:
            prompt_text: Text entered into a prompt dialog
        """
        self._mark_handled()
        params = {"accept": True}
        if prompt_text is not None:
            params["promptText"] = prompt_text
        await self._client.send("Page.handleJavaScriptDialog", params)

    async def dismiss(self) -> None:
        self._mark_handled()
        await self._client.send("Page.handleJavaScriptDialog", {"accept": False})

    def _mark_handled(self) -> None:
        if self._handled:
            raise UsageError("Cannot accept dialog which is already handled!")
        self._handled = True
