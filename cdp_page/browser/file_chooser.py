"""
File chooser dialogs intercepted from the page.
"""
from typing import Any, Dict

from .exceptions import UsageError
from .js_handle import ElementHandle


class FileChooser:
    """A file chooser opened by an <input type=file> element."""

    def __init__(self, element: ElementHandle, event: Dict[str, Any]):
        self._element = element
        self._multiple = event.get("mode") != "selectSingle"
        self._handled = False

    @property
    def element(self) -> ElementHandle:
        return self._element

    def is_multiple(self) -> bool:
        return self._multiple

    async def accept(self, *file_paths: str) -> None:
        """Select files for the input."""
        if self._handled:
            raise UsageError("Cannot accept FileChooser which is already handled!")
        if len(file_paths) > 1 and not self._multiple:
            raise UsageError("Cannot select multiple files in a single-file chooser")
        self._handled = True
        await self._element.upload_file(*file_paths)

    async def cancel(self) -> None:
        """Close the chooser without selecting files."""
        if self._handled:
            raise UsageError("Cannot cancel FileChooser which is already handled!")
        self._handled = True
