"""
Exceptions for CDP Page.
"""
from typing import Optional

from cdp_page.core.exceptions import CDPConnectionError, CDPError


class BrowserError(CDPError):
    """Base exception for browser-related errors."""
    pass


class PageError(BrowserError):
    """Base exception for page-related errors."""
    pass


class NavigationError(PageError):
    """Raised when navigation fails or the navigating frame goes away."""
    pass


class TimeoutError(PageError):
    """Raised when an operation times out."""
    pass


class TargetClosedError(PageError, CDPConnectionError):
    """Raised when the page was closed or its session disconnected."""
    pass


class TargetCrashedError(TargetClosedError):
    """Raised once the renderer of the page crashed."""
    pass


class UsageError(PageError, ValueError):
    """Raised for invalid arguments, before any protocol traffic."""
    pass


class ElementNotFoundError(PageError):
    """Raised when a selector used by an eval helper matches nothing."""
    pass


class EvaluationError(PageError):
    """
    Raised when code evaluated in the page throws.

    Attributes:
        remote_message: Message of the remote exception
        remote_stack: Remote stack trace, when available
    """

    def __init__(self, remote_message: str, remote_stack: Optional[str] = None):
        super().__init__(f"Evaluation failed: {remote_message}")
        self.remote_message = remote_message
        self.remote_stack = remote_stack
