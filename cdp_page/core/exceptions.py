"""
Exceptions module for CDP Page.
Contains custom exceptions for CDP-related errors.
"""
from typing import Optional


class CDPError(Exception):
    """Base exception for all CDP-related errors."""
    pass


class CDPConnectionError(CDPError):
    """Exception raised when the transport is down or the session is gone."""
    pass


class CDPTimeoutError(CDPError):
    """Exception raised for CDP timeout errors."""
    pass


class CDPProtocolError(CDPError):
    """
    Exception raised when the remote end answers a command with an error.

    Attributes:
        method: CDP method that failed
        code: Remote error code
        message: Remote error message
    """

    def __init__(self, message: str, method: Optional[str] = None, code: int = -1):
        self.method = method
        self.code = code
        self.message = message
        if method:
            super().__init__(f"Protocol error ({method}): {message}")
        else:
            super().__init__(f"Protocol error: {message}")
