"""
Timeout settings for a page.
"""
from typing import Optional

from .exceptions import UsageError

DEFAULT_TIMEOUT = 30.0


class TimeoutSettings:
    """
    Default timeouts of a page, in seconds.

    Waits read these values once when they start, so changing a default never
    affects a wait that is already running. A value of 0 disables the timer.
    """

    def __init__(
        self,
        default_timeout: Optional[float] = None,
        navigation_timeout: Optional[float] = None,
    ):
        self._default_timeout: Optional[float] = None
        self._navigation_timeout: Optional[float] = None
        if default_timeout is not None:
            self.set_default_timeout(default_timeout)
        if navigation_timeout is not None:
            self.set_default_navigation_timeout(navigation_timeout)

    @staticmethod
    def _validate(timeout: float) -> float:
        if timeout is None or timeout < 0:
            raise UsageError(f"Timeout must be a non-negative number of seconds, got {timeout}")
        return float(timeout)

    def set_default_timeout(self, timeout: float) -> None:
        self._default_timeout = self._validate(timeout)

    def set_default_navigation_timeout(self, timeout: float) -> None:
        self._navigation_timeout = self._validate(timeout)

    def navigation_timeout(self, override: Optional[float] = None) -> float:
        """Effective navigation timeout for one call."""
        if override is not None:
            return self._validate(override)
        if self._navigation_timeout is not None:
            return self._navigation_timeout
        if self._default_timeout is not None:
            return self._default_timeout
        return DEFAULT_TIMEOUT

    def timeout(self, override: Optional[float] = None) -> float:
        """Effective timeout for one non-navigation wait."""
        if override is not None:
            return self._validate(override)
        if self._default_timeout is not None:
            return self._default_timeout
        return DEFAULT_TIMEOUT
