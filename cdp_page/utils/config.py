"""
Configuration utility module for CDP Page.
Contains the connection and page defaults used to build a Browser.
"""
import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def parse_viewport(value: str) -> Dict[str, Any]:
    """
    Parse a viewport given as ``WIDTHxHEIGHT``.

    Args:
        value: Viewport string, e.g. '1280x720'

    Returns:
        Viewport dict with width and height

    Raises:
        ValueError: If the string is malformed
    """
    try:
        width, height = value.lower().split("x", 1)
        viewport = {"width": int(width), "height": int(height)}
    except ValueError:
        raise ValueError(f"Viewport must look like WIDTHxHEIGHT, got {value!r}")
    if viewport["width"] <= 0 or viewport["height"] <= 0:
        raise ValueError(f"Viewport dimensions must be positive, got {value!r}")
    return viewport


class BrowserConfig:
    """
    Connection settings for a Chrome instance plus defaults for its pages.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 9222,
        ws_endpoint: Optional[str] = None,
        default_timeout: Optional[float] = None,
        navigation_timeout: Optional[float] = None,
        ignore_https_errors: bool = False,
        default_viewport: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
    ):
        """
        Initialize a BrowserConfig instance.

        Args:
            host: Chrome DevTools host
            port: Chrome DevTools port
            ws_endpoint: Browser WebSocket URL; skips endpoint discovery
            default_timeout: Default wait timeout of pages, in seconds
            navigation_timeout: Default navigation timeout of pages, in seconds
            ignore_https_errors: Ignore certificate errors
            default_viewport: Viewport applied to new pages
            max_retries: Endpoint discovery attempts
        """
        if port <= 0 or port > 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")
        for name, value in (("default_timeout", default_timeout), ("navigation_timeout", navigation_timeout)):
            if value is not None and value < 0:
                raise ValueError(f"{name} must not be negative, got {value}")
        self.host = host
        self.port = port
        self.ws_endpoint = ws_endpoint
        self.default_timeout = default_timeout
        self.navigation_timeout = navigation_timeout
        self.ignore_https_errors = ignore_https_errors
        self.default_viewport = default_viewport
        self.max_retries = max_retries

    @property
    def http_endpoint(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "BrowserConfig":
        """
        Create a BrowserConfig from an endpoint URL.

        Args:
            url: ``http://host:port`` of the debugging interface, or a
                ``ws://`` browser WebSocket URL
            **kwargs: Other BrowserConfig arguments

        Returns:
            BrowserConfig instance
        """
        parsed = urlparse(url if "://" in url else f"http://{url}")
        if parsed.scheme in ("ws", "wss"):
            kwargs.setdefault("ws_endpoint", url)
        elif parsed.scheme not in ("http", "https"):
            raise ValueError(f"Unsupported endpoint scheme: {parsed.scheme}")
        host = parsed.hostname or "localhost"
        port = parsed.port or 9222
        return cls(host=host, port=port, **kwargs)

    @classmethod
    def from_env(cls, prefix: str = "CDP_") -> "BrowserConfig":
        """
        Create a BrowserConfig from environment variables.

        Reads HOST, PORT, WS_ENDPOINT, TIMEOUT, NAVIGATION_TIMEOUT,
        IGNORE_HTTPS_ERRORS and VIEWPORT, each with the given prefix.

        Args:
            prefix: Environment variable prefix

        Returns:
            BrowserConfig instance
        """
        def env(name: str) -> Optional[str]:
            value = os.environ.get(f"{prefix}{name}")
            return value if value else None

        kwargs: Dict[str, Any] = {}
        if env("HOST"):
            kwargs["host"] = env("HOST")
        if env("PORT"):
            kwargs["port"] = int(env("PORT"))
        if env("WS_ENDPOINT"):
            kwargs["ws_endpoint"] = env("WS_ENDPOINT")
        if env("TIMEOUT"):
            kwargs["default_timeout"] = float(env("TIMEOUT"))
        if env("NAVIGATION_TIMEOUT"):
            kwargs["navigation_timeout"] = float(env("NAVIGATION_TIMEOUT"))
        if env("IGNORE_HTTPS_ERRORS"):
            kwargs["ignore_https_errors"] = env("IGNORE_HTTPS_ERRORS").lower() in _TRUE_VALUES
        if env("VIEWPORT"):
            kwargs["default_viewport"] = parse_viewport(env("VIEWPORT"))
        logger.debug(f"Loaded browser config from environment: {sorted(kwargs)}")
        return cls(**kwargs)

    def __repr__(self) -> str:
        endpoint = self.ws_endpoint or self.http_endpoint
        return f"<BrowserConfig {endpoint}>"
