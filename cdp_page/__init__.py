"""
CDP Page: drive a Chrome tab over the Chrome DevTools Protocol.
"""
from .browser import Browser, Page
from .utils.config import BrowserConfig

__version__ = "0.1.0"

__all__ = ["Browser", "Page", "BrowserConfig", "__version__"]
