"""
Browser module for CDP Page.
Contains the browser, page, frame and handle classes.
"""
from .browser import Browser, BrowserContext, Target
from .events import BrowserEvent, PageEvent
from .exceptions import (
    ElementNotFoundError,
    EvaluationError,
    NavigationError,
    PageError,
    TargetClosedError,
    TargetCrashedError,
    TimeoutError,
    UsageError,
)
from .helpers import JSExpression, JSFunction
from .page import ConsoleMessage, Page

__all__ = [
    'Browser',
    'BrowserContext',
    'BrowserEvent',
    'ConsoleMessage',
    'ElementNotFoundError',
    'EvaluationError',
    'JSExpression',
    'JSFunction',
    'NavigationError',
    'Page',
    'PageError',
    'PageEvent',
    'Target',
    'TargetClosedError',
    'TargetCrashedError',
    'TimeoutError',
    'UsageError',
]
