"""
Event names emitted by pages, frame managers and network managers.
"""
from enum import Enum


class PageEvent(str, Enum):
    CLOSE = "close"
    CONSOLE = "console"
    DIALOG = "dialog"
    DOMCONTENTLOADED = "domcontentloaded"
    LOAD = "load"
    ERROR = "error"
    PAGEERROR = "pageerror"
    FRAME_ATTACHED = "frameattached"
    FRAME_DETACHED = "framedetached"
    FRAME_NAVIGATED = "framenavigated"
    METRICS = "metrics"
    POPUP = "popup"
    REQUEST = "request"
    REQUEST_FAILED = "requestfailed"
    REQUEST_FINISHED = "requestfinished"
    RESPONSE = "response"
    WORKER_CREATED = "workercreated"
    WORKER_DESTROYED = "workerdestroyed"


class FrameManagerEvent(str, Enum):
    FRAME_ATTACHED = "FrameManager.FrameAttached"
    FRAME_NAVIGATED = "FrameManager.FrameNavigated"
    FRAME_DETACHED = "FrameManager.FrameDetached"
    LIFECYCLE_EVENT = "FrameManager.LifecycleEvent"
    FRAME_NAVIGATED_WITHIN_DOCUMENT = "FrameManager.FrameNavigatedWithinDocument"
    EXECUTION_CONTEXT_CREATED = "FrameManager.ExecutionContextCreated"
    EXECUTION_CONTEXT_DESTROYED = "FrameManager.ExecutionContextDestroyed"


class NetworkEvent(str, Enum):
    REQUEST = "NetworkManager.Request"
    RESPONSE = "NetworkManager.Response"
    REQUEST_FAILED = "NetworkManager.RequestFailed"
    REQUEST_FINISHED = "NetworkManager.RequestFinished"


class BrowserEvent(str, Enum):
    TARGET_CREATED = "targetcreated"
    TARGET_DESTROYED = "targetdestroyed"
    TARGET_CHANGED = "targetchanged"
    DISCONNECTED = "disconnected"
