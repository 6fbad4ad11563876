"""Embeddable static HTTP file server."""

from .config import ServerConfig
from .errors import BindError, InvalidConfig, PathEscape, RequestIOError, ServezError
from .events import LifecycleEvent
from .host import ServezHost
from .lifecycle import ServerState, StaticServer
from .pipeline import RequestPipeline

__all__ = [
    "BindError",
    "InvalidConfig",
    "LifecycleEvent",
    "PathEscape",
    "RequestIOError",
    "RequestPipeline",
    "ServerConfig",
    "ServerState",
    "ServezError",
    "ServezHost",
    "StaticServer",
]
