from __future__ import annotations

from typing import Sequence


class ServezError(Exception):
    """Base class for every error raised by the server core."""


class InvalidConfig(ServezError, ValueError):
    """Raised when a configuration is rejected before any socket is touched."""

    def __init__(self, errors: Sequence[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid_config")


class BindError(ServezError, OSError):
    """Raised when the listening socket cannot be bound."""

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        self.host = host
        self.port = port
        self.cause = cause
        reason = cause.strerror or str(cause)
        super().__init__(f"could not listen on {host}:{port}: {reason}")


class PathEscape(ServezError):
    """Raised when a request path resolves outside the served root."""

    def __init__(self, url_path: str) -> None:
        super().__init__(f"path escapes root: {url_path!r}")
        self.url_path = url_path


class RequestIOError(ServezError):
    """Filesystem failure while answering a single request."""


class UnhandledPipelineError(ServezError):
    """Wraps any other exception that reached the pipeline boundary."""

    def __init__(self, original: BaseException) -> None:
        super().__init__(str(original) or original.__class__.__name__)
        self.original = original


__all__ = [
    "ServezError",
    "InvalidConfig",
    "BindError",
    "PathEscape",
    "RequestIOError",
    "UnhandledPipelineError",
]
