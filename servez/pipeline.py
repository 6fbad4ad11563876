"""ASGI request pipeline: CORS, access log, resolution, dispatch, fallbacks."""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Any, Callable

import anyio
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.types import Message, Receive, Scope, Send

from .config import ServerConfig
from .cors import ALLOWED_METHODS, CorsMiddleware
from .errors import PathEscape, RequestIOError, UnhandledPipelineError
from .listing import DirectoryListingRenderer, wants_json
from .metrics import REQUEST_ERRORS_TOTAL, REQUESTS_TOTAL
from .resolver import Disposition, PathResolver
from .responder import NO_CACHE_HEADERS, StaticFileResponder


LOGGER = logging.getLogger("servez.pipeline")
ACCESS_LOGGER = logging.getLogger("servez.access")

SERVED_METHODS = frozenset({"GET", "HEAD"})

Emit = Callable[..., Any]


def _ignore(*_args: Any, **_kwargs: Any) -> None:
    return None


def _request_path(request: Request) -> str:
    # scope path is already percent-decoded; request.url would re-parse it
    return request.scope.get("path") or "/"


def _request_target(request: Request) -> str:
    path = _request_path(request)
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


class RequestPipeline:
    """Serve one immutable ``ServerConfig``.

    ``emit`` receives ``(kind, **payload)`` for host-facing ``log`` and
    ``error`` events. Nothing raised while handling a request escapes
    ``__call__``.
    """

    def __init__(self, config: ServerConfig, *, emit: Emit | None = None) -> None:
        self.config = config
        self.resolver = PathResolver(
            config.root,
            index=config.index,
            dirs=config.dirs,
            extensions=config.extensions,
        )
        self.listing = DirectoryListingRenderer(self.resolver.real_root)
        self.responder = StaticFileResponder()
        self.cors = CorsMiddleware(config.cors)
        self._emit = emit or _ignore

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return
        request = Request(scope, receive)
        method = request.method.upper()
        target = _request_target(request)
        response_started = False

        async def _send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        if self.cors.is_preflight(method):
            response = self._finalize(self.cors.preflight_response())
            await response(scope, receive, _send)
            REQUESTS_TOTAL.labels(method=method, status=str(response.status_code)).inc()
            return

        self._emit("log", message=f"{method} {target}")
        status = 500
        try:
            response = self._finalize(await self.handle(request))
            status = response.status_code
            await response(scope, receive, _send)
        except Exception as exc:
            status = 500
            error = self._report_error(method, target, exc)
            if response_started:
                LOGGER.warning("response_aborted method=%s path=%s", method, target)
                return
            await self._finalize(self.server_error(error))(scope, receive, _send)
        finally:
            REQUESTS_TOTAL.labels(method=method, status=str(status)).inc()
            ACCESS_LOGGER.info("%s %s %s", method, target, status)

    async def handle(self, request: Request) -> Response:
        method = request.method.upper()
        path = _request_path(request)
        if method not in SERVED_METHODS:
            return Response(status_code=405, headers={"Allow": ALLOWED_METHODS})

        try:
            resolution = await anyio.to_thread.run_sync(self.resolver.resolve, path)
        except PathEscape:
            LOGGER.warning("path_escape method=%s path=%r", method, path)
            REQUEST_ERRORS_TOTAL.labels(kind="path_escape").inc()
            return self.not_found(method, path)

        fs_path = resolution.fs_path
        if fs_path is None or not resolution.found:
            return self.not_found(method, path)
        if resolution.disposition in (Disposition.FILE, Disposition.INDEX_FALLBACK):
            return await self.responder.respond(
                fs_path,
                method=method,
                request_headers=request.headers,
            )
        if resolution.disposition is Disposition.DIRECTORY:
            return await self.render_listing(request, resolution.url_path, fs_path)
        return self.not_found(method, path)

    async def render_listing(self, request: Request, url_path: str, directory: Path) -> Response:
        entries = await anyio.to_thread.run_sync(self.listing.entries, directory)
        if wants_json(request.headers.get("accept")):
            body = self.listing.render_json(entries)
            media_type = "application/json"
        else:
            body = self.listing.render_html(url_path, entries)
            media_type = "text/html"
        if request.method.upper() == "HEAD":
            response = Response(b"", media_type=media_type)
            response.headers["content-length"] = str(len(body.encode("utf-8")))
            return response
        return Response(body, media_type=media_type)

    def not_found(self, method: str, path: str) -> Response:
        self._emit("error", message=f"ERROR: {method} {path} 404")
        return HTMLResponse(
            f"<pre>ERROR 404: No such path {html.escape(path)}</pre>",
            status_code=404,
        )

    def server_error(self, error: Exception) -> Response:
        return HTMLResponse(f"<pre>{html.escape(str(error))}</pre>", status_code=500)

    def _report_error(self, method: str, target: str, exc: Exception) -> Exception:
        if isinstance(exc, RequestIOError):
            REQUEST_ERRORS_TOTAL.labels(kind="io").inc()
            LOGGER.error("request_io_error method=%s path=%s error=%s", method, target, exc)
            error: Exception = exc
        else:
            REQUEST_ERRORS_TOTAL.labels(kind="unhandled").inc()
            LOGGER.exception("unhandled_pipeline_error method=%s path=%s", method, target)
            error = UnhandledPipelineError(exc)
        self._emit("error", message=f"ERROR: {method} {target} {error}")
        return error

    def _finalize(self, response: Response) -> Response:
        for name, value in NO_CACHE_HEADERS.items():
            response.headers[name] = value
        return self.cors.apply(response)


__all__ = ["RequestPipeline", "SERVED_METHODS"]
