"""Stream resolved files with no-cache and validator headers."""

from __future__ import annotations

import mimetypes
import os
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import AsyncIterator, Mapping

import anyio
from starlette.responses import Response, StreamingResponse

from .errors import RequestIOError


# Served files must never be cached by browsers or proxies.
NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

DEFAULT_MEDIA_TYPE = "application/octet-stream"
CHUNK_SIZE = 64 * 1024

mimetypes.add_type("application/javascript", ".js")
mimetypes.add_type("application/javascript", ".mjs")
mimetypes.add_type("application/wasm", ".wasm")


def guess_media_type(path: Path | str) -> str:
    media_type, _ = mimetypes.guess_type(str(path))
    if not media_type:
        return DEFAULT_MEDIA_TYPE
    if media_type.startswith("text/") or media_type in {"application/javascript", "application/json"}:
        return f"{media_type}; charset=utf-8"
    return media_type


def make_etag(stat: os.stat_result) -> str:
    return f'W/"{stat.st_size:x}-{int(stat.st_mtime * 1000):x}"'


def _etag_matches(header: str, etag: str) -> bool:
    candidates = [item.strip() for item in header.split(",")]
    if "*" in candidates:
        return True
    bare = etag[2:] if etag.startswith("W/") else etag
    for candidate in candidates:
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == bare:
            return True
    return False


def is_not_modified(request_headers: Mapping[str, str], etag: str, mtime: float) -> bool:
    if_none_match = request_headers.get("if-none-match")
    if if_none_match:
        return _etag_matches(if_none_match, etag)
    if_modified_since = request_headers.get("if-modified-since")
    if not if_modified_since:
        return False
    try:
        since = parsedate_to_datetime(if_modified_since)
    except (TypeError, ValueError, IndexError):
        return False
    if since is None:
        return False
    return int(mtime) <= int(since.timestamp())


class StaticFileResponder:
    """Build the response for a file that the resolver has located."""

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size

    async def respond(
        self,
        path: Path,
        *,
        method: str = "GET",
        request_headers: Mapping[str, str] | None = None,
    ) -> Response:
        request_headers = request_headers or {}
        try:
            handle = await anyio.open_file(path, mode="rb")
        except OSError as exc:
            raise RequestIOError(f"cannot open {path.name}: {exc.strerror or exc}") from exc

        try:
            stat = await anyio.to_thread.run_sync(os.fstat, handle.wrapped.fileno())
        except OSError as exc:
            await handle.aclose()
            raise RequestIOError(f"cannot stat {path.name}: {exc.strerror or exc}") from exc

        etag = make_etag(stat)
        headers = dict(NO_CACHE_HEADERS)
        headers["ETag"] = etag
        headers["Last-Modified"] = formatdate(stat.st_mtime, usegmt=True)
        media_type = guess_media_type(path)

        if is_not_modified(request_headers, etag, stat.st_mtime):
            await handle.aclose()
            return Response(status_code=304, headers=headers)

        if method.upper() == "HEAD":
            await handle.aclose()
            response = Response(b"", status_code=200, headers=headers, media_type=media_type)
            response.headers["content-length"] = str(stat.st_size)
            return response

        headers["Content-Length"] = str(stat.st_size)
        return StreamingResponse(
            self._stream(handle),
            status_code=200,
            headers=headers,
            media_type=media_type,
        )

    async def _stream(self, handle: anyio.AsyncFile[bytes]) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await handle.aclose()


__all__ = [
    "CHUNK_SIZE",
    "DEFAULT_MEDIA_TYPE",
    "NO_CACHE_HEADERS",
    "StaticFileResponder",
    "guess_media_type",
    "is_not_modified",
    "make_etag",
]
