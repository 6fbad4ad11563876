"""HTML and JSON directory listings."""

from __future__ import annotations

import html
import json
import logging
import os
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import quote

from .errors import RequestIOError
from .resolver import is_within


LOGGER = logging.getLogger("servez.listing")

LISTING_STYLESHEET = """
body { font-family: -apple-system, "Segoe UI", Helvetica, Arial, sans-serif; margin: 2em; color: #333; }
h1 { font-size: 1.2em; font-weight: normal; }
table { border-collapse: collapse; min-width: 50%; }
td { padding: 0.2em 1em 0.2em 0; }
td.size, td.mtime { color: #888; white-space: nowrap; }
a { text-decoration: none; color: #0366d6; }
a:hover { text-decoration: underline; }
tr.directory a { font-weight: bold; }
""".strip()


@dataclass(frozen=True, slots=True)
class ListingEntry:
    name: str
    is_dir: bool
    size: int | None = None
    mtime: float | None = None

    @property
    def display_name(self) -> str:
        # undecodable bytes in the on-disk name show up as U+FFFD
        return self.name.encode("utf-8", "surrogateescape").decode("utf-8", "replace")

    @property
    def sort_key(self) -> tuple[int, str, str]:
        return (0 if self.is_dir else 1, self.name.casefold(), self.name)

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.display_name,
            "type": "directory" if self.is_dir else "file",
            "size": self.size,
            "mtime": _format_mtime(self.mtime),
        }


def _format_mtime(mtime: float | None) -> str | None:
    if mtime is None:
        return None
    stamp = datetime.fromtimestamp(mtime, tz=timezone.utc)
    return stamp.strftime("%Y-%m-%dT%H:%MZ")


def _format_size(size: int | None) -> str:
    if size is None:
        return ""
    value = float(size)
    for unit in ("B", "kB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"  # pragma: no cover - loop always returns


def sort_entries(entries: Iterable[ListingEntry]) -> list[ListingEntry]:
    return sorted(entries, key=lambda entry: entry.sort_key)


def read_entries(directory: Path | str, real_root: str) -> list[ListingEntry]:
    """Enumerate ``directory`` skipping dotfiles and links that leave the root."""

    entries: list[ListingEntry] = []
    try:
        with os.scandir(directory) as iterator:
            for item in iterator:
                if item.name.startswith("."):
                    continue
                try:
                    if item.is_symlink():
                        target = os.path.realpath(item.path)
                        if not is_within(target, real_root):
                            LOGGER.debug("skip_escaping_link path=%s target=%s", item.path, target)
                            continue
                    stat = item.stat()
                    is_dir = item.is_dir()
                except OSError:
                    # broken link or entry removed while listing
                    continue
                entries.append(
                    ListingEntry(
                        name=item.name,
                        is_dir=is_dir,
                        size=None if is_dir else stat.st_size,
                        mtime=stat.st_mtime,
                    )
                )
    except OSError as exc:
        raise RequestIOError(f"cannot list directory {directory}: {exc.strerror or exc}") from exc
    return sort_entries(entries)


def _href(url_path: str, name: str, is_dir: bool) -> str:
    target = posixpath.join(url_path if url_path.endswith("/") else url_path + "/", name)
    if is_dir:
        target += "/"
    return quote(os.fsencode(target))


def parent_href(url_path: str) -> str | None:
    cleaned = "/" + url_path.strip("/")
    if cleaned == "/":
        return None
    parent = posixpath.dirname(cleaned)
    return quote(parent if parent.endswith("/") else parent + "/")


class DirectoryListingRenderer:
    """Render a listing for a directory that has no index file."""

    def __init__(self, real_root: str) -> None:
        self.real_root = real_root

    def entries(self, directory: Path | str) -> list[ListingEntry]:
        return read_entries(directory, self.real_root)

    def render_html(self, url_path: str, entries: Iterable[ListingEntry]) -> str:
        display = "/" + url_path.strip("/")
        if display != "/":
            display += "/"
        title = html.escape(f"listing directory {display}")
        rows = []
        parent = parent_href(url_path)
        if parent is not None:
            rows.append(
                f'<tr class="directory parent"><td><a href="{html.escape(parent)}">..</a></td>'
                '<td class="size"></td><td class="mtime"></td></tr>'
            )
        for entry in entries:
            css = "directory" if entry.is_dir else "file"
            label = entry.display_name + ("/" if entry.is_dir else "")
            href = html.escape(_href(url_path, entry.name, entry.is_dir))
            rows.append(
                f'<tr class="{css}"><td><a href="{href}">{html.escape(label)}</a></td>'
                f'<td class="size">{_format_size(entry.size)}</td>'
                f'<td class="mtime">{_format_mtime(entry.mtime) or ""}</td></tr>'
            )
        body = "\n".join(rows)
        return (
            "<!DOCTYPE html>\n"
            '<html><head><meta charset="utf-8">'
            '<meta name="viewport" content="width=device-width">'
            f"<title>{title}</title><style>{LISTING_STYLESHEET}</style></head>\n"
            f"<body><h1>{title}</h1>\n<table>\n{body}\n</table>\n</body></html>\n"
        )

    def render_json(self, entries: Iterable[ListingEntry]) -> str:
        return json.dumps([entry.to_payload() for entry in entries])


def wants_json(accept: str | None) -> bool:
    """True when ``application/json`` outranks ``text/html`` in ``accept``."""

    if not accept:
        return False
    ranks: dict[str, float] = {}
    for part in accept.split(","):
        pieces = [piece.strip() for piece in part.split(";")]
        media = pieces[0].lower()
        quality = 1.0
        for param in pieces[1:]:
            if param.startswith("q="):
                try:
                    quality = float(param[2:])
                except ValueError:
                    quality = 0.0
        ranks[media] = max(quality, ranks.get(media, 0.0))
    json_rank = ranks.get("application/json", 0.0)
    return json_rank > 0 and json_rank > ranks.get("text/html", 0.0)


__all__ = [
    "DirectoryListingRenderer",
    "ListingEntry",
    "parent_href",
    "read_entries",
    "sort_entries",
    "wants_json",
]
