"""Map request URL paths onto files below the served root."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .errors import PathEscape


LOGGER = logging.getLogger("servez.resolver")

INDEX_FILE = "index.html"


class Disposition(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    INDEX_FALLBACK = "index_fallback"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class Resolution:
    disposition: Disposition
    url_path: str
    fs_path: Path | None = None

    @property
    def found(self) -> bool:
        return self.disposition is not Disposition.NOT_FOUND


def is_within(path: str, root: str) -> bool:
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def _is_hidden(segment: str) -> bool:
    return segment.startswith(".") and segment not in {".", ".."}


class PathResolver:
    """Classify a URL path as file, directory, index fallback or not found.

    The filesystem is consulted on every call. Symlinks are resolved before
    the containment check, so a link pointing out of ``root`` is treated as
    an escape attempt.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        index: bool = True,
        dirs: bool = True,
        extensions: Sequence[str] = (),
    ) -> None:
        self.root = Path(root)
        self.real_root = os.path.realpath(self.root)
        self.index = index
        self.dirs = dirs
        self.extensions = tuple(extensions)

    def contains(self, candidate: str | Path) -> bool:
        return is_within(os.path.realpath(candidate), self.real_root)

    def _segments(self, url_path: str) -> list[str]:
        if "\x00" in url_path:
            raise PathEscape(url_path)
        cleaned = url_path.replace("\\", "/")
        if not cleaned.startswith("/"):
            cleaned = "/" + cleaned
        parts: list[str] = []
        for segment in cleaned.split("/"):
            if segment in {"", "."}:
                continue
            if segment == "..":
                if not parts:
                    raise PathEscape(url_path)
                parts.pop()
                continue
            # "C:" style drive prefixes would let join() discard the root on Windows
            if os.path.splitdrive(segment)[0]:
                raise PathEscape(url_path)
            parts.append(segment)
        return parts

    def _real(self, candidate: str, url_path: str) -> str:
        real = os.path.realpath(candidate)
        if not is_within(real, self.real_root):
            raise PathEscape(url_path)
        return real

    def resolve(self, url_path: str) -> Resolution:
        """Return the disposition for ``url_path``; raises ``PathEscape``."""

        parts = self._segments(url_path)
        not_found = Resolution(Disposition.NOT_FOUND, url_path)
        if any(_is_hidden(part) for part in parts):
            return not_found

        candidate = os.path.join(self.real_root, *parts)
        if not os.path.lexists(candidate):
            return self._resolve_extension(candidate, url_path) or not_found

        real = self._real(candidate, url_path)
        if os.path.isfile(real):
            return Resolution(Disposition.FILE, url_path, Path(real))
        if not os.path.isdir(real):
            return not_found

        if self.index:
            index_path = os.path.join(real, INDEX_FILE)
            if os.path.isfile(index_path) and self.contains(index_path):
                return Resolution(
                    Disposition.INDEX_FALLBACK,
                    url_path,
                    Path(os.path.realpath(index_path)),
                )
        if self.dirs:
            return Resolution(Disposition.DIRECTORY, url_path, Path(real))
        return not_found

    def _resolve_extension(self, candidate: str, url_path: str) -> Resolution | None:
        if not self.extensions or candidate.rstrip(os.sep) == self.real_root:
            return None
        base = candidate.rstrip(os.sep)
        for extension in self.extensions:
            option = f"{base}.{extension}"
            if not os.path.isfile(option):
                continue
            try:
                real = self._real(option, url_path)
            except PathEscape:
                LOGGER.debug("extension_candidate_escapes path=%s", option)
                continue
            return Resolution(Disposition.FILE, url_path, Path(real))
        return None


__all__ = ["Disposition", "INDEX_FILE", "PathResolver", "Resolution", "is_within"]
