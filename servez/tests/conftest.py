"""Shared fixtures for the servez test-suite."""

from __future__ import annotations

import contextlib
import socket
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:  # pragma: no cover - path setup
    sys.path.insert(0, str(ROOT))

from servez.config import ServerConfig


def free_port() -> int:
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """``index.html``, ``a.txt`` and an empty ``docs/`` under a fresh root."""

    root = tmp_path / "share"
    root.mkdir()
    (root / "index.html").write_text("<h1>home</h1>", encoding="utf-8")
    (root / "a.txt").write_bytes(b"alpha\n")
    (root / "docs").mkdir()
    return root


@pytest.fixture
def make_config(site: Path):
    def _make(**overrides) -> ServerConfig:
        options = {
            "root": site,
            "port": free_port(),
            "local_only": True,
            "cors": True,
            "dirs": True,
            "index": True,
        }
        options.update(overrides)
        return ServerConfig(**options)

    return _make


@pytest.fixture
def unused_port() -> int:
    return free_port()
