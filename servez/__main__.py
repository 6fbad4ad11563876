"""Command line entry point: ``python -m servez [ROOT] [options]``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from .config import log_level
from .host import ServezHost
from .settings import SettingsStore


LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def _init_logging() -> None:
    level = log_level()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in ("servez", "uvicorn", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="servez", description="Serve a local directory over HTTP.")
    parser.add_argument("root", nargs="?", help="directory to serve (default: saved setting)")
    parser.add_argument("-p", "--port", type=int, help="port to listen on")
    parser.add_argument("--local", action="store_true", default=None, help="bind to 127.0.0.1 only")
    parser.add_argument("--no-cors", dest="cors", action="store_false", default=None, help="disable CORS headers")
    parser.add_argument("--no-dirs", dest="dirs", action="store_false", default=None, help="disable directory listings")
    parser.add_argument("--no-index", dest="index", action="store_false", default=None, help="do not serve index.html for directories")
    parser.add_argument("--ext", dest="extensions", action="append", metavar="EXT", help="try EXT when a path has no extension (repeatable)")
    parser.add_argument("--ssl-certfile", help="TLS certificate passed to the HTTP server")
    parser.add_argument("--ssl-keyfile", help="TLS private key passed to the HTTP server")
    parser.add_argument("--settings", type=Path, help="settings file (default: $SERVEZ_SETTINGS_PATH or ~/.servez/config.json)")
    parser.add_argument("--save", action="store_true", help="persist these options after a successful start")
    return parser


def options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if args.root is not None:
        changes["root"] = str(Path(args.root).expanduser().resolve())
    for key in ("port", "local", "cors", "dirs", "index", "extensions", "ssl_certfile", "ssl_keyfile"):
        value = getattr(args, key)
        if value is not None:
            changes[key] = value
    return changes


async def run(args: argparse.Namespace) -> int:
    host = ServezHost(SettingsStore(args.settings), persist=args.save, echo=True)
    if not await host.update_settings(options_from_args(args)):
        return 2
    if not await host.start():
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)
    try:
        await stop_event.wait()
    finally:
        await host.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:  # pragma: no cover - CLI entrypoint
    _init_logging()
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
