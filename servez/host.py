"""Host-side controller: commands in, filtered lifecycle events out."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Mapping, Optional

from .config import ServerConfig, echo_enabled
from .errors import InvalidConfig
from .events import CLOSED, ERROR, LOG, STARTED, STOPPED, GenerationFilter, LifecycleEvent
from .lifecycle import StaticServer
from .settings import SettingsStore


LOGGER = logging.getLogger("servez.host")

MAX_LOG_LINES = 1000


class ServezHost:
    """What a UI shell talks to.

    Holds the current option table, persists it after a successful start,
    and keeps a bounded buffer of ``(level, message)`` lines for a log view.
    """

    def __init__(
        self,
        store: SettingsStore,
        server: Optional[StaticServer] = None,
        *,
        persist: bool = True,
        echo: Optional[bool] = None,
        max_log_lines: int = MAX_LOG_LINES,
    ) -> None:
        self.store = store
        self.server = server or StaticServer()
        self.persist = persist
        self.echo = echo_enabled() if echo is None else echo
        self.options: dict[str, Any] = store.load()
        self.log_lines: Deque[tuple[str, str]] = deque(maxlen=max_log_lines)
        self.running = False
        self.url: Optional[str] = None
        self._filter = GenerationFilter(self._on_event)
        self._unsubscribe = self.server.subscribe(self._filter)

    def _append(self, level: str, message: str) -> None:
        self.log_lines.append((level, message))
        if self.echo:
            LOGGER.log(logging.ERROR if level == "error" else logging.INFO, "%s", message)

    def _on_event(self, event: LifecycleEvent) -> None:
        if event.kind == STARTED:
            self.running = True
            self.url = event.payload.get("url")
            self._append("log", event.message)
            if self.persist:
                self._save_settings()
        elif event.kind == STOPPED:
            self.running = False
            self.url = None
            self._append("log", event.message or "server stopped")
        elif event.kind == ERROR:
            self._append("error", event.message)
        elif event.kind == LOG:
            self._append("log", event.message)
        elif event.kind == CLOSED:
            LOGGER.debug("server_closed generation=%s", event.generation)

    def _save_settings(self) -> None:
        try:
            self.store.save(self.options)
        except OSError as exc:
            self._append("error", f"ERROR: could not save settings: {exc}")

    def _config(self, options: Mapping[str, Any]) -> ServerConfig:
        config = ServerConfig.from_options(options)
        config.validate()
        return config

    async def start(self) -> bool:
        try:
            config = self._config(self.options)
        except InvalidConfig as exc:
            self._append("error", f"ERROR: {exc}")
            return False
        return await self.server.start(config)

    async def stop(self) -> None:
        await self.server.stop()

    async def update_settings(self, changes: Mapping[str, Any]) -> bool:
        """Merge ``changes``; restarts the server when it is running."""

        merged = dict(self.options)
        merged.update((key, value) for key, value in changes.items() if key != "running")
        try:
            config = self._config(merged)
        except InvalidConfig as exc:
            self._append("error", f"ERROR: {exc}")
            return False
        self.options = merged
        self.server.configure(config)
        if self.running:
            return await self.server.start()
        return True

    def get_settings(self) -> dict[str, Any]:
        settings = dict(self.options)
        settings["running"] = self.running
        return settings

    def launch_url(self) -> str:
        scheme = "https" if self.options.get("ssl_certfile") else "http"
        return f"{scheme}://localhost:{self.options.get('port')}"

    def clear_log(self) -> None:
        self.log_lines.clear()

    async def close(self) -> None:
        await self.server.stop()
        self._unsubscribe()


__all__ = ["MAX_LOG_LINES", "ServezHost"]
