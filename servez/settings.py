"""JSON settings file shared by the CLI and desktop hosts."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from .config import OPTION_KEYS, ServerConfig, default_options, settings_path
from .errors import InvalidConfig


LOGGER = logging.getLogger("servez.settings")


class SettingsStore:
    """Load and save the option table.

    A file that is missing, unreadable, lacks one of the required keys or
    carries values of the wrong type is ignored and defaults are returned.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else settings_path()

    def load(self) -> dict[str, Any]:
        defaults = default_options()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return defaults
        except (OSError, ValueError) as exc:
            LOGGER.warning("settings_unreadable path=%s error=%s", self.path, exc)
            return defaults

        if not isinstance(raw, dict):
            LOGGER.warning("settings_not_object path=%s", self.path)
            return defaults
        missing = [key for key in OPTION_KEYS if key not in raw]
        if missing:
            LOGGER.warning("settings_missing_keys path=%s keys=%s", self.path, ",".join(missing))
            return defaults
        try:
            ServerConfig.from_options(raw)
        except InvalidConfig as exc:
            LOGGER.warning("settings_invalid path=%s error=%s", self.path, exc)
            return defaults
        return dict(raw)

    def save(self, options: Mapping[str, Any]) -> None:
        """Write ``options``; ``OSError`` propagates to the caller."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(dict(options), indent=2, sort_keys=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(payload + "\n", encoding="utf-8")
        tmp_path.replace(self.path)
        LOGGER.debug("settings_saved path=%s", self.path)


__all__ = ["SettingsStore"]
