"""Server configuration and environment helpers."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, ValidationError, field_validator

from .errors import InvalidConfig


DEFAULT_PORT = 8080
LOCAL_HOST = "127.0.0.1"
ALL_INTERFACES = "0.0.0.0"
DEFAULT_SETTINGS_PATH = Path.home() / ".servez" / "config.json"

OPTION_KEYS = ("root", "port", "local", "cors", "dirs", "index")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _coerce_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    cleaned = value.strip().lower()
    if not cleaned:
        return default
    return cleaned in _TRUE_VALUES


def settings_path() -> Path:
    raw = (os.getenv("SERVEZ_SETTINGS_PATH") or "").strip()
    if not raw:
        return DEFAULT_SETTINGS_PATH
    return Path(raw).expanduser()


def log_level() -> int:
    raw = (os.getenv("SERVEZ_LOG_LEVEL") or "").strip().upper()
    if not raw:
        return logging.INFO
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def echo_enabled() -> bool:
    return _coerce_bool(os.getenv("SERVEZ_ECHO"))


def default_options() -> dict[str, Any]:
    return {
        "port": DEFAULT_PORT,
        "root": str(Path.home()),
        "local": False,
        "cors": True,
        "dirs": True,
        "index": True,
    }


def _normalize_extensions(values: Any) -> tuple[str, ...]:
    seen: list[str] = []
    for raw in values or ():
        cleaned = str(raw).strip().lower().lstrip(".")
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return tuple(seen)


class ServerOptions(BaseModel):
    """Schema of the option table accepted from hosts and settings files."""

    model_config = ConfigDict(extra="forbid")

    root: StrictStr = Field(..., min_length=1)
    port: StrictInt = Field(DEFAULT_PORT, ge=1, le=65535)
    local: StrictBool = False
    cors: StrictBool = True
    dirs: StrictBool = True
    index: StrictBool = True
    extensions: list[StrictStr] = Field(default_factory=list)
    ssl_certfile: StrictStr | None = None
    ssl_keyfile: StrictStr | None = None

    @field_validator("root")
    @classmethod
    def _strip_root(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("root must not be empty")
        return cleaned


def _format_validation_error(exc: ValidationError) -> list[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "options"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return problems


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Immutable configuration handed to one server generation."""

    root: Path
    port: int = DEFAULT_PORT
    local_only: bool = False
    cors: bool = True
    dirs: bool = True
    index: bool = True
    extensions: tuple[str, ...] = field(default=())
    ssl_certfile: Path | None = None
    ssl_keyfile: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root).expanduser().resolve())
        object.__setattr__(self, "extensions", _normalize_extensions(self.extensions))
        for name in ("ssl_certfile", "ssl_keyfile"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, Path(value).expanduser())

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "ServerConfig":
        try:
            parsed = ServerOptions.model_validate(dict(options))
        except ValidationError as exc:
            raise InvalidConfig(_format_validation_error(exc)) from None
        return cls(
            root=Path(parsed.root),
            port=parsed.port,
            local_only=parsed.local,
            cors=parsed.cors,
            dirs=parsed.dirs,
            index=parsed.index,
            extensions=tuple(parsed.extensions),
            ssl_certfile=Path(parsed.ssl_certfile) if parsed.ssl_certfile else None,
            ssl_keyfile=Path(parsed.ssl_keyfile) if parsed.ssl_keyfile else None,
        )

    def to_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "root": str(self.root),
            "port": self.port,
            "local": self.local_only,
            "cors": self.cors,
            "dirs": self.dirs,
            "index": self.index,
        }
        if self.extensions:
            options["extensions"] = list(self.extensions)
        if self.ssl_certfile is not None:
            options["ssl_certfile"] = str(self.ssl_certfile)
        if self.ssl_keyfile is not None:
            options["ssl_keyfile"] = str(self.ssl_keyfile)
        return options

    def with_options(self, **changes: Any) -> "ServerConfig":
        merged = self.to_options()
        merged.update(changes)
        return ServerConfig.from_options(merged)

    @property
    def bind_host(self) -> str:
        return LOCAL_HOST if self.local_only else ALL_INTERFACES

    @property
    def scheme(self) -> str:
        return "https" if self.ssl_certfile is not None else "http"

    def validate(self) -> None:
        """Check the filesystem side of the config; raises ``InvalidConfig``."""

        problems = []
        if not self.root.exists():
            problems.append(f"root does not exist: {self.root}")
        elif not self.root.is_dir():
            problems.append(f"root is not a directory: {self.root}")
        if not 1 <= int(self.port) <= 65535:
            problems.append(f"port out of range: {self.port}")
        if (self.ssl_certfile is None) != (self.ssl_keyfile is None):
            problems.append("ssl_certfile and ssl_keyfile must be given together")
        for name in ("ssl_certfile", "ssl_keyfile"):
            value = getattr(self, name)
            if value is not None and not value.is_file():
                problems.append(f"{name} not found: {value}")
        if problems:
            raise InvalidConfig(problems)


__all__ = [
    "DEFAULT_PORT",
    "OPTION_KEYS",
    "ServerConfig",
    "ServerOptions",
    "default_options",
    "echo_enabled",
    "log_level",
    "settings_path",
]
