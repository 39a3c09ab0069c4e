"""TOML configuration loading for fmcore."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import Handler

DEFAULT_CONFIG_FILENAME = "fmcore.toml"
DEFAULT_TERMINAL = "xterm -e"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


def default_trash_dir() -> Path:
    data_home = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(data_home).expanduser() / "Trash"


def default_config_dir() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home).expanduser() / "fmcore"


class HandlerSpec(BaseModel):
    """A configured application command."""

    model_config = ConfigDict(frozen=True)

    command: str = Field(min_length=1)
    name: str | None = None
    terminal: bool = False

    @classmethod
    def from_raw(cls, key: str, raw: Any) -> "HandlerSpec":
        if isinstance(raw, str):
            raw = {"command": raw}
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Handler '{key}' must be a command string or a table")
        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigError(f"Handler '{key}' is invalid: {exc.errors()[0]['msg']}") from exc

    def to_handler(self) -> Handler:
        name = self.name or self.command.split()[0]
        return Handler(name=name, command=self.command, terminal=self.terminal)


class HandlerTable(BaseModel):
    """Default handlers keyed by content type, URI scheme and desktop entry."""

    model_config = ConfigDict(frozen=True)

    types: Dict[str, HandlerSpec] = Field(default_factory=dict)
    schemes: Dict[str, HandlerSpec] = Field(default_factory=dict)
    entries: Dict[str, HandlerSpec] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "HandlerTable":
        sections: Dict[str, Dict[str, HandlerSpec]] = {}
        for section in ("types", "schemes", "entries"):
            body = raw.get(section) or {}
            if not isinstance(body, Mapping):
                raise ConfigError(f"[handlers.{section}] must be a table")
            keyed = {key.lower() if section == "schemes" else key: value for key, value in body.items()}
            sections[section] = {key: HandlerSpec.from_raw(key, value) for key, value in keyed.items()}
        return cls(**sections)


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    terminal: str = DEFAULT_TERMINAL
    trash_dir: Path = Field(default_factory=default_trash_dir)
    group_directories: bool = True
    folder_handler: HandlerSpec | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        values: Dict[str, Any] = {}
        if "terminal" in raw:
            values["terminal"] = str(raw["terminal"])
        if "trash_dir" in raw:
            values["trash_dir"] = _expand_path(raw["trash_dir"], base_dir=base_dir)
        if "group_directories" in raw:
            values["group_directories"] = raw["group_directories"]
        if raw.get("folder_handler") is not None:
            values["folder_handler"] = HandlerSpec.from_raw("folder_handler", raw["folder_handler"])
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid [settings]: {exc.errors()[0]['msg']}") from exc


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    settings: Settings = Field(default_factory=Settings)
    handlers: HandlerTable = Field(default_factory=HandlerTable)


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or the directory holding it. When
            omitted, ``fmcore.toml`` in the current directory and then in
            ``$XDG_CONFIG_HOME/fmcore`` is used; with neither present the
            defaults apply.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return Config()

    base_dir = config_path.parent
    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings = Settings.from_raw(data.get("settings", {}), base_dir=base_dir)
    handlers = HandlerTable.from_raw(data.get("handlers", {}))

    return Config(config_path=config_path, settings=settings, handlers=handlers)


def _resolve_config_path(path: Path | None) -> Path | None:
    if path is None:
        for candidate in (Path.cwd() / DEFAULT_CONFIG_FILENAME, default_config_dir() / DEFAULT_CONFIG_FILENAME):
            if candidate.is_file():
                return candidate.resolve(strict=False)
        return None

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
