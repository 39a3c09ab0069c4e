"""Adapters binding the launch core to the local system."""

from __future__ import annotations

import logging
import mimetypes
import os
import shlex
import subprocess
from typing import Sequence

from .config import Config, HandlerTable
from .errors import LaunchError
from .models import FileRef, Handler, LaunchContext

logger = logging.getLogger(__name__)

DIRECTORY_TYPE = "inode/directory"
FALLBACK_TYPE = "application/octet-stream"
EXECUTABLE_FALLBACK_TYPE = "application/x-executable"

EXECUTABLE_TYPES = frozenset(
    {
        "application/x-executable",
        "application/x-sh",
        "application/x-shellscript",
        "application/x-csh",
        "application/x-perl",
        "text/x-python",
        "text/x-script.python",
    }
)

_SINGLE_CODES = {"%f", "%u"}
_LIST_CODES = {"%F", "%U"}
_DROPPED_CODES = {"%i", "%c", "%k", "%d", "%D", "%n", "%N", "%v", "%m"}


class MimeContentTypes:
    """``ContentTypeSource`` backed by the ``mimetypes`` extension table."""

    def get_content_type(self, ref: FileRef) -> str | None:
        if ref.content_type:
            return ref.content_type
        if ref.is_directory:
            return DIRECTORY_TYPE

        path = ref.path
        guessed, _encoding = mimetypes.guess_type(path if path is not None else ref.location, strict=False)
        if guessed:
            return guessed
        if path is None or not os.path.exists(path):
            return None
        if os.path.isdir(path):
            return DIRECTORY_TYPE
        if os.access(path, os.X_OK):
            return EXECUTABLE_FALLBACK_TYPE
        return FALLBACK_TYPE

    def is_directory_type(self, content_type: str) -> bool:
        return content_type == DIRECTORY_TYPE

    def is_executable_type(self, content_type: str) -> bool:
        return content_type in EXECUTABLE_TYPES


class ConfiguredHandlers:
    """Read-only handler registry built from the ``[handlers]`` tables."""

    def __init__(self, table: HandlerTable) -> None:
        self._table = table

    def default_handler_for_type(self, content_type: str) -> Handler | None:
        spec = self._table.types.get(content_type)
        if spec is None:
            major = content_type.split("/", 1)[0]
            spec = self._table.types.get(f"{major}/*")
        return spec.to_handler() if spec is not None else None

    def default_handler_for_scheme(self, scheme: str) -> Handler | None:
        spec = self._table.schemes.get(scheme.lower())
        return spec.to_handler() if spec is not None else None

    def resolve_desktop_entry(self, id_or_path: str) -> Handler | None:
        spec = self._table.entries.get(id_or_path)
        if spec is None:
            spec = self._table.entries.get(os.path.basename(id_or_path))
        return spec.to_handler() if spec is not None else None


def expand_command(command: str, targets: Sequence[str]) -> list[list[str]]:
    """Expand desktop-entry style field codes into one or more argument vectors.

    ``%f``/``%u`` take a single target, so one process is started per target.
    ``%F``/``%U`` take every target. Without a field code targets are appended.
    """

    try:
        words = shlex.split(command)
    except ValueError as exc:
        raise LaunchError(f"Bad command line '{command}': {exc}") from exc
    if not words:
        raise LaunchError("Bad command line: the command is empty")

    def build(single: str | None) -> list[str]:
        argv: list[str] = []
        for word in words:
            if word in _SINGLE_CODES:
                if single is not None:
                    argv.append(single)
            elif word in _LIST_CODES:
                argv.extend(targets)
            elif word in _DROPPED_CODES:
                continue
            else:
                argv.append(word.replace("%%", "%"))
        return argv

    if any(word in _SINGLE_CODES for word in words):
        if not targets:
            return [build(None)]
        return [build(target) for target in targets]
    if any(word in _LIST_CODES for word in words):
        return [build(None)]
    return [build(None) + list(targets)]


class SubprocessLauncher:
    """Starts handlers as detached child processes; never waits for them."""

    def __init__(self, terminal: str) -> None:
        self._terminal = terminal

    def launch(self, handler: Handler, targets: Sequence[str], context: LaunchContext) -> None:
        env = {**os.environ, **context.env}
        for argv in expand_command(handler.command, targets):
            if handler.terminal:
                argv = shlex.split(self._terminal) + argv
            logger.debug("Spawning %s", argv)
            try:
                subprocess.Popen(argv, env=env, stdin=subprocess.DEVNULL, start_new_session=True)
            except OSError as exc:
                raise LaunchError(f"Failed to execute child process '{argv[0]}': {exc.strerror or exc}") from exc


class SystemServices:
    """The concrete services a CLI session launches through."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.content_types = MimeContentTypes()
        self.handlers = ConfiguredHandlers(config.handlers)
        self.launcher = SubprocessLauncher(config.settings.terminal)

    def folder_handler(self) -> Handler | None:
        spec = self.config.settings.folder_handler
        if spec is None:
            return self.handlers.default_handler_for_type(DIRECTORY_TYPE)
        return spec.to_handler()
