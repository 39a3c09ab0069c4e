"""Shared models and enums for fmcore."""

from __future__ import annotations

import os
import re
import shlex
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Mapping, Union
from urllib.parse import unquote, urlparse

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")


def parse_scheme(text: str) -> str | None:
    """Return the lower-cased URI scheme of ``text`` or ``None`` for plain paths."""

    match = _SCHEME_RE.match(text)
    if match is None:
        return None
    return match.group(1).lower()


class EntryType(str, Enum):
    """Kinds of filesystem entries."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class OperationKind(str, Enum):
    """Kinds of long-running file operations."""

    COPY = "copy"
    MOVE = "move"
    TRASH = "trash"
    DELETE = "delete"
    LINK = "link"
    CHANGE_ATTR = "change_attr"
    UNTRASH = "untrash"

    @property
    def needs_destination(self) -> bool:
        return self in (OperationKind.COPY, OperationKind.MOVE, OperationKind.LINK)


class JobState(str, Enum):
    """Lifecycle states of a job."""

    PENDING = "pending"
    PREPARING = "preparing"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class ErrorSeverity(IntEnum):
    """How bad a failed item is. ``CRITICAL`` errors end the job."""

    WARNING = 1
    MILD = 2
    MODERATE = 3
    SEVERE = 4
    CRITICAL = 5


class VerdictKind(str, Enum):
    RETRY = "retry"
    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"
    ABORT = "abort"
    CONTINUE = "continue"


@dataclass(frozen=True, slots=True)
class Verdict:
    """An observer's answer to an error or a destination collision."""

    kind: VerdictKind
    new_name: str | None = None
    sticky: bool = False

    @classmethod
    def retry(cls) -> "Verdict":
        return cls(VerdictKind.RETRY)

    @classmethod
    def skip(cls, *, sticky: bool = False) -> "Verdict":
        return cls(VerdictKind.SKIP, sticky=sticky)

    @classmethod
    def overwrite(cls, *, sticky: bool = False) -> "Verdict":
        return cls(VerdictKind.OVERWRITE, sticky=sticky)

    @classmethod
    def rename(cls, new_name: str) -> "Verdict":
        return cls(VerdictKind.RENAME, new_name=new_name)

    @classmethod
    def abort(cls) -> "Verdict":
        return cls(VerdictKind.ABORT)

    @classmethod
    def continue_(cls) -> "Verdict":
        return cls(VerdictKind.CONTINUE)


class ExecAction(str, Enum):
    """What to do with a file that could be executed directly."""

    RUN = "run"
    RUN_IN_TERMINAL = "terminal"
    OPEN = "open"
    CANCEL = "cancel"


@dataclass(frozen=True, slots=True)
class FileRef:
    """Handle to one file or resource.

    ``location`` is either a local path or a URI. ``content_type`` may be left
    unset and is then resolved on demand by a content-type source.
    """

    location: str
    display_name: str = ""
    content_type: str | None = None
    is_directory: bool = False
    is_desktop_entry: bool = False
    is_shortcut: bool = False
    is_executable: bool = False
    target: str | None = None
    size: int | None = None
    mtime: float | None = None

    @property
    def scheme(self) -> str | None:
        return parse_scheme(self.location)

    @property
    def is_native(self) -> bool:
        return self.scheme in (None, "file")

    @property
    def path(self) -> str | None:
        """Local filesystem path, or ``None`` for non-native locations."""

        scheme = self.scheme
        if scheme is None:
            return self.location
        if scheme == "file":
            return unquote(urlparse(self.location).path)
        return None

    @property
    def uri(self) -> str:
        if self.scheme is not None:
            return self.location
        return Path(os.path.abspath(self.location)).as_uri()

    @property
    def launch_id(self) -> str:
        """Identifier handed to handler applications."""

        if self.is_shortcut and self.target:
            return self.target
        return self.uri

    @property
    def name(self) -> str:
        if self.display_name:
            return self.display_name
        local = self.path
        if local is not None:
            return os.path.basename(local.rstrip("/")) or local
        return os.path.basename(unquote(urlparse(self.location).path).rstrip("/")) or self.location

    def target_ref(self) -> "FileRef":
        """Return a bare reference to this shortcut's target."""

        if not self.target:
            raise ValueError(f"'{self.location}' is not a shortcut")
        return FileRef(location=self.target)


@dataclass(frozen=True, slots=True)
class Handler:
    """An external application able to open a content type or scheme."""

    name: str
    command: str
    terminal: bool = False

    @classmethod
    def for_commandline(cls, path: str, *, terminal: bool = False) -> "Handler":
        return cls(name=os.path.basename(path), command=shlex.quote(path), terminal=terminal)


@dataclass(frozen=True, slots=True)
class LaunchContext:
    """Environment handed through to every launch."""

    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AttrChange:
    """Attribute changes applied by ``CHANGE_ATTR`` jobs."""

    mode: int | None = None
    uid: int | None = None
    gid: int | None = None
    recursive: bool = False


# Classification variants -------------------------------------------------


@dataclass(frozen=True, slots=True)
class Directory:
    pass


@dataclass(frozen=True, slots=True)
class DesktopEntry:
    entry: str


@dataclass(frozen=True, slots=True)
class ExternalScheme:
    scheme: str
    uri: str


@dataclass(frozen=True, slots=True)
class Executable:
    path: str
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class Typed:
    content_type: str


@dataclass(frozen=True, slots=True)
class Shortcut:
    """A shortcut whose ``target`` classified as ``resolved``."""

    target: str
    resolved: "Classification"


Classification = Union[Directory, DesktopEntry, Shortcut, ExternalScheme, Executable, Typed]


@dataclass(frozen=True, slots=True)
class ItemContext:
    """The failing item handed to ``on_error``."""

    source: FileRef
    destination: str | None
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)
