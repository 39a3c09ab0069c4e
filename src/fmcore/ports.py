"""Interfaces of the services fmcore consumes.

Everything here is read through; fmcore never changes the state behind these
services, so fakes can stand in for them in tests.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from .models import AttrChange, FileRef, Handler, LaunchContext


class ContentTypeSource(Protocol):
    """Content-type database lookups."""

    def get_content_type(self, ref: FileRef) -> str | None:
        pass

    def is_directory_type(self, content_type: str) -> bool:
        pass

    def is_executable_type(self, content_type: str) -> bool:
        pass


class HandlerRegistry(Protocol):
    """Default-handler lookups."""

    def default_handler_for_type(self, content_type: str) -> Handler | None:
        pass

    def default_handler_for_scheme(self, scheme: str) -> Handler | None:
        pass


class DesktopEntryResolver(Protocol):
    def resolve_desktop_entry(self, id_or_path: str) -> Handler | None:
        pass


class Launcher(Protocol):
    """Starts handler applications. Raises ``LaunchError`` on failure."""

    def launch(self, handler: Handler, targets: Sequence[str], context: LaunchContext) -> None:
        pass


class FileInfoSource(Protocol):
    """Builds a ``FileRef`` for a location. Raises ``FmError`` or ``OSError``."""

    def query(self, location: str) -> FileRef:
        pass


class ItemReporter(Protocol):
    """Handle given to filesystem primitives for the item being processed."""

    def report(self, done: int, total: int) -> None:
        pass

    def ask(self, question: str, options: Sequence[str]) -> int:
        pass


class FileOperations(Protocol):
    """Per-item filesystem primitives driven by a job.

    Primitives raise ``DestinationExists`` when ``target`` is taken and
    ``overwrite`` is false, ``JobItemError`` (or ``OSError``) on failure.
    """

    def stat(self, location: str) -> FileRef | None:
        pass

    def copy_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        pass

    def move_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        pass

    def delete_one(self, source: FileRef, item: ItemReporter) -> None:
        pass

    def trash_one(self, source: FileRef, item: ItemReporter) -> None:
        pass

    def original_location(self, source: FileRef) -> str:
        pass

    def untrash_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        pass

    def link_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        pass

    def set_attr_one(self, source: FileRef, change: AttrChange, item: ItemReporter) -> None:
        pass
