from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Sequence

import pytest

from fmcore.errors import DestinationExists, LaunchError
from fmcore.job import JobObserver
from fmcore.models import AttrChange, FileRef, Handler, LaunchContext
from fmcore.ports import ItemReporter


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    return home


class FakeContentTypes:
    def __init__(self) -> None:
        self.types: dict[str, str] = {}
        self.executable_types = {"application/x-executable"}

    def get_content_type(self, ref: FileRef) -> str | None:
        if ref.content_type:
            return ref.content_type
        if ref.is_directory:
            return "inode/directory"
        return self.types.get(ref.location)

    def is_directory_type(self, content_type: str) -> bool:
        return content_type == "inode/directory"

    def is_executable_type(self, content_type: str) -> bool:
        return content_type in self.executable_types


class FakeRegistry:
    def __init__(self) -> None:
        self.types: dict[str, Handler] = {}
        self.schemes: dict[str, Handler] = {}
        self.entries: dict[str, Handler] = {}
        self.lookups: list[str] = []

    def default_handler_for_type(self, content_type: str) -> Handler | None:
        self.lookups.append(content_type)
        return self.types.get(content_type)

    def default_handler_for_scheme(self, scheme: str) -> Handler | None:
        self.lookups.append(f"{scheme}://")
        return self.schemes.get(scheme)

    def resolve_desktop_entry(self, id_or_path: str) -> Handler | None:
        return self.entries.get(id_or_path)


class RecordingLauncher:
    """Records launches together with the working directory at launch time."""

    def __init__(self) -> None:
        self.calls: list[tuple[Handler, list[str]]] = []
        self.cwds: list[str] = []
        self.failing: set[str] = set()

    def launch(self, handler: Handler, targets: Sequence[str], context: LaunchContext) -> None:
        self.cwds.append(os.getcwd())
        if handler.name in self.failing:
            raise LaunchError(f"Failed to execute child process '{handler.name}'")
        self.calls.append((handler, list(targets)))

    @property
    def launched(self) -> list[tuple[str, list[str]]]:
        return [(handler.name, targets) for handler, targets in self.calls]


class MemoryFileOperations:
    """In-memory stand-in for the filesystem primitives.

    ``failures`` maps a source location to exceptions raised one per attempt,
    ``hooks`` run when an item starts and ``existing`` holds taken targets.
    """

    def __init__(self) -> None:
        self.existing: set[str] = set()
        self.failures: dict[str, list[Exception]] = {}
        self.hooks: dict[str, Callable[[], None]] = {}
        self.origins: dict[str, str] = {}
        self.calls: list[tuple[str, str, str | None, bool]] = []

    def stat(self, location: str) -> FileRef | None:
        return FileRef(location=location) if location in self.existing else None

    def copy_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        self._step("copy", source, target, item, overwrite)

    def move_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        self._step("move", source, target, item, overwrite)

    def link_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        self._step("link", source, target, item, overwrite)

    def untrash_one(self, source: FileRef, target: str, item: ItemReporter, *, overwrite: bool) -> None:
        self._step("untrash", source, target, item, overwrite)

    def delete_one(self, source: FileRef, item: ItemReporter) -> None:
        self._step("delete", source, None, item, False)

    def trash_one(self, source: FileRef, item: ItemReporter) -> None:
        self._step("trash", source, None, item, False)

    def set_attr_one(self, source: FileRef, change: AttrChange, item: ItemReporter) -> None:
        self._step("set_attr", source, None, item, False)

    def original_location(self, source: FileRef) -> str:
        return self.origins.get(source.location, f"/restored/{source.name}")

    def _step(self, op: str, source: FileRef, target: str | None, item: ItemReporter, overwrite: bool) -> None:
        self.calls.append((op, source.location, target, overwrite))
        hook = self.hooks.get(source.location)
        if hook is not None:
            hook()
        pending = self.failures.get(source.location)
        if pending:
            raise pending.pop(0)
        if target is not None:
            if target in self.existing and not overwrite:
                raise DestinationExists(FileRef(location=target))
            self.existing.add(target)
        item.report(1, 2)
        item.report(2, 2)


class EventLog:
    """Collects job notifications in delivery order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def observer(self, **overrides: Callable) -> JobObserver:
        callbacks: dict[str, Callable] = {
            "on_prepared": lambda: self.events.append(("prepared",)),
            "on_current_item": lambda identifier: self.events.append(("current_item", identifier)),
            "on_percent": lambda percent: self.events.append(("percent", percent)),
            "on_finished": lambda had_errors, cancelled: self.events.append(("finished", had_errors, cancelled)),
            "on_cancelled": lambda: self.events.append(("cancelled",)),
        }
        callbacks.update(overrides)
        return JobObserver(**callbacks)

    def named(self, name: str) -> list[tuple]:
        return [event for event in self.events if event[0] == name]


@pytest.fixture
def content_types() -> FakeContentTypes:
    return FakeContentTypes()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture
def operations() -> MemoryFileOperations:
    return MemoryFileOperations()


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()
