"""Batch launching of heterogeneous file references."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Sequence

from .classifier import TargetClassifier, is_executable_file
from .errors import ClassificationError, FmError, LaunchError, ResolutionError, WorkingDirectoryError
from .models import (
    Classification,
    DesktopEntry,
    Directory,
    ExecAction,
    Executable,
    ExternalScheme,
    FileRef,
    Handler,
    LaunchContext,
    Shortcut,
    Typed,
)
from .ports import ContentTypeSource, DesktopEntryResolver, FileInfoSource, HandlerRegistry, Launcher
from .resolver import HandlerPicker, HandlerResolver

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[LaunchContext, FmError, FileRef | None], bool]


@dataclass(slots=True)
class LaunchPolicy:
    """Callbacks and options consulted while launching.

    ``open_folder`` doubles as the directory-grouping switch: directories are
    collected and handed to it in one call only when it is set.
    ``error`` returns ``True`` to move on; ``launch_paths`` retries a failed
    file-info query when it returns ``False``.
    """

    exec_file: Callable[[FileRef], ExecAction] | None = None
    get_app: HandlerPicker | None = None
    open_folder: Callable[[LaunchContext, Sequence[FileRef]], None] | None = None
    error: ErrorCallback | None = None
    strict: bool = False
    context: LaunchContext = field(default_factory=LaunchContext)

    @property
    def group_directories(self) -> bool:
        return self.open_folder is not None


class _Batch:
    """Error bookkeeping for one dispatch call."""

    def __init__(self, policy: LaunchPolicy) -> None:
        self.policy = policy
        self.failures = 0

    def fail(self, error: FmError, ref: FileRef | None = None) -> None:
        self.failures += 1
        logger.warning("%s", error)
        if self.policy.error is not None:
            self.policy.error(self.policy.context, error, ref)


@contextmanager
def working_directory(path: str, on_error: Callable[[FmError], object]) -> Iterator[None]:
    """Run the body inside ``path`` and always go back to the previous directory.

    A failed switch is reported and the body still runs in the old directory.
    """

    try:
        saved: str | None = os.getcwd()
    except OSError as exc:
        saved = None
        on_error(WorkingDirectoryError(f"Cannot read current working directory: {exc.strerror}"))

    if path and path != "." and saved is not None:
        try:
            os.chdir(path)
        except OSError as exc:
            on_error(WorkingDirectoryError(f"Cannot set working directory to '{path}': {exc.strerror}"))

    try:
        yield
    finally:
        if saved is not None:
            try:
                os.chdir(saved)
            except OSError as exc:
                on_error(WorkingDirectoryError(f"Cannot restore working directory to '{saved}': {exc.strerror}"))


class LaunchDispatcher:
    """Groups file references by handler and launches each group once."""

    def __init__(
        self,
        content_types: ContentTypeSource,
        registry: HandlerRegistry,
        launcher: Launcher,
        *,
        entries: DesktopEntryResolver | None = None,
        executable_probe: Callable[[str], bool] = is_executable_file,
    ) -> None:
        self._classifier = TargetClassifier(content_types, executable_probe=executable_probe)
        self._resolver = HandlerResolver(registry, entries)
        self._launcher = launcher

    @property
    def resolver(self) -> HandlerResolver:
        return self._resolver

    def dispatch_launch(self, refs: Iterable[FileRef], policy: LaunchPolicy) -> bool:
        """Launch ``refs`` best-effort.

        Errors go to ``policy.error``; the return value is ``False`` only when
        ``policy.strict`` is set and something failed.
        """

        batch = _Batch(policy)
        buckets: dict[str, list[FileRef]] = {}
        folders: list[FileRef] = []

        for ref in refs:
            if policy.group_directories and ref.is_directory:
                folders.append(ref)
                continue
            try:
                classification = self._classifier.classify(ref, group_directories=policy.group_directories)
            except ClassificationError as exc:
                batch.fail(exc, ref)
                continue
            self._route(ref, classification, buckets, folders, batch)

        for content_type, members in buckets.items():
            self._launch_bucket(content_type, members, batch)

        if folders and policy.open_folder is not None:
            try:
                policy.open_folder(policy.context, list(folders))
            except FmError as exc:
                batch.fail(exc)

        return not (policy.strict and batch.failures)

    def launch_single_entry(self, entry: FileRef | str, args: Sequence[str], policy: LaunchPolicy) -> bool:
        """Launch one desktop entry with ``args`` substituted into its command."""

        return self._launch_entry(_entry_id(entry), args, _Batch(policy))

    def launch_paths(self, locations: Iterable[str], info: FileInfoSource, policy: LaunchPolicy) -> bool:
        """Query file info for ``locations`` and launch whatever could be queried."""

        refs: list[FileRef] = []
        for location in locations:
            while True:
                try:
                    refs.append(info.query(location))
                except FmError as exc:
                    error: FmError = exc
                except OSError as exc:
                    error = ClassificationError(f"{location}: {exc.strerror or exc}")
                else:
                    break
                logger.debug("File info query failed for %s: %s", location, error)
                if policy.error is None or policy.error(policy.context, error, None):
                    break

        if not refs:
            return False
        return self.dispatch_launch(refs, policy)

    # ------------------------------------------------------------------
    # Internal helpers

    def _route(
        self,
        ref: FileRef,
        classification: Classification,
        buckets: dict[str, list[FileRef]],
        folders: list[FileRef],
        batch: _Batch,
    ) -> None:
        if isinstance(classification, Shortcut):
            classification = classification.resolved

        if isinstance(classification, Directory):
            folders.append(ref)
            return
        if isinstance(classification, DesktopEntry):
            self._launch_entry(classification.entry, (), batch, ref)
            return
        if isinstance(classification, ExternalScheme):
            self._launch_scheme(ref, classification, batch)
            return

        if isinstance(classification, Executable):
            if self._run_executable(ref, classification, batch):
                return
            content_type = classification.content_type
            if not content_type:
                batch.fail(ClassificationError(f"Could not determine content type of '{ref.name}' to launch"), ref)
                return
        else:
            assert isinstance(classification, Typed)
            content_type = classification.content_type

        buckets.setdefault(content_type, []).append(ref)

    def _launch_entry(self, entry: str, args: Sequence[str], batch: _Batch, ref: FileRef | None = None) -> bool:
        handler = self._resolver.resolve_desktop_entry(entry)
        if handler is None:
            batch.fail(ResolutionError(f"Invalid desktop entry file: '{entry}'"), ref)
            return False
        try:
            self._launcher.launch(handler, list(args), batch.policy.context)
        except LaunchError as exc:
            batch.fail(exc, ref)
            return False
        return True

    def _launch_scheme(self, ref: FileRef, target: ExternalScheme, batch: _Batch) -> None:
        handler = self._resolver.resolve_for_scheme(target.scheme)
        if handler is None:
            batch.fail(ResolutionError(f"No default application is set to launch URIs {target.scheme}://"), ref)
            return
        try:
            self._launcher.launch(handler, [target.uri], batch.policy.context)
        except LaunchError as exc:
            batch.fail(exc, ref)

    def _run_executable(self, ref: FileRef, target: Executable, batch: _Batch) -> bool:
        """Return ``True`` when the ref was consumed here (run or cancelled)."""

        policy = batch.policy
        if policy.exec_file is None:
            return False

        action = policy.exec_file(ref)
        if action is ExecAction.CANCEL:
            return True
        if action is ExecAction.OPEN:
            return False

        handler = Handler.for_commandline(target.path, terminal=action is ExecAction.RUN_IN_TERMINAL)
        with working_directory(os.path.dirname(target.path), lambda exc: batch.fail(exc, ref)):
            try:
                self._launcher.launch(handler, [], policy.context)
            except LaunchError as exc:
                batch.fail(exc, ref)
        return True

    def _launch_bucket(self, content_type: str, members: list[FileRef], batch: _Batch) -> None:
        try:
            handler = self._resolver.resolve_for_type(content_type, members, batch.policy.get_app)
        except ResolutionError as exc:
            batch.fail(exc)
            return
        if handler is None:
            batch.fail(ResolutionError(f"No default application is set for MIME type {content_type}"))
            return

        logger.debug("Launching %d item(s) of %s with %s", len(members), content_type, handler.name)
        try:
            self._launcher.launch(handler, [ref.launch_id for ref in members], batch.policy.context)
        except LaunchError as exc:
            batch.fail(exc)


def _entry_id(entry: FileRef | str) -> str:
    if isinstance(entry, str):
        return entry
    if entry.is_shortcut and entry.target:
        return entry.target
    return entry.path or entry.location
