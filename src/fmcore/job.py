"""Cancellable file-operation jobs and their observer protocol."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from .context import MainContext
from .errors import DestinationExists, JobItemError, JobStateError, TrashUnsupported
from .models import AttrChange, ErrorSeverity, FileRef, ItemContext, JobState, OperationKind, Verdict, VerdictKind
from .ports import FileOperations

logger = logging.getLogger(__name__)


@dataclass(eq=False, slots=True)
class JobObserver:
    """Callbacks a job invokes. Every field is optional.

    Decision callbacks (``on_error``, ``on_ask``, ``on_ask_rename``) may return
    ``None`` to let the next observer, or the job's default, decide.
    """

    on_prepared: Callable[[], None] | None = None
    on_current_item: Callable[[str], None] | None = None
    on_percent: Callable[[int], None] | None = None
    on_error: Callable[[ItemContext, ErrorSeverity], Verdict | None] | None = None
    on_ask: Callable[[str, Sequence[str]], int | None] | None = None
    on_ask_rename: Callable[[FileRef, FileRef], Verdict | None] | None = None
    on_finished: Callable[[bool, bool], None] | None = None
    on_cancelled: Callable[[], None] | None = None


class _Aborted(Exception):
    pass


class _Failed(Exception):
    pass


class _ItemProgress:
    """Reporter handed to filesystem primitives for a single item."""

    def __init__(self, job: "Job") -> None:
        self._job = job
        self._last = -1

    def start(self) -> None:
        self._emit(0)

    def complete(self) -> None:
        self._emit(100)

    def report(self, done: int, total: int) -> None:
        percent = 100 if total <= 0 else max(0, min(100, done * 100 // total))
        self._emit(percent)

    def ask(self, question: str, options: Sequence[str]) -> int:
        return self._job.ask(question, options)

    def _emit(self, percent: int) -> None:
        # never goes backwards within one item, retries included
        if percent <= self._last:
            return
        self._last = percent
        self._job._notify("on_percent", percent)


class Job:
    """A long-running file operation.

    The job is driven through ``PENDING -> PREPARING -> RUNNING`` and ends in
    exactly one of ``SUCCEEDED``, ``FAILED`` or ``CANCELLED``. Observer
    callbacks always run on the thread that created the job (or the thread
    owning ``context``); the worker blocks while a decision is pending.
    """

    def __init__(
        self,
        kind: OperationKind | str,
        sources: Iterable[FileRef],
        destination: str | None = None,
        *,
        operations: FileOperations,
        attrs: AttrChange | None = None,
        context: MainContext | None = None,
    ) -> None:
        kind = OperationKind(kind)
        if kind.needs_destination and destination is None:
            raise ValueError(f"{kind.value} jobs need a destination")
        if kind is OperationKind.CHANGE_ATTR and attrs is None:
            raise ValueError("change_attr jobs need attributes to set")

        self._kind = kind
        self._sources = tuple(sources)
        self._destination = destination
        self._attrs = attrs
        self._operations = operations
        self._context = context or MainContext()

        self._lock = threading.RLock()
        self._state = JobState.PENDING
        self._started = False
        self._observers: list[JobObserver] = []
        self._cancel_event = threading.Event()
        self._done = threading.Event()
        self._pending: set[Future] = set()
        self._has_errors = False
        self._default_verdict: Verdict | None = None
        self._current: FileRef | None = None
        self._trash_unsupported: list[FileRef] = []
        self._worker: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Accessors

    @property
    def kind(self) -> OperationKind:
        return self._kind

    @property
    def sources(self) -> tuple[FileRef, ...]:
        return self._sources

    @property
    def destination(self) -> str | None:
        return self._destination

    @property
    def attrs(self) -> AttrChange | None:
        return self._attrs

    @property
    def operations(self) -> FileOperations:
        return self._operations

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def has_errors(self) -> bool:
        return self._has_errors

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_done(self) -> bool:
        """``True`` once the terminal notifications have been delivered."""

        return self._done.is_set()

    @property
    def current_item(self) -> FileRef | None:
        return self._current

    @property
    def default_verdict(self) -> Verdict | None:
        return self._default_verdict

    def trash_unsupported(self) -> tuple[FileRef, ...]:
        return tuple(self._trash_unsupported)

    # ------------------------------------------------------------------
    # Observers

    def attach_observer(self, observer: JobObserver | None = None, **callbacks: Any) -> JobObserver:
        if observer is None:
            observer = JobObserver(**callbacks)
        with self._lock:
            self._observers.append(observer)
        return observer

    def detach_observer(self, observer: JobObserver) -> None:
        with self._lock:
            self._observers = [item for item in self._observers if item is not observer]

    def observers(self) -> tuple[JobObserver, ...]:
        with self._lock:
            return tuple(self._observers)

    # ------------------------------------------------------------------
    # Running

    def run_async(self) -> None:
        """Start the job on a worker thread. Pump with ``run_until_done``."""

        self._claim()
        self._worker = threading.Thread(target=self._run, name=f"fmcore-{self._kind.value}", daemon=True)
        self._worker.start()

    def run_sync_blocking(self) -> bool:
        """Run the job on the calling thread and return ``True`` on a clean success."""

        self._claim()
        self._run()
        if self._context.is_owner():
            self._context.run_until(self._done.is_set)
        else:
            self._done.wait()
        return self.succeeded

    def run_until_done(self) -> bool:
        """Deliver queued callbacks on the owner thread until the job has finished."""

        if not self._started:
            raise JobStateError("Job has not been started")
        self._context.run_until(self._done.is_set)
        return self.succeeded

    @property
    def succeeded(self) -> bool:
        return self._state is JobState.SUCCEEDED and not self._has_errors

    def cancel(self) -> None:
        """Request cancellation. The item in flight is allowed to finish."""

        with self._lock:
            if self._state.is_terminal:
                return
            self._cancel_event.set()
            pending = list(self._pending)
        for future in pending:
            future.cancel()
        logger.debug("Cancellation requested for %s job", self._kind.value)

    def ask(self, question: str, options: Sequence[str]) -> int:
        """Ask observers a multiple-choice question; ``-1`` means no answer."""

        choices = tuple(options)
        answer = self._decide("on_ask", (question, choices), -1)
        if answer is None or not 0 <= int(answer) < len(choices):
            return -1
        return int(answer)

    # ------------------------------------------------------------------
    # Internal helpers

    def _claim(self) -> None:
        with self._lock:
            if self._started:
                raise JobStateError(f"{self._kind.value} job was already started")
            self._started = True

    def _set_state(self, state: JobState) -> None:
        with self._lock:
            self._state = state
        logger.debug("%s job -> %s", self._kind.value, state.value)

    def _run(self) -> None:
        try:
            state = self._execute()
        except Exception:
            logger.exception("%s job stopped unexpectedly", self._kind.value)
            self._has_errors = True
            state = JobState.FAILED
        self._current = None
        self._set_state(state)
        self._context.post(self._deliver_terminal, self._has_errors, state is JobState.CANCELLED)

    def _execute(self) -> JobState:
        if self._cancel_event.is_set():
            return JobState.CANCELLED

        self._set_state(JobState.PREPARING)
        self._notify("on_prepared")
        self._set_state(JobState.RUNNING)

        try:
            for source in self._sources:
                if self._cancel_event.is_set():
                    break
                self._process(source)
        except _Aborted:
            self._cancel_event.set()
        except _Failed:
            return JobState.FAILED

        return JobState.CANCELLED if self._cancel_event.is_set() else JobState.SUCCEEDED

    def _process(self, source: FileRef) -> None:
        with self._lock:
            self._current = source
        self._notify("on_current_item", source.location)
        item = _ItemProgress(self)
        item.start()

        target: str | None = None
        overwrite = False
        while True:
            try:
                if target is None:
                    target = self._target_for(source)
                self._perform(source, target, item, overwrite=overwrite)
            except DestinationExists as exc:
                verdict = self._resolve_conflict(source, exc)
                if verdict.kind is VerdictKind.OVERWRITE:
                    overwrite = True
                    continue
                if verdict.kind is VerdictKind.RENAME and target is not None and verdict.new_name:
                    target = os.path.join(os.path.dirname(target), verdict.new_name)
                    overwrite = False
                    continue
                if verdict.kind is VerdictKind.RETRY:
                    continue
                if verdict.kind is VerdictKind.ABORT:
                    raise _Aborted()
                return
            except TrashUnsupported as exc:
                logger.info("Cannot trash %s: %s", source.location, exc)
                self._trash_unsupported.append(source)
                return
            except JobItemError as exc:
                error = exc
            except OSError as exc:
                error = JobItemError.from_os_error(exc)
            else:
                item.complete()
                return

            if not self._handle_error(source, target, error):
                return

    def _target_for(self, source: FileRef) -> str | None:
        if self._kind.needs_destination:
            assert self._destination is not None
            return os.path.join(self._destination, source.name)
        if self._kind is OperationKind.UNTRASH:
            return self._operations.original_location(source)
        return None

    def _perform(self, source: FileRef, target: str | None, item: _ItemProgress, *, overwrite: bool) -> None:
        ops = self._operations
        kind = self._kind
        if kind is OperationKind.DELETE:
            ops.delete_one(source, item)
        elif kind is OperationKind.TRASH:
            ops.trash_one(source, item)
        elif kind is OperationKind.CHANGE_ATTR:
            assert self._attrs is not None
            ops.set_attr_one(source, self._attrs, item)
        else:
            assert target is not None
            if kind is OperationKind.COPY:
                ops.copy_one(source, target, item, overwrite=overwrite)
            elif kind is OperationKind.MOVE:
                ops.move_one(source, target, item, overwrite=overwrite)
            elif kind is OperationKind.LINK:
                ops.link_one(source, target, item, overwrite=overwrite)
            else:
                ops.untrash_one(source, target, item, overwrite=overwrite)

    def _resolve_conflict(self, source: FileRef, conflict: DestinationExists) -> Verdict:
        if self._default_verdict is not None:
            return self._default_verdict

        existing = conflict.existing
        while True:
            verdict = self._decide("on_ask_rename", (source, existing), Verdict.abort())
            if verdict is None:
                self._record(source, conflict)
                return Verdict.skip()
            if verdict.kind is VerdictKind.RENAME:
                name = verdict.new_name or ""
                if not name or name == existing.name or os.sep in name:
                    logger.debug("Rejected new name %r for %s", name, source.location)
                    continue
                return verdict
            if verdict.kind in (VerdictKind.OVERWRITE, VerdictKind.SKIP):
                if verdict.sticky:
                    self._default_verdict = verdict
                return verdict
            if verdict.kind in (VerdictKind.ABORT, VerdictKind.RETRY):
                return verdict
            return Verdict.skip()

    def _handle_error(self, source: FileRef, target: str | None, error: JobItemError) -> bool:
        """Run the error negotiation. Returns ``True`` to retry the item."""

        context = ItemContext(source=source, destination=target, error=error)
        default = Verdict.abort() if error.cancelled else (Verdict.skip() if error.handled else Verdict.continue_())
        verdict = self._decide("on_error", (context, error.severity), Verdict.abort()) or default

        if verdict.kind is VerdictKind.RETRY:
            logger.debug("Retrying %s", source.location)
            return True
        if verdict.kind is VerdictKind.ABORT:
            self._record(source, error)
            raise _Aborted()
        if error.is_fatal:
            self._record(source, error)
            raise _Failed()
        if verdict.kind is not VerdictKind.SKIP:
            self._record(source, error)
        return False

    def _record(self, source: FileRef, error: Exception) -> None:
        self._has_errors = True
        logger.info("%s: %s", source.location, error)

    def _decide(self, name: str, args: tuple[Any, ...], cancelled_answer: Any) -> Any:
        if self._cancel_event.is_set():
            return cancelled_answer

        future = self._context.call(self._first_answer, name, args)
        with self._lock:
            self._pending.add(future)
        if self._cancel_event.is_set():
            future.cancel()
        try:
            answer = future.result()
        except CancelledError:
            return cancelled_answer
        finally:
            with self._lock:
                self._pending.discard(future)
        # an answer given after cancel() was requested is dropped
        if self._cancel_event.is_set():
            return cancelled_answer
        return answer

    def _first_answer(self, name: str, args: tuple[Any, ...]) -> Any:
        for observer in self.observers():
            callback = getattr(observer, name)
            if callback is None:
                continue
            answer = callback(*args)
            if answer is not None:
                return answer
        return None

    def _notify(self, name: str, *args: Any) -> None:
        self._context.post(self._deliver, name, args)

    def _deliver(self, name: str, args: tuple[Any, ...]) -> None:
        if self._done.is_set():
            return
        for observer in self.observers():
            callback = getattr(observer, name)
            if callback is not None:
                callback(*args)

    def _deliver_terminal(self, had_errors: bool, cancelled: bool) -> None:
        if self._done.is_set():
            return
        try:
            if cancelled:
                self._deliver("on_cancelled", ())
            self._deliver("on_finished", (had_errors, cancelled))
        finally:
            self._done.set()
