"""Console presentation of running jobs."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Sequence

from rich.console import Console
from rich.filesize import decimal
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.prompt import Confirm, Prompt

from .job import Job, JobObserver
from .models import ErrorSeverity, FileRef, ItemContext, OperationKind, Verdict

logger = logging.getLogger(__name__)

OPERATION_TITLES = {
    OperationKind.MOVE: "Moving files",
    OperationKind.COPY: "Copying files",
    OperationKind.TRASH: "Trashing files",
    OperationKind.DELETE: "Deleting files",
    OperationKind.LINK: "Creating symlinks",
    OperationKind.CHANGE_ATTR: "Changing file attributes",
}

TRASH_FALLBACK_QUESTION = (
    "Some files cannot be moved to trash can because the underlying file systems "
    "don't support this operation.\nDo you want to delete them instead?"
)


def operation_title(kind: OperationKind) -> str | None:
    return OPERATION_TITLES.get(kind)


def summarize_sources(sources: Sequence[FileRef], limit: int = 10) -> str:
    """Join the first ``limit`` source names, ending with ``...`` if there are more."""

    names = [source.name for source in sources[:limit]]
    text = ", ".join(names)
    if len(sources) > limit:
        text += "..."
    return text


def format_remaining(elapsed: float, percent: int) -> str | None:
    """Estimate the remaining time as ``HH:MM:SS``.

    Nothing is estimated during the first half second or before any progress.
    """

    if elapsed < 0.5 or percent <= 0:
        return None
    remaining = int(elapsed * (100 - percent) / percent)
    minutes, seconds = divmod(remaining, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def describe_file(ref: FileRef) -> str:
    kind = ref.content_type or ("folder" if ref.is_directory else "file")
    lines = [f"Type: {kind}"]
    if ref.size is not None and not ref.is_directory:
        lines.append(f"Size: {decimal(ref.size)}")
    if ref.mtime is not None:
        lines.append(f"Modified: {datetime.fromtimestamp(ref.mtime):%Y-%m-%d %H:%M}")
    return "\n".join(lines)


class ConsoleProgress:
    """Job observer that reports progress and asks questions on a rich console."""

    def __init__(self, job: Job, console: Console, *, interactive: bool = True) -> None:
        self.job = job
        self.console = console
        self.interactive = interactive
        self.has_error = False
        self.errors: list[str] = []
        self.current: str | None = None
        self.percent = 0
        self.remaining: str | None = None
        self._started_at: float | None = None
        self._progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[remaining]}"),
            console=console,
            transient=True,
            disable=not console.is_terminal,
        )
        self._task: TaskID | None = None

    def callbacks(self) -> JobObserver:
        return JobObserver(
            on_prepared=self.on_prepared,
            on_current_item=self.on_current_item,
            on_percent=self.on_percent,
            on_error=self.on_error,
            on_ask=self.on_ask,
            on_ask_rename=self.on_ask_rename,
            on_finished=self.on_finished,
            on_cancelled=self.on_cancelled,
        )

    def on_prepared(self) -> None:
        self._started_at = time.monotonic()
        title = operation_title(self.job.kind)
        if title:
            header = f"[bold]{title}[/bold] {escape(summarize_sources(self.job.sources))}"
            if self.job.destination:
                header += f" to {escape(self.job.destination)}"
            self.console.print(header)
        self._task = self._progress.add_task(title or "", total=100, remaining="")
        self._progress.start()

    def on_current_item(self, identifier: str) -> None:
        self.current = identifier
        if self._task is not None:
            self._progress.update(self._task, description=escape(os.path.basename(identifier) or identifier))

    def on_percent(self, percent: int) -> None:
        self.percent = percent
        elapsed = time.monotonic() - self._started_at if self._started_at is not None else 0.0
        self.remaining = format_remaining(elapsed, percent)
        if self._task is not None:
            self._progress.update(self._task, completed=percent, remaining=self.remaining or "")

    def on_error(self, context: ItemContext, severity: ErrorSeverity) -> Verdict:
        error = context.error
        if getattr(error, "cancelled", False):
            return Verdict.abort()
        if getattr(error, "handled", False):
            return Verdict.skip()

        self.has_error = True
        line = f"{self.current or context.source.location}: {context.message}"
        self.errors.append(line)
        with self._paused():
            style = "bold red" if severity >= ErrorSeverity.CRITICAL else "red"
            self.console.print(f"[{style}]{escape(line)}[/{style}]")
        return Verdict.continue_()

    def on_ask(self, question: str, options: Sequence[str]) -> int | None:
        if not self.interactive:
            return None
        choices = list(options)
        with self._paused():
            answer = Prompt.ask(escape(question), choices=choices, console=self.console)
        return choices.index(answer)

    def on_ask_rename(self, source: FileRef, existing: FileRef) -> Verdict | None:
        if not self.interactive:
            return None
        with self._paused():
            self.console.print(f"[yellow]'{escape(existing.location)}' already exists.[/yellow]")
            self.console.print(f"[bold]Source[/bold]\n{escape(describe_file(source))}")
            self.console.print(f"[bold]Existing[/bold]\n{escape(describe_file(existing))}")
            choice = Prompt.ask(
                "What should be done?",
                choices=["overwrite", "rename", "skip", "cancel"],
                default="skip",
                console=self.console,
            )
            if choice == "rename":
                return Verdict.rename(Prompt.ask("New name", default=existing.name, console=self.console))
            if choice == "cancel":
                return Verdict.abort()
            apply_all = Confirm.ask("Apply this to all conflicts?", default=False, console=self.console)
        if choice == "overwrite":
            return Verdict.overwrite(sticky=apply_all)
        return Verdict.skip(sticky=apply_all)

    def on_cancelled(self) -> None:
        logger.debug("file operation is cancelled!")

    def on_finished(self, had_errors: bool, was_cancelled: bool) -> None:
        self._progress.stop()
        if self.has_error or had_errors:
            if was_cancelled:
                self.console.print("[yellow]The file operation is cancelled and there are some errors.[/yellow]")
            else:
                self.console.print("[yellow]The file operation is finished, but there are some errors.[/yellow]")
        elif was_cancelled:
            self.console.print("[yellow]The file operation is cancelled.[/yellow]")
        logger.debug("file operation is finished!")

    @contextmanager
    def _paused(self) -> Iterator[None]:
        running = self._task is not None and self._progress.live.is_started
        if running:
            self._progress.stop()
        try:
            yield
        finally:
            if running:
                self._progress.start()


def run_with_progress(job: Job, console: Console, *, interactive: bool = True) -> bool:
    """Run ``job`` in the background while presenting it on ``console``.

    Ctrl-C cancels the job and waits for the item in flight. Items that
    cannot be trashed are offered for deletion afterwards.
    """

    display = ConsoleProgress(job, console, interactive=interactive)
    job.attach_observer(display.callbacks())
    job.run_async()
    try:
        ok = job.run_until_done()
    except KeyboardInterrupt:
        job.cancel()
        ok = job.run_until_done()

    unsupported = job.trash_unsupported() if job.kind is OperationKind.TRASH else ()
    if unsupported:
        if interactive and Confirm.ask(TRASH_FALLBACK_QUESTION, default=True, console=console):
            follow_up = Job(OperationKind.DELETE, unsupported, operations=job.operations)
            ok = run_with_progress(follow_up, console, interactive=interactive) and ok
        else:
            ok = False
    return ok
