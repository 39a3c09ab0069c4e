"""Command-line interface for fmcore."""

from __future__ import annotations

import io
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Sequence

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Prompt

from .config import DEFAULT_CONFIG_FILENAME, DEFAULT_TERMINAL, ConfigError, load_config
from .errors import FmError, ResolutionError
from .filesystem import LocalFileInfo, LocalFileOperations
from .job import Job
from .launcher import LaunchDispatcher, LaunchPolicy
from .models import AttrChange, ExecAction, FileRef, Handler, LaunchContext, OperationKind, Verdict
from .progress import run_with_progress
from .system import SystemServices

app = typer.Typer(help="Open files with the right applications and run file operations")
console = Console()


class ConflictPolicy(str, Enum):
    ASK = "ask"
    OVERWRITE = "overwrite"
    SKIP = "skip"


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges (e.g. `sudo`).")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{escape(message)}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'fmcore init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, FmError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _render_init_config(*, terminal: str, trash_dir: str | None) -> str:
    settings: dict[str, object] = {"terminal": terminal, "group_directories": True}
    if trash_dir:
        settings["trash_dir"] = trash_dir
    data = {
        "settings": settings,
        "handlers": {
            "types": {
                "inode/directory": "xdg-open %U",
                "text/*": {"command": "vi %F", "terminal": True},
            },
            "schemes": {"https": "xdg-open %u", "mailto": "xdg-email %u"},
            "entries": {},
        },
    }

    buffer = io.StringIO()
    buffer.write("# fmcore configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


def _ask_exec_action(ref: FileRef) -> ExecAction:
    answer = Prompt.ask(
        f"'{escape(ref.name)}' is an executable file. What do you want to do?",
        choices=[action.value for action in ExecAction],
        default=ExecAction.OPEN.value,
        console=console,
    )
    return ExecAction(answer)


def _build_job(
    kind: OperationKind,
    sources: Sequence[Path],
    destination: Path | None,
    config: Path | None,
    *,
    attrs: AttrChange | None = None,
) -> Job:
    config_obj = load_config(config)
    operations = LocalFileOperations(config_obj.settings.trash_dir)
    refs = [FileRef(location=os.path.abspath(source), display_name=source.name) for source in sources]
    return Job(
        kind,
        refs,
        os.path.abspath(destination) if destination is not None else None,
        operations=operations,
        attrs=attrs,
    )


def _run_job(job: Job, on_conflict: ConflictPolicy) -> None:
    if on_conflict is not ConflictPolicy.ASK:
        verdict = (
            Verdict.overwrite(sticky=True) if on_conflict is ConflictPolicy.OVERWRITE else Verdict.skip(sticky=True)
        )
        job.attach_observer(on_ask_rename=lambda source, existing: verdict)
    if not run_with_progress(job, console, interactive=console.is_terminal):
        raise typer.Exit(code=1)


_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to fmcore.toml")
_CONFLICT_OPTION = typer.Option(
    ConflictPolicy.ASK,
    "--on-conflict",
    help="How to handle existing destination files",
    case_sensitive=False,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    setup_logging(verbose)


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    terminal: str = typer.Option(DEFAULT_TERMINAL, "--terminal", help="Terminal command for run-in-terminal"),
    trash_dir: str | None = typer.Option(None, "--trash-dir", help="Trash directory to record in the template"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter fmcore configuration file."""

    if config.exists() and not force:
        console.print(f"[red]Configuration '{config}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(_render_init_config(terminal=terminal, trash_dir=trash_dir))
    console.print(f"[green]Created '{config}'.[/green]")


@app.command("open")
def open_(
    paths: list[str] = typer.Argument(..., help="Files, folders or URIs to open"),
    config: Path | None = _CONFIG_OPTION,
    exec_action: ExecAction | None = typer.Option(
        None,
        "--exec",
        help="What to do with executable files instead of asking",
        case_sensitive=False,
    ),
    with_command: str | None = typer.Option(
        None,
        "--with",
        help="Command used for files without a default application",
    ),
    no_group: bool = typer.Option(
        False,
        "--no-group-directories",
        help="Open folders with the inode/directory handler one batch at a time",
    ),
) -> None:
    """Open files with their default applications."""

    failures: list[str] = []
    try:
        services = SystemServices(load_config(config))
        dispatcher = LaunchDispatcher(
            services.content_types,
            services.handlers,
            services.launcher,
            entries=services.handlers,
        )

        def on_error(context: LaunchContext, error: FmError, ref: FileRef | None) -> bool:
            failures.append(str(error))
            console.print(f"[red]{escape(str(error))}[/red]")
            return True

        def open_folder(context: LaunchContext, folders: Sequence[FileRef]) -> None:
            handler = services.folder_handler()
            if handler is None:
                raise ResolutionError("No application is set to open folders")
            services.launcher.launch(handler, [folder.launch_id for folder in folders], context)

        def pick_app(pending: Sequence[FileRef], content_type: str) -> Handler | None:
            if not with_command:
                return None
            return Handler(name=with_command.split()[0], command=with_command)

        group = services.config.settings.group_directories and not no_group
        policy = LaunchPolicy(
            exec_file=(lambda ref: exec_action) if exec_action is not None else _ask_exec_action,
            get_app=pick_app,
            open_folder=open_folder if group else None,
            error=on_error,
            strict=True,
        )
        ok = dispatcher.launch_paths(paths, LocalFileInfo(), policy)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not ok or failures:
        raise typer.Exit(code=1)


@app.command()
def copy(
    sources: list[Path] = typer.Argument(..., help="Files or folders to copy"),
    to: Path = typer.Option(..., "--to", "-t", help="Destination folder"),
    config: Path | None = _CONFIG_OPTION,
    on_conflict: ConflictPolicy = _CONFLICT_OPTION,
) -> None:
    """Copy files into a folder."""

    try:
        job = _build_job(OperationKind.COPY, sources, to, config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, on_conflict)


@app.command()
def move(
    sources: list[Path] = typer.Argument(..., help="Files or folders to move"),
    to: Path = typer.Option(..., "--to", "-t", help="Destination folder"),
    config: Path | None = _CONFIG_OPTION,
    on_conflict: ConflictPolicy = _CONFLICT_OPTION,
) -> None:
    """Move files into a folder."""

    try:
        job = _build_job(OperationKind.MOVE, sources, to, config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, on_conflict)


@app.command()
def link(
    sources: list[Path] = typer.Argument(..., help="Files or folders to link to"),
    to: Path = typer.Option(..., "--to", "-t", help="Folder to create the symlinks in"),
    config: Path | None = _CONFIG_OPTION,
    on_conflict: ConflictPolicy = _CONFLICT_OPTION,
) -> None:
    """Create symlinks to files inside a folder."""

    try:
        job = _build_job(OperationKind.LINK, sources, to, config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, on_conflict)


@app.command()
def delete(
    sources: list[Path] = typer.Argument(..., help="Files or folders to delete permanently"),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Delete files permanently."""

    try:
        job = _build_job(OperationKind.DELETE, sources, None, config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, ConflictPolicy.ASK)


@app.command()
def trash(
    sources: list[Path] = typer.Argument(..., help="Files or folders to move to the trash"),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Move files to the trash can."""

    try:
        job = _build_job(OperationKind.TRASH, sources, None, config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, ConflictPolicy.ASK)


@app.command()
def untrash(
    names: list[str] = typer.Argument(..., help="Trashed items, by name or by path inside the trash"),
    config: Path | None = _CONFIG_OPTION,
    on_conflict: ConflictPolicy = _CONFLICT_OPTION,
) -> None:
    """Restore trashed files to their original location."""

    try:
        trash_files = load_config(config).settings.trash_dir / "files"
        sources = [Path(name) if os.sep in name else trash_files / name for name in names]
        job = _build_job(OperationKind.UNTRASH, sources, None, config)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, on_conflict)


@app.command()
def chmod(
    mode: str = typer.Argument(..., help="Octal permission bits, e.g. 644"),
    sources: list[Path] = typer.Argument(..., help="Files or folders to change"),
    recursive: bool = typer.Option(False, "--recursive", "-R", help="Also change folder contents"),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Change permission bits of files."""

    try:
        bits = int(mode, 8)
    except ValueError:
        raise typer.BadParameter(f"'{mode}' is not an octal mode", param_hint="MODE") from None

    try:
        job = _build_job(
            OperationKind.CHANGE_ATTR,
            sources,
            None,
            config,
            attrs=AttrChange(mode=bits, recursive=recursive),
        )
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return
    _run_job(job, ConflictPolicy.ASK)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
