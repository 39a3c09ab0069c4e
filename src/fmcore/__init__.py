"""Core package for the fmcore project."""

from .classifier import TargetClassifier
from .cli import app, run
from .config import Config, ConfigError, HandlerSpec, HandlerTable, Settings
from .context import MainContext
from .errors import (
    ClassificationError,
    DestinationExists,
    FmError,
    JobItemError,
    JobStateError,
    LaunchError,
    ResolutionError,
    TrashUnsupported,
    WorkingDirectoryError,
)
from .job import Job, JobObserver
from .launcher import LaunchDispatcher, LaunchPolicy
from .models import (
    Classification,
    DesktopEntry,
    Directory,
    ErrorSeverity,
    ExecAction,
    Executable,
    ExternalScheme,
    FileRef,
    Handler,
    ItemContext,
    JobState,
    LaunchContext,
    OperationKind,
    Shortcut,
    Typed,
    Verdict,
    VerdictKind,
)
from .resolver import HandlerResolver

__all__ = [
    "Config",
    "ConfigError",
    "HandlerSpec",
    "HandlerTable",
    "Settings",
    "TargetClassifier",
    "HandlerResolver",
    "LaunchDispatcher",
    "LaunchPolicy",
    "MainContext",
    "Job",
    "JobObserver",
    "FmError",
    "ClassificationError",
    "ResolutionError",
    "LaunchError",
    "WorkingDirectoryError",
    "JobItemError",
    "JobStateError",
    "TrashUnsupported",
    "DestinationExists",
    "Classification",
    "Directory",
    "DesktopEntry",
    "Shortcut",
    "ExternalScheme",
    "Executable",
    "Typed",
    "FileRef",
    "Handler",
    "ItemContext",
    "LaunchContext",
    "ErrorSeverity",
    "ExecAction",
    "JobState",
    "OperationKind",
    "Verdict",
    "VerdictKind",
    "app",
    "run",
]
