"""Exception hierarchy for fmcore."""

from __future__ import annotations

import errno

from .models import ErrorSeverity, FileRef

_FATAL_ERRNOS = frozenset(
    getattr(errno, name) for name in ("ENOSPC", "EROFS", "ENODEV", "EDQUOT") if hasattr(errno, name)
)


class FmError(RuntimeError):
    """Base class for errors raised by fmcore."""


class ClassificationError(FmError):
    """The content type of a target could not be determined."""


class ResolutionError(FmError):
    """No handler could be found for a content type, scheme or desktop entry."""


class LaunchError(FmError):
    """Invoking a handler failed."""


class WorkingDirectoryError(FmError):
    """Switching to or restoring a working directory failed."""


class JobStateError(FmError):
    """A job was used in a way its lifecycle does not allow."""


class JobItemError(FmError):
    """One filesystem operation step failed.

    ``cancelled`` marks failures caused by the job being cancelled and
    ``handled`` marks failures already dealt with by whoever raised them.
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.MODERATE,
        cancelled: bool = False,
        handled: bool = False,
    ) -> None:
        super().__init__(message)
        self.severity = severity
        self.cancelled = cancelled
        self.handled = handled

    @property
    def is_fatal(self) -> bool:
        return self.severity >= ErrorSeverity.CRITICAL

    @classmethod
    def from_os_error(cls, exc: OSError) -> "JobItemError":
        severity = ErrorSeverity.CRITICAL if exc.errno in _FATAL_ERRNOS else ErrorSeverity.MODERATE
        return cls(exc.strerror or str(exc), severity=severity)


class TrashUnsupported(JobItemError):
    """The filesystem holding an item cannot move it to the trash."""


class DestinationExists(FmError):
    """The destination of an item is already taken by ``existing``."""

    def __init__(self, existing: FileRef) -> None:
        super().__init__(f"'{existing.location}' already exists")
        self.existing = existing
