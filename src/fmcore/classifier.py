"""Decide what opening a single target means."""

from __future__ import annotations

import logging
import os
from typing import Callable

from .errors import ClassificationError
from .models import (
    Classification,
    DesktopEntry,
    Directory,
    Executable,
    ExternalScheme,
    FileRef,
    Shortcut,
    Typed,
    parse_scheme,
)
from .ports import ContentTypeSource

logger = logging.getLogger(__name__)

# Schemes the file manager opens itself instead of handing them to an application.
INTERNAL_SCHEMES = frozenset({"file", "trash", "network", "computer", "menu"})


def is_executable_file(path: str) -> bool:
    """Return ``True`` if ``path`` is a regular file the user may execute."""

    return os.path.isfile(path) and os.access(path, os.X_OK)


class TargetClassifier:
    """Classifies file references for the launch dispatcher."""

    def __init__(
        self,
        content_types: ContentTypeSource,
        *,
        executable_probe: Callable[[str], bool] = is_executable_file,
    ) -> None:
        self._types = content_types
        self._probe = executable_probe

    def classify(self, ref: FileRef, *, group_directories: bool = False) -> Classification:
        if group_directories and ref.is_directory:
            return Directory()

        if ref.is_desktop_entry:
            if ref.is_shortcut and ref.target:
                return DesktopEntry(ref.target)
            return DesktopEntry(ref.path or ref.location)

        if ref.is_shortcut and ref.target:
            resolved = self._classify_shortcut_target(ref, group_directories)
            logger.debug("Shortcut %s -> %s resolved as %r", ref.location, ref.target, resolved)
            return Shortcut(ref.target, resolved)

        content_type = self._content_type(ref, ref.name)
        path = ref.path
        if (
            path is not None
            and (ref.is_executable or self._types.is_executable_type(content_type))
            and self._probe(path)
        ):
            return Executable(path, content_type)
        return Typed(content_type)

    def _classify_shortcut_target(self, ref: FileRef, group_directories: bool) -> Classification:
        target = ref.target or ""
        target_ref = ref.target_ref()

        if os.path.isabs(target) and self._probe(target):
            return Executable(target, self._types.get_content_type(target_ref))

        scheme = parse_scheme(target)
        if scheme is not None and scheme not in INTERNAL_SCHEMES:
            return ExternalScheme(scheme, target)

        content_type = self._content_type(target_ref, target)
        if self._types.is_directory_type(content_type) and group_directories:
            return Directory()
        return Typed(content_type)

    def _content_type(self, ref: FileRef, display: str) -> str:
        content_type = ref.content_type or self._types.get_content_type(ref)
        if not content_type:
            raise ClassificationError(f"Could not determine content type of '{display}' to launch")
        return content_type
