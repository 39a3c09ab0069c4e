"""Find the application that should handle a content type or scheme."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from .models import FileRef, Handler
from .ports import DesktopEntryResolver, HandlerRegistry

logger = logging.getLogger(__name__)

HandlerPicker = Callable[[Sequence[FileRef], str], Handler | None]


class HandlerResolver:
    """Read-only fallback chain over the default-handler registry.

    The system default is tried first; when there is none, an optional picker
    is offered the pending refs so the user can choose interactively.
    """

    def __init__(self, registry: HandlerRegistry, entries: DesktopEntryResolver | None = None) -> None:
        self._registry = registry
        self._entries = entries

    def resolve_for_type(
        self,
        content_type: str,
        pending: Sequence[FileRef] = (),
        picker: HandlerPicker | None = None,
    ) -> Handler | None:
        handler = self._registry.default_handler_for_type(content_type)
        if handler is not None:
            return handler
        if picker is not None and pending:
            logger.debug("No default handler for %s, asking picker", content_type)
            return picker(pending, content_type)
        return None

    def resolve_for_scheme(self, scheme: str) -> Handler | None:
        return self._registry.default_handler_for_scheme(scheme)

    def resolve_desktop_entry(self, id_or_path: str) -> Handler | None:
        if self._entries is None:
            return None
        return self._entries.resolve_desktop_entry(id_or_path)
