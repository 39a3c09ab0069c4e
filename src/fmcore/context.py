"""Owner-thread callback queue.

Workers never call observers directly. They post callables here and the thread
that created the context runs them while it pumps the queue, so observers
never run concurrently with their owner.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(slots=True)
class _Call:
    func: Callable[..., Any]
    args: tuple[Any, ...]
    future: Future | None


class MainContext:
    """Runs callables on the thread that owns it."""

    def __init__(self) -> None:
        self._owner = threading.get_ident()
        self._queue: queue.SimpleQueue[_Call] = queue.SimpleQueue()

    def is_owner(self) -> bool:
        return threading.get_ident() == self._owner

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        """Schedule ``func`` without waiting for it. Runs inline on the owner."""

        if self.is_owner():
            func(*args)
            return
        self._queue.put(_Call(func, args, None))

    def call(self, func: Callable[..., Any], *args: Any) -> Future:
        """Schedule ``func`` and return a future for its result.

        A caller may cancel the future while it is still queued; the call is
        then dropped when the owner reaches it.
        """

        future: Future = Future()
        call = _Call(func, args, future)
        if self.is_owner():
            self._dispatch(call)
        else:
            self._queue.put(call)
        return future

    def iteration(self, *, block: bool = False, timeout: float | None = None) -> bool:
        """Run one queued call. Returns ``False`` when nothing was pending."""

        try:
            call = self._queue.get(block=block, timeout=timeout)
        except queue.Empty:
            return False
        self._dispatch(call)
        return True

    def run_until(self, predicate: Callable[[], bool], *, poll_interval: float = 0.05) -> None:
        """Pump the queue until ``predicate`` holds, then drain what is left."""

        while not predicate():
            self.iteration(block=True, timeout=poll_interval)
        while self.iteration():
            pass

    @staticmethod
    def _dispatch(call: _Call) -> None:
        future = call.future
        if future is None:
            call.func(*call.args)
            return
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = call.func(*call.args)
        except Exception as exc:
            future.set_exception(exc)
        except BaseException:
            # waiters see an interrupted call as cancelled
            future.set_exception(CancelledError())
            raise
        else:
            future.set_result(result)
