from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class CompletionContext(Protocol):
    def post(self, fn: Callable[..., Any], *args: Any) -> None: ...

    def close(self) -> None: ...


class ThreadCompletionContext:
    """Runs every completion, in order, on one dedicated thread."""

    def __init__(self, *, thread_name: str = "photorama-completion") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name)

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._executor.submit(_run_completion, fn, *args)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


class QueueCompletionContext:
    """Queues completions until the owning loop calls ``drain``."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[tuple[Callable[..., Any], tuple[Any, ...]]] = (
            queue.SimpleQueue()
        )

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def drain(self, *, block: bool = False, timeout: float | None = None) -> int:
        """Run queued completions on the calling thread; returns how many ran.

        With ``block=True`` waits up to ``timeout`` for the first completion.
        """
        ran = 0
        if block:
            try:
                fn, args = self._queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            _run_completion(fn, *args)
            ran += 1

        while True:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                return ran
            _run_completion(fn, *args)
            ran += 1

    def close(self) -> None:
        self.drain()


def _run_completion(fn: Callable[..., Any], *args: Any) -> None:
    try:
        fn(*args)
    except Exception:
        logger.exception("completion callback failed fn=%r", fn)
