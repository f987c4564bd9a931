from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

logger = logging.getLogger(__name__)


class TaskRunner:
    """Owned thread pool for fire-and-forget work.

    Exceptions raised by submitted tasks are logged and never reach the submitter.
    """

    def __init__(self, max_workers: int = 4, name: str = "bouquet-task") -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future | None:
        if self._closed:
            logger.warning("[TASKS] Runner is shut down; dropping %s", getattr(fn, "__name__", fn))
            return None

        future = self._pool.submit(fn, *args, **kwargs)
        future.add_done_callback(self._log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._pool.shutdown(wait=wait)

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("[TASKS] Background task failed: %s", exc, exc_info=exc)
