"""Keyed, coalescing background queue for blog-post regeneration.

Mutations fire a regeneration for their (user_id, movie_id) pair and move
on. At most one job per key runs at a time; triggers that arrive while a
job is running collapse into a single follow-up run, which reads a fresh
snapshot when it starts.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Hashable

from curator.core.config import get_settings

logger = logging.getLogger(__name__)

Job = Callable[[], object]


class InlineExecutor(Executor):
    """Runs submitted callables immediately on the caller's thread."""

    def submit(self, fn, /, *args, **kwargs):  # type: ignore[override]
        fn(*args, **kwargs)


class RegenerationQueue:
    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor
        self._lock = threading.Lock()
        self._running: set[Hashable] = set()
        self._pending: dict[Hashable, Job] = {}

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=get_settings().regeneration_workers,
                thread_name_prefix="blog-regen",
            )
        return self._executor

    def submit(self, key: Hashable, job: Job) -> bool:
        """Schedule ``job`` for ``key``. Returns False when it was coalesced."""

        with self._lock:
            if key in self._running:
                self._pending[key] = job
                logger.debug("Regeneration for %s already running, coalescing", key)
                return False
            self._running.add(key)
        try:
            self.executor.submit(self._drain, key, job)
        except Exception:
            with self._lock:
                self._running.discard(key)
                self._pending.pop(key, None)
            raise
        return True

    def is_busy(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._running

    def _drain(self, key: Hashable, job: Job) -> None:
        while True:
            try:
                job()
            except Exception as exc:
                logger.warning("Blog post regeneration for %s failed: %s", key, exc)
            with self._lock:
                next_job = self._pending.pop(key, None)
                if next_job is None:
                    self._running.discard(key)
                    return
            job = next_job

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
