from __future__ import annotations

import contextvars
import heapq
import itertools
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable

import structlog

from app.observability.context import CorrelationContext, capture, restore
from app.observability.metrics import get_metrics


logger = structlog.get_logger("scheduler")


@dataclass(order=True)
class ScheduledTask:
    due: float
    seq: int
    body: Callable[[], Any] = field(compare=False)
    future: Future = field(compare=False)
    # None means nothing was captured: the body runs with the scheduler thread's own context.
    snapshot: CorrelationContext | None = field(default=None, compare=False)

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.body()
        except Exception as exc:
            logger.exception("scheduler.task_failed", seq=self.seq)
            self.future.set_exception(exc)
        else:
            # Done-callbacks fire right here, on this thread.
            self.future.set_result(result)


class DelayScheduler:
    """Single timer thread that runs bodies after a delay and completes their futures.

    The thread runs inside a brand-new ``contextvars.Context``, so it never sees
    anything installed by the code that scheduled work on it. Pass
    ``propagate=True`` to carry the caller's correlation context along.
    """

    def __init__(self, name: str = "deferred-scheduler") -> None:
        self.name = name
        self._queue: list[ScheduledTask] = []
        self._cond = threading.Condition()
        self._seq = itertools.count()
        self._thread: threading.Thread | None = None
        self._stopped = False

    def schedule(self, body: Callable[[], Any], delay_s: float, *, propagate: bool = False) -> Future:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")

        task = ScheduledTask(
            due=time.monotonic() + delay_s,
            seq=next(self._seq),
            body=body,
            future=Future(),
            snapshot=capture() if propagate else None,
        )

        with self._cond:
            if self._stopped:
                raise RuntimeError("scheduler is shut down")
            self._ensure_started()
            heapq.heappush(self._queue, task)
            self._cond.notify()

        get_metrics().observe_deferred_task()
        logger.debug("scheduler.task_scheduled", seq=task.seq, delay_ms=round(delay_s * 1000.0, 2), propagate=propagate)
        return task.future

    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def shutdown(self, wait: bool = True) -> None:
        with self._cond:
            self._stopped = True
            cancelled, self._queue = self._queue, []
            self._cond.notify_all()
            thread = self._thread

        for task in cancelled:
            task.future.cancel()

        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()

    def _ensure_started(self) -> None:
        if self._thread is not None:
            return
        empty = contextvars.Context()
        self._thread = threading.Thread(target=empty.run, args=(self._loop,), name=self.name, daemon=True)
        self._thread.start()

    def _next_task(self) -> ScheduledTask | None:
        with self._cond:
            while not self._stopped:
                if not self._queue:
                    self._cond.wait()
                    continue
                wait_s = self._queue[0].due - time.monotonic()
                if wait_s <= 0:
                    return heapq.heappop(self._queue)
                self._cond.wait(timeout=wait_s)
            return None

    def _loop(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            if task.snapshot is None:
                task.run()
            else:
                restore(task.snapshot, task.run)


_SCHEDULER: DelayScheduler | None = None
_SCHEDULER_LOCK = threading.Lock()


def get_scheduler() -> DelayScheduler:
    global _SCHEDULER
    with _SCHEDULER_LOCK:
        if _SCHEDULER is None:
            _SCHEDULER = DelayScheduler()
        return _SCHEDULER


def shutdown_scheduler() -> None:
    """Stop the shared scheduler; the next ``get_scheduler()`` starts a fresh one."""

    global _SCHEDULER
    with _SCHEDULER_LOCK:
        scheduler, _SCHEDULER = _SCHEDULER, None
    if scheduler is not None:
        scheduler.shutdown()
