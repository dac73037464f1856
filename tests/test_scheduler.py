import threading
import time

import pytest

from app.observability.context import EMPTY, CorrelationContext, capture, correlation_scope, current
from app.services.scheduler import DelayScheduler


@pytest.fixture
def scheduler():
    s = DelayScheduler(name="test-scheduler")
    yield s
    s.shutdown()


def test_schedule_runs_body_after_delay(scheduler) -> None:
    start = time.monotonic()
    future = scheduler.schedule(lambda: "done", 0.05)
    assert future.result(timeout=2) == "done"
    assert time.monotonic() - start >= 0.05


def test_tasks_run_in_due_order(scheduler) -> None:
    order: list[str] = []
    late = scheduler.schedule(lambda: order.append("late"), 0.1)
    early = scheduler.schedule(lambda: order.append("early"), 0.01)
    late.result(timeout=2)
    early.result(timeout=2)
    assert order == ["early", "late"]


def test_body_does_not_see_caller_context_without_propagation(scheduler) -> None:
    with correlation_scope(CorrelationContext.start()):
        future = scheduler.schedule(capture, 0.01)
    assert future.result(timeout=2) == EMPTY


def test_body_sees_captured_context_with_propagation(scheduler) -> None:
    ctx = CorrelationContext.start()
    with correlation_scope(ctx):
        future = scheduler.schedule(capture, 0.05, propagate=True)
    assert current() == EMPTY
    assert future.result(timeout=2) == ctx


def test_done_callbacks_run_on_scheduler_thread_inside_restored_scope(scheduler) -> None:
    seen: dict = {}
    done = threading.Event()

    def _callback(_future) -> None:
        seen["thread"] = threading.current_thread().name
        seen["context"] = current()
        done.set()

    ctx = CorrelationContext.start()
    with correlation_scope(ctx):
        future = scheduler.schedule(lambda: None, 0.05, propagate=True)
        future.add_done_callback(_callback)

    assert done.wait(timeout=2)
    assert seen["thread"] == "test-scheduler"
    assert seen["context"] == ctx


def test_scheduler_thread_context_is_clean_after_propagated_task(scheduler) -> None:
    with correlation_scope(CorrelationContext.start()):
        scheduler.schedule(lambda: None, 0.0, propagate=True).result(timeout=2)
    assert scheduler.schedule(capture, 0.0).result(timeout=2) == EMPTY


def test_failing_body_sets_exception(scheduler) -> None:
    def _boom() -> None:
        raise ValueError("nope")

    future = scheduler.schedule(_boom, 0.0)
    with pytest.raises(ValueError):
        future.result(timeout=2)


def test_negative_delay_rejected(scheduler) -> None:
    with pytest.raises(ValueError):
        scheduler.schedule(lambda: None, -1)


def test_shutdown_cancels_pending_and_rejects_new_work(scheduler) -> None:
    future = scheduler.schedule(lambda: "never", 10)
    assert scheduler.pending() == 1

    scheduler.shutdown()

    assert future.cancelled()
    assert scheduler.pending() == 0
    with pytest.raises(RuntimeError):
        scheduler.schedule(lambda: None, 0)
