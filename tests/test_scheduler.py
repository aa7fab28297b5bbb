import threading
import time

import pytest

from pcr_app.services.scheduler import TaskScheduler


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def scheduler():
    scheduler = TaskScheduler()
    yield scheduler
    scheduler.stop(timeout=1.0)


def test_schedule_rejects_non_positive_interval(scheduler):
    with pytest.raises(ValueError):
        scheduler.schedule("zero", 0, lambda: None)
    with pytest.raises(ValueError):
        scheduler.schedule("negative", -1, lambda: None)


def test_schedule_rejects_duplicate_name(scheduler):
    scheduler.schedule("notify", 10, lambda: None)
    with pytest.raises(ValueError):
        scheduler.schedule("notify", 5, lambda: None)
    assert "notify" in scheduler


def test_tick_is_skipped_while_previous_run_in_flight(scheduler):
    release = threading.Event()
    calls = []

    def slow_action():
        calls.append(1)
        release.wait(5)

    task = scheduler.schedule("slow", 10, slow_action)

    assert task.tick() is True
    assert wait_for(lambda: calls)
    assert task.in_flight

    # Second tick arrives while the first run has not finished.
    assert task.tick() is False
    assert task.skipped == 1

    release.set()
    assert task.wait(timeout=5)

    # Next free tick runs again.
    assert task.tick() is True
    assert task.wait(timeout=5)
    assert len(calls) == 2
    assert task.runs == 2


def test_failing_action_does_not_stop_later_ticks(scheduler, caplog):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    task = scheduler.schedule("flaky", 10, flaky)

    task.tick()
    task.wait(timeout=5)
    task.tick()
    task.wait(timeout=5)

    assert len(calls) == 2
    assert task.failures == 1
    assert isinstance(task.last_error, RuntimeError)

    failures = [r for r in caplog.records if r.levelname == "CRITICAL"]
    assert failures
    assert failures[0].task == "flaky"


def test_timer_keeps_firing_after_failure(scheduler):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first tick fails")

    scheduler.schedule("flaky-timer", 0.05, flaky)
    scheduler.start()

    assert wait_for(lambda: len(calls) >= 3)
    assert scheduler.get("flaky-timer").failures == 1


def test_slow_action_skips_overlapping_tick(scheduler):
    calls = []

    def slow():
        calls.append(time.monotonic())
        time.sleep(0.3)

    task = scheduler.schedule("slow-timer", 0.2, slow)
    scheduler.start()

    assert wait_for(lambda: len(calls) >= 2)
    assert task.skipped >= 1
    # The second run waited for a free tick instead of overlapping the first.
    assert calls[1] - calls[0] >= 0.3


def test_stop_cancels_every_timer(scheduler):
    counts = {"a": 0, "b": 0}

    def bump(key):
        counts[key] += 1

    task_a = scheduler.schedule("a", 0.05, lambda: bump("a"))
    task_b = scheduler.schedule("b", 0.05, lambda: bump("b"))
    scheduler.start()
    assert wait_for(lambda: counts["a"] and counts["b"])

    scheduler.stop(timeout=2.0)
    assert not scheduler.running
    assert not task_a._timer.is_alive()
    assert not task_b._timer.is_alive()

    task_a.wait(timeout=2)
    task_b.wait(timeout=2)
    snapshot = dict(counts)
    time.sleep(0.2)
    assert counts == snapshot


def test_task_scheduled_after_start_runs(scheduler):
    scheduler.start()
    ran = threading.Event()
    scheduler.schedule("late", 0.05, ran.set)
    assert ran.wait(5)
