"""Tests for the single-slot delayed task."""
import time

from sibylx.app.scheduler import DelayedTask


def test_burst_of_schedules_runs_once(qtbot) -> None:
    calls = []
    task = DelayedTask(lambda: calls.append(1), 50)
    task.schedule()
    task.schedule()
    task.schedule()
    assert task.is_pending()

    qtbot.waitUntil(lambda: calls == [1], timeout=1000)
    qtbot.wait(100)
    assert calls == [1]
    assert not task.is_pending()


def test_reschedule_pushes_back_the_deadline(qtbot) -> None:
    calls = []
    task = DelayedTask(lambda: calls.append(time.monotonic()), 150)
    task.schedule()
    qtbot.wait(100)
    task.schedule()
    rescheduled = time.monotonic()

    qtbot.wait(80)  # past the first deadline
    assert calls == []
    assert task.is_pending()

    qtbot.waitUntil(lambda: len(calls) == 1, timeout=1000)
    assert calls[0] - rescheduled >= 0.145


def test_cancel_prevents_call(qtbot) -> None:
    calls = []
    task = DelayedTask(lambda: calls.append(1), 20)
    task.schedule()
    task.cancel()
    qtbot.wait(80)
    assert calls == []


def test_fire_now_runs_immediately(qapp) -> None:
    calls = []
    task = DelayedTask(lambda: calls.append(1), 10_000)
    task.schedule()
    task.fire_now()
    assert calls == [1]
    assert not task.is_pending()


def test_dispose_is_idempotent_and_final(qtbot) -> None:
    calls = []
    task = DelayedTask(lambda: calls.append(1), 10)
    task.schedule()
    task.dispose()
    task.dispose()
    task.schedule()
    task.fire_now()
    qtbot.wait(50)
    assert calls == []


def test_set_delay_clamps_negative(qapp) -> None:
    task = DelayedTask(lambda: None, 250)
    assert task.delay_ms == 250
    task.set_delay(-5)
    assert task.delay_ms == 0
