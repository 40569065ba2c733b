"""Tests for the client-side countdown."""

import asyncio
from dataclasses import dataclass, field

from assessment_engine.client.timer import TimerController, TimerState


@dataclass
class RecordingStore:
    saved: list[int] = field(default_factory=list)
    stored: int | None = None

    def save_remaining(self, remaining: int) -> None:
        self.saved.append(remaining)
        self.stored = remaining

    def load_remaining(self) -> int | None:
        return self.stored


def test_timer_expires_after_duration_ticks() -> None:
    expirations: list[int] = []
    timer = TimerController(on_expire=lambda: expirations.append(1))

    timer.start(60)
    states = [timer.tick() for _ in range(60)]

    assert states[-2] == TimerState.RUNNING
    assert states[-1] == TimerState.EXPIRED
    assert timer.remaining == 0
    assert expirations == [1]


def test_expiry_callback_fires_once() -> None:
    expirations: list[int] = []
    timer = TimerController(on_expire=lambda: expirations.append(1))
    timer.start(2)

    for _ in range(5):
        timer.tick()
    timer.stop()
    timer.start(10)

    assert timer.state == TimerState.EXPIRED
    assert expirations == [1]


def test_warnings_fire_at_thresholds() -> None:
    warnings: list[int] = []
    timer = TimerController(on_expire=lambda: None, on_warning=warnings.append)

    timer.start(301)
    for _ in range(301):
        timer.tick()

    assert warnings == [300, 60]


def test_warnings_above_start_are_skipped() -> None:
    warnings: list[int] = []
    timer = TimerController(on_expire=lambda: None, on_warning=warnings.append)

    timer.start(120)
    for _ in range(120):
        timer.tick()

    assert warnings == [60]


def test_failing_warning_callback_does_not_stop_timer() -> None:
    def explode(_remaining: int) -> None:
        raise RuntimeError("ui gone")

    expirations: list[int] = []
    timer = TimerController(
        on_expire=lambda: expirations.append(1), on_warning=explode
    )
    timer.start(61)
    for _ in range(61):
        timer.tick()

    assert timer.state == TimerState.EXPIRED
    assert expirations == [1]


def test_stop_is_idempotent() -> None:
    store = RecordingStore()
    timer = TimerController(on_expire=lambda: None, state_store=store)
    timer.start(30)
    timer.tick()

    timer.stop()
    timer.stop()

    assert timer.state == TimerState.STOPPED
    assert timer.tick() == TimerState.STOPPED
    assert store.saved == [30, 29]


def test_remaining_is_persisted_every_ten_ticks() -> None:
    store = RecordingStore()
    timer = TimerController(on_expire=lambda: None, state_store=store)
    timer.start(100)

    for _ in range(25):
        timer.tick()

    assert store.saved == [100, 90, 80]


def test_restore_resumes_from_persisted_remaining() -> None:
    store = RecordingStore(stored=42)
    timer = TimerController(on_expire=lambda: None, state_store=store)

    remaining = timer.restore(default_duration_seconds=1200)

    assert remaining == 42
    assert timer.state == TimerState.RUNNING


def test_restore_without_saved_state_uses_default() -> None:
    timer = TimerController(on_expire=lambda: None, state_store=RecordingStore())

    assert timer.restore(default_duration_seconds=1200) == 1200


def test_run_ticks_until_expired() -> None:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    expirations: list[int] = []
    timer = TimerController(on_expire=lambda: expirations.append(1))
    timer.start(5)

    final_state = asyncio.run(timer.run(sleep=fake_sleep))

    assert final_state == TimerState.EXPIRED
    assert sleeps == [1, 1, 1, 1, 1]
    assert expirations == [1]


def test_warning_fires_when_starting_on_a_threshold() -> None:
    warnings: list[int] = []
    timer = TimerController(on_expire=lambda: None, on_warning=warnings.append)

    timer.start(300)
    for _ in range(300):
        timer.tick()

    assert warnings == [300, 60]


def test_restore_on_a_threshold_warns_once() -> None:
    warnings: list[int] = []
    timer = TimerController(
        on_expire=lambda: None,
        on_warning=warnings.append,
        state_store=RecordingStore(stored=60),
    )

    timer.restore(default_duration_seconds=1200)
    for _ in range(5):
        timer.tick()

    assert warnings == [60]
