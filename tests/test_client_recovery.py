"""Tests for the client-side progress mirror and unload notifier."""

import asyncio

from assessment_engine.client.mirror import ClientProgressMirror
from assessment_engine.client.recovery import ForceSubmitNotifier
from assessment_engine.client.timer import TimerController
from tests.conftest import FakeClock


def _snapshot(**overrides: object) -> dict[str, object]:
    snapshot: dict[str, object] = {
        "session_id": "s1",
        "status": "IN_PROGRESS",
        "current_stage": "listening",
        "stage_completion": {"reading": True},
        "scores": {"reading": 80},
        "duration_seconds": 1200,
        "last_activity": "2025-03-01T12:00:00+00:00",
    }
    snapshot.update(overrides)
    return snapshot


def test_reconcile_seeds_cache_from_server(tmp_path) -> None:
    mirror = ClientProgressMirror(tmp_path / "progress.json", clock=FakeClock())

    state = mirror.reconcile(_snapshot())

    assert state.stage_completion["reading"] is True
    assert state.stage_completion["fillblanks"] is False
    assert state.scores["reading"] == 80
    assert state.timer_remaining == 1200
    assert mirror.load() == state


def test_server_wins_for_progress_and_local_wins_for_timer(tmp_path) -> None:
    mirror = ClientProgressMirror(tmp_path / "progress.json", clock=FakeClock())
    mirror.reconcile(_snapshot())
    mirror.mark_stage_complete("listening", 95)
    mirror.save_remaining(640)

    state = mirror.reconcile(_snapshot())

    assert state.stage_completion["listening"] is False
    assert state.scores["listening"] is None
    assert state.current_stage == "listening"
    assert state.timer_remaining == 640


def test_reconcile_replaces_cache_of_another_session(tmp_path) -> None:
    mirror = ClientProgressMirror(tmp_path / "progress.json", clock=FakeClock())
    mirror.reconcile(_snapshot())
    mirror.save_remaining(10)

    state = mirror.reconcile(_snapshot(session_id="s2", stage_completion={}))

    assert state.session_id == "s2"
    assert state.timer_remaining == 1200
    assert not any(state.stage_completion.values())


def test_unreadable_cache_is_ignored(tmp_path) -> None:
    path = tmp_path / "progress.json"
    path.write_text("{not json", encoding="utf-8")
    mirror = ClientProgressMirror(path)

    assert mirror.load() is None
    mirror.clear()
    assert not path.exists()


def test_mirror_persists_timer_state(tmp_path) -> None:
    mirror = ClientProgressMirror(tmp_path / "progress.json", clock=FakeClock())
    mirror.reconcile(_snapshot(duration_seconds=30))
    timer = TimerController(on_expire=lambda: None, state_store=mirror)

    timer.restore(default_duration_seconds=1200)
    for _ in range(10):
        timer.tick()

    assert mirror.load_remaining() == 20


def test_notifier_sends_at_most_once() -> None:
    sent: list[tuple[str, str]] = []

    async def send(session_id: str, reason: str) -> None:
        sent.append((session_id, reason))

    notifier = ForceSubmitNotifier(session_id="s1", send=send)

    async def scenario() -> tuple[bool, bool]:
        first = await notifier.notify("client_unload")
        second = await notifier.notify("timer_expired")
        return first, second

    assert asyncio.run(scenario()) == (True, False)
    assert sent == [("s1", "client_unload")]


def test_notifier_swallows_delivery_failures() -> None:
    async def send(session_id: str, reason: str) -> None:
        raise ConnectionError("offline")

    notifier = ForceSubmitNotifier(session_id="s1", send=send)

    assert asyncio.run(notifier.notify("client_unload")) is False
    assert notifier.sent


def test_fire_does_not_block_and_delivers() -> None:
    sent: list[str] = []

    async def send(session_id: str, reason: str) -> None:
        await asyncio.sleep(0)
        sent.append(reason)

    notifier = ForceSubmitNotifier(session_id="s1", send=send)

    async def scenario() -> None:
        notifier.fire("timer_expired")
        notifier.fire("timer_expired")
        assert sent == []
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert sent == ["timer_expired"]


def test_fire_without_event_loop_drops_signal() -> None:
    async def send(session_id: str, reason: str) -> None:
        raise AssertionError("must not be called")

    notifier = ForceSubmitNotifier(session_id="s1", send=send)

    notifier.fire("client_unload")

    assert notifier.sent
