"""Tests for score aggregation and persistence."""

from assessment_engine.domain.stages import STAGE_ORDER, StageKind
from assessment_engine.services.scoring import (
    ScoreService,
    aggregate,
    clamp_score,
    ratio_score,
)
from tests.conftest import OWNER_ID, FakeClock, InMemoryScoreRepository


def test_aggregate_with_no_completed_stages_is_zero() -> None:
    assert aggregate({}) == 0


def test_aggregate_with_all_stages_at_full_marks() -> None:
    assert aggregate({stage: 100 for stage in STAGE_ORDER}) == 100


def test_aggregate_counts_absent_stages_as_zero() -> None:
    scores = {
        StageKind.READING: 80,
        StageKind.LISTENING: 60,
        StageKind.JUMBLED: 100,
    }
    assert aggregate(scores) == 34


def test_aggregate_treats_none_as_zero() -> None:
    scores = {stage: None for stage in STAGE_ORDER}
    scores[StageKind.READING] = 90
    scores[StageKind.LISTENING] = 70
    assert aggregate(scores) == 23


def test_aggregate_rounds_to_nearest() -> None:
    assert aggregate({StageKind.READING: 24}) == 3
    assert aggregate({StageKind.READING: 25}) == 4


def test_clamp_and_ratio_scores() -> None:
    assert clamp_score(None) == 0
    assert clamp_score(-4) == 0
    assert clamp_score(140) == 100
    assert clamp_score(72.5) == 73
    assert ratio_score(3, 4) == 75
    assert ratio_score(0, 0) == 0


def test_record_keeps_first_score() -> None:
    service = ScoreService(InMemoryScoreRepository(), clock=FakeClock())

    first = service.record(OWNER_ID, "attempt", StageKind.READING, 80)
    second = service.record(OWNER_ID, "attempt", StageKind.READING, 20)

    assert first.score == 80
    assert second.score == 80
    assert service.scores_for(OWNER_ID, "attempt")[StageKind.READING] == 80


def test_zero_missing_skips_completed_and_scored_stages() -> None:
    service = ScoreService(InMemoryScoreRepository(), clock=FakeClock())
    service.record(OWNER_ID, "attempt", StageKind.READING, 90)

    zeroed = service.zero_missing(
        OWNER_ID, "attempt", completed={StageKind.READING, StageKind.LISTENING}
    )

    assert StageKind.READING not in zeroed
    assert StageKind.LISTENING not in zeroed
    assert len(zeroed) == 5
    stored = service.get(OWNER_ID, "attempt", StageKind.STORY)
    assert stored is not None
    assert stored.details == {"reason": "not_attempted"}


def test_aggregate_for_reports_breakdown() -> None:
    service = ScoreService(InMemoryScoreRepository(), clock=FakeClock())
    service.record(OWNER_ID, "attempt", StageKind.JUMBLED, 60)

    result = service.aggregate_for(OWNER_ID, "attempt")

    assert result.overall == 9
    assert result.completed_count == 1
    assert result.total_count == 7
    assert result.breakdown[StageKind.JUMBLED] == 60
    assert result.breakdown[StageKind.READING] is None


def test_reset_removes_attempt_scores_only() -> None:
    service = ScoreService(InMemoryScoreRepository(), clock=FakeClock())
    service.record(OWNER_ID, "attempt-a", StageKind.READING, 50)
    service.record(OWNER_ID, "attempt-b", StageKind.READING, 70)

    service.reset(OWNER_ID, "attempt-a")

    assert service.get(OWNER_ID, "attempt-a", StageKind.READING) is None
    assert service.get(OWNER_ID, "attempt-b", StageKind.READING) is not None


def test_record_returns_stored_score_when_another_write_lands_first() -> None:
    repository = InMemoryScoreRepository()
    service = ScoreService(repository, clock=FakeClock())
    original_insert = repository.insert_score

    def zero_first(score):  # type: ignore[no-untyped-def]
        repository.insert_score = original_insert  # type: ignore[method-assign]
        service.zero_missing(OWNER_ID, "attempt", completed=set())
        return original_insert(score)

    repository.insert_score = zero_first  # type: ignore[method-assign]

    recorded = service.record(OWNER_ID, "attempt", StageKind.READING, 90)

    assert recorded.score == 0
    assert recorded.details == {"reason": "not_attempted"}
    assert service.scores_for(OWNER_ID, "attempt")[StageKind.READING] == 0
