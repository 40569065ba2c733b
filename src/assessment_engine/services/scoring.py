"""Stage score persistence and aggregation."""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from assessment_engine.domain.scores import AggregateScore, StageResult, StageScore
from assessment_engine.domain.stages import (
    STAGE_COUNT,
    STAGE_ORDER,
    STAGE_TITLES,
    StageKind,
)
from assessment_engine.timeutils import Clock, utcnow

MAX_SCORE = 100
NOT_ATTEMPTED = "not_attempted"


def aggregate(scores: Mapping[StageKind, int | None]) -> int:
    """Combine stage scores into one overall score.

    Every stage absent from ``scores`` (or mapped to None) contributes zero, and
    the sum is always divided by the full stage count. Halves round up.
    """
    total = sum(clamp_score(scores.get(stage)) for stage in STAGE_ORDER)
    return math.floor(total / STAGE_COUNT + 0.5)


def clamp_score(value: float | None) -> int:
    """Clamp a raw score into the 0..100 range; None counts as zero."""
    if value is None:
        return 0
    return max(0, min(MAX_SCORE, math.floor(float(value) + 0.5)))


def ratio_score(correct: int, total: int) -> int:
    """Return ``correct / total`` as a rounded percentage."""
    if total <= 0:
        return 0
    return clamp_score(correct / total * MAX_SCORE)


class ScoreRepository(Protocol):
    """Persistence interface for stage scores on the owner's profile."""

    def list_scores(self, owner_id: str, attempt_id: str) -> list[StageScore]:
        """Return every stored score for an attempt."""

    def insert_score(self, score: StageScore) -> bool:
        """Store the score unless the stage already has one; True when stored."""

    def delete_scores(self, owner_id: str, attempt_id: str) -> None:
        """Remove every score for an attempt."""


@dataclass
class ScoreService:
    """Records stage scores and derives the aggregate."""

    repository: ScoreRepository
    clock: Clock = field(default=utcnow)

    def record(
        self,
        owner_id: str,
        attempt_id: str,
        stage: StageKind,
        score: float,
        details: dict[str, object] | None = None,
    ) -> StageScore:
        """Persist a stage score once and return the score that is stored.

        The first write for a stage wins. A later or racing call gets the
        stored score back instead of its own.
        """
        existing = self.get(owner_id, attempt_id, stage)
        if existing is not None:
            return existing
        stage_score = StageScore(
            owner_id=owner_id,
            attempt_id=attempt_id,
            stage=stage,
            score=clamp_score(score),
            completed_at=self.clock(),
            details=details or {},
        )
        if self.repository.insert_score(stage_score):
            return stage_score
        stored = self.get(owner_id, attempt_id, stage)
        return stored if stored is not None else stage_score

    def get(
        self, owner_id: str, attempt_id: str, stage: StageKind
    ) -> StageScore | None:
        for stored in self.repository.list_scores(owner_id, attempt_id):
            if stored.stage == stage:
                return stored
        return None

    def scores_for(
        self, owner_id: str, attempt_id: str
    ) -> dict[StageKind, int | None]:
        """Return the score per stage, None where nothing was recorded."""
        stored = {
            score.stage: score.score
            for score in self.repository.list_scores(owner_id, attempt_id)
        }
        return {stage: stored.get(stage) for stage in STAGE_ORDER}

    def aggregate_for(self, owner_id: str, attempt_id: str) -> AggregateScore:
        """Return the overall score with a per-stage breakdown."""
        breakdown = self.scores_for(owner_id, attempt_id)
        return AggregateScore(
            overall=aggregate(breakdown),
            breakdown=breakdown,
            completed_count=sum(1 for value in breakdown.values() if value is not None),
            total_count=STAGE_COUNT,
        )

    def stage_results(self, owner_id: str, attempt_id: str) -> list[StageResult]:
        """Return one result per stage in the fixed order.

        A stage counts as attempted when it has a stored score that was not
        filled in for a stage the user never finished.
        """
        stored = {
            score.stage: score
            for score in self.repository.list_scores(owner_id, attempt_id)
        }
        results = []
        for stage in STAGE_ORDER:
            score = stored.get(stage)
            if score is None:
                results.append(
                    StageResult(
                        stage=stage,
                        title=STAGE_TITLES[stage],
                        score=None,
                        attempted=False,
                    )
                )
                continue
            results.append(
                StageResult(
                    stage=stage,
                    title=STAGE_TITLES[stage],
                    score=score.score,
                    attempted=score.details.get("reason") != NOT_ATTEMPTED,
                    completed_at=score.completed_at,
                    details=dict(score.details),
                )
            )
        return results

    def zero_missing(
        self, owner_id: str, attempt_id: str, completed: set[StageKind]
    ) -> list[StageKind]:
        """Record zero for every stage that is neither completed nor scored."""
        scored = {
            score.stage for score in self.repository.list_scores(owner_id, attempt_id)
        }
        zeroed: list[StageKind] = []
        for stage in STAGE_ORDER:
            if stage in completed or stage in scored:
                continue
            inserted = self.repository.insert_score(
                StageScore(
                    owner_id=owner_id,
                    attempt_id=attempt_id,
                    stage=stage,
                    score=0,
                    completed_at=self.clock(),
                    details={"reason": NOT_ATTEMPTED},
                )
            )
            if inserted:
                zeroed.append(stage)
        return zeroed

    def reset(self, owner_id: str, attempt_id: str) -> None:
        """Remove every score recorded for an attempt."""
        self.repository.delete_scores(owner_id, attempt_id)
