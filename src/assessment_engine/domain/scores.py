"""Domain models for stage and aggregate scores."""

from dataclasses import dataclass, field
from datetime import datetime

from assessment_engine.domain.stages import StageKind


@dataclass(frozen=True)
class StageScore:
    """The 0-100 result recorded for one stage of one attempt."""

    owner_id: str
    attempt_id: str
    stage: StageKind
    score: int
    completed_at: datetime
    details: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class AggregateScore:
    """Blended result across all seven stages."""

    overall: int
    breakdown: dict[StageKind, int | None]
    completed_count: int
    total_count: int


@dataclass(frozen=True)
class StageResult:
    """Per-stage line of a results report; ``score`` is None when unscored."""

    stage: StageKind
    title: str
    score: int | None
    attempted: bool
    completed_at: datetime | None = None
    details: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class DetailedResults:
    """Every stage of an attempt with the blended score."""

    session_id: str
    aggregate: AggregateScore
    stages: list[StageResult]
