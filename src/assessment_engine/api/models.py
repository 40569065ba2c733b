"""Request and response models for the assessment HTTP API."""

from datetime import datetime

from pydantic import BaseModel, Field

from assessment_engine.domain.content import Feedback, PronunciationResult
from assessment_engine.domain.scores import AggregateScore, DetailedResults
from assessment_engine.domain.sessions import SessionRecord
from assessment_engine.domain.stages import STAGE_TITLES, StageKind
from assessment_engine.services.assessment import (
    SessionSnapshot,
    StageContentView,
    SubmitResult,
)
from assessment_engine.services.collaborators import CollaboratorResult
from assessment_engine.services.recovery import REASON_SUBMIT, ForceSubmitOutcome
from assessment_engine.services.stages import StageCompletion


class StageTopic(BaseModel):
    stage: StageKind
    topic: str | None = None
    difficulty: str | None = None


class PregenerateRequest(BaseModel):
    """Optional per-stage topics; stages not listed use defaults."""

    stages: list[StageTopic] = Field(default_factory=list)


class StageContentRequest(BaseModel):
    topic: str | None = None
    difficulty: str | None = None


class ItemSubmissionRequest(BaseModel):
    answer: str | None = None
    answers: list[str] | None = None
    pronunciation: PronunciationResult | None = None


class CompleteStageRequest(BaseModel):
    score: float = Field(ge=0, le=100)


class ForceSubmitRequest(BaseModel):
    reason: str = REASON_SUBMIT


class AggregateResponse(BaseModel):
    overall: int
    breakdown: dict[str, int | None]
    completed_count: int
    total_count: int

    @classmethod
    def from_aggregate(cls, aggregate: AggregateScore) -> "AggregateResponse":
        return cls(
            overall=aggregate.overall,
            breakdown={
                str(stage): score for stage, score in aggregate.breakdown.items()
            },
            completed_count=aggregate.completed_count,
            total_count=aggregate.total_count,
        )


class SessionResponse(BaseModel):
    session_id: str
    status: str
    current_stage: StageKind | None
    duration_seconds: int

    @classmethod
    def from_record(
        cls, record: SessionRecord, duration_seconds: int
    ) -> "SessionResponse":
        return cls(
            session_id=record.session_id,
            status=record.status,
            current_stage=record.current_stage,
            duration_seconds=duration_seconds,
        )


class PregenerateResponse(BaseModel):
    session_id: str
    current_stage: StageKind | None


class SnapshotResponse(BaseModel):
    """Server-authoritative progress for client reconciliation."""

    session_id: str
    status: str
    current_stage: StageKind | None
    stage_completion: dict[str, bool]
    scores: dict[str, int | None]
    duration_seconds: int
    last_activity: str

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "SnapshotResponse":
        return cls(
            session_id=snapshot.session_id,
            status=snapshot.status,
            current_stage=snapshot.current_stage,
            stage_completion={
                str(stage): done for stage, done in snapshot.stage_completion.items()
            },
            scores={str(stage): score for stage, score in snapshot.scores.items()},
            duration_seconds=snapshot.duration_seconds,
            last_activity=snapshot.last_activity,
        )


class StageContentResponse(BaseModel):
    stage: StageKind
    title: str
    content: dict[str, object]
    index: int
    total: int
    degraded: bool

    @classmethod
    def from_view(cls, view: StageContentView) -> "StageContentResponse":
        return cls(
            stage=view.stage,
            title=STAGE_TITLES[view.stage],
            content=view.content,
            index=view.index,
            total=view.total,
            degraded=view.degraded,
        )


class SubmitResponse(BaseModel):
    stage: StageKind
    correct: bool | None
    next_item: dict[str, object] | None
    stage_complete: bool
    score: int | None = None
    next_stage: StageKind | None = None
    feedback: str | None = None
    aggregate: AggregateResponse | None = None

    @classmethod
    def from_result(cls, result: SubmitResult) -> "SubmitResponse":
        return cls(
            stage=result.stage,
            correct=result.correct,
            next_item=result.next_item,
            stage_complete=result.stage_complete,
            score=result.score,
            next_stage=result.next_stage,
            feedback=result.feedback,
            aggregate=(
                AggregateResponse.from_aggregate(result.aggregate)
                if result.aggregate
                else None
            ),
        )


class CompletionResponse(BaseModel):
    stage: StageKind
    score: int
    next_stage: StageKind | None
    already_complete: bool
    aggregate: AggregateResponse | None = None

    @classmethod
    def from_completion(cls, completion: StageCompletion) -> "CompletionResponse":
        return cls(
            stage=completion.stage,
            score=completion.score,
            next_stage=completion.next_stage,
            already_complete=completion.already_complete,
            aggregate=(
                AggregateResponse.from_aggregate(completion.aggregate)
                if completion.aggregate
                else None
            ),
        )


class ForceSubmitResponse(BaseModel):
    aggregate: AggregateResponse
    zeroed: list[str]
    already_completed: bool

    @classmethod
    def from_outcome(cls, outcome: ForceSubmitOutcome) -> "ForceSubmitResponse":
        return cls(
            aggregate=AggregateResponse.from_aggregate(outcome.aggregate),
            zeroed=outcome.zeroed,
            already_completed=outcome.already_completed,
        )


class StageResultResponse(BaseModel):
    stage: StageKind
    title: str
    score: int | None
    attempted: bool
    completed_at: datetime | None
    details: dict[str, object]


class DetailedResultsResponse(BaseModel):
    """Per-stage results of an attempt with its blended score."""

    session_id: str
    aggregate: AggregateResponse
    stages: list[StageResultResponse]

    @classmethod
    def from_results(cls, results: DetailedResults) -> "DetailedResultsResponse":
        return cls(
            session_id=results.session_id,
            aggregate=AggregateResponse.from_aggregate(results.aggregate),
            stages=[
                StageResultResponse(
                    stage=result.stage,
                    title=result.title,
                    score=result.score,
                    attempted=result.attempted,
                    completed_at=result.completed_at,
                    details=result.details,
                )
                for result in results.stages
            ],
        )


class FeedbackResponse(BaseModel):
    summary: str
    strengths: list[str]
    improvements: list[str]
    degraded: bool

    @classmethod
    def from_result(cls, result: CollaboratorResult[Feedback]) -> "FeedbackResponse":
        return cls(
            summary=result.value.summary,
            strengths=result.value.strengths,
            improvements=result.value.improvements,
            degraded=result.degraded,
        )
