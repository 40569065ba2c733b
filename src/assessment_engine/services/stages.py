"""Finite-state sequencing of the seven assessment stages."""

import logging
from dataclasses import dataclass

from assessment_engine.domain.resources import artifact_tag
from assessment_engine.domain.scores import AggregateScore
from assessment_engine.domain.sessions import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    SessionPatch,
    SessionRecord,
)
from assessment_engine.domain.stages import STAGE_ORDER, StageKind
from assessment_engine.errors import SessionExpired, SessionNotFound
from assessment_engine.services.resources import ResourceService
from assessment_engine.services.scoring import ScoreService
from assessment_engine.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageCompletion:
    """Outcome of completing a stage."""

    stage: StageKind
    score: int
    next_stage: StageKind | None
    already_complete: bool = False
    aggregate: AggregateScore | None = None


@dataclass
class StageEngine:
    """Stateless state machine over a SessionRecord.

    NotStarted -> InProgress(stage) -> ... -> Completed. Every method takes the
    record and returns state derived from the store; nothing is cached here.
    """

    session_store: SessionStore
    score_service: ScoreService
    resource_service: ResourceService

    def current_stage(self, session: SessionRecord | None) -> StageKind | None:
        """Return the stage the user is on, or None when nothing is left."""
        if session is None:
            raise SessionNotFound("no session")
        if session.is_terminated():
            return None
        if session.current_stage and not session.is_complete(session.current_stage):
            return session.current_stage
        return _first_pending(session)

    def start(self, session: SessionRecord | None) -> StageKind | None:
        """Move a not-started session to its first stage."""
        if session is None:
            raise SessionNotFound("no session")
        if session.is_terminated():
            raise SessionExpired(session.session_id)
        first = _first_pending(session)
        self.session_store.update(
            session.owner_id,
            session.session_id,
            SessionPatch(status=STATUS_IN_PROGRESS, current_stage=first),
        )
        return first

    def advance(self, session: SessionRecord | None) -> StageKind | None:
        """Point the session at the next undone stage in the fixed order."""
        if session is None:
            raise SessionNotFound("no session")
        if session.is_terminated():
            return None
        next_stage = _first_pending(session)
        if next_stage is None:
            return None
        if next_stage != session.current_stage:
            self.session_store.update(
                session.owner_id,
                session.session_id,
                SessionPatch(status=STATUS_IN_PROGRESS, current_stage=next_stage),
            )
        return next_stage

    def complete(
        self,
        session: SessionRecord | None,
        stage: StageKind,
        score: float,
        details: dict[str, object] | None = None,
    ) -> StageCompletion:
        """Mark a stage done and persist its score.

        Re-completing a finished stage returns the stored result unchanged.
        Completing the last pending stage finalizes the whole session. When the
        session is force submitted while this runs, the first stored score
        stands and SessionExpired is raised.
        """
        if session is None:
            raise SessionNotFound("no session")
        current = self.session_store.get(session.owner_id, session.session_id)
        if current.is_terminated():
            raise SessionExpired(current.session_id)
        if current.is_complete(stage):
            stored = self.score_service.get(
                current.owner_id, current.session_id, stage
            )
            return StageCompletion(
                stage=stage,
                score=stored.score if stored else 0,
                next_stage=self.current_stage(current),
                already_complete=True,
            )

        stage_score = self.score_service.record(
            current.owner_id, current.session_id, stage, score, details
        )
        updated = self.session_store.update(
            current.owner_id,
            current.session_id,
            SessionPatch(stage_completion={stage: True}),
        )
        self._purge_stage(updated, stage)
        logger.info(
            "Stage completed",
            extra={
                "session_id": updated.session_id,
                "stage": str(stage),
                "score": stage_score.score,
            },
        )

        next_stage = self.advance(updated)
        if next_stage is not None:
            return StageCompletion(
                stage=stage, score=stage_score.score, next_stage=next_stage
            )
        return StageCompletion(
            stage=stage,
            score=stage_score.score,
            next_stage=None,
            aggregate=self.finalize(updated),
        )

    def finalize(self, session: SessionRecord) -> AggregateScore:
        """Close the session, purge its artifacts and compute the aggregate."""
        updated = self.session_store.update(
            session.owner_id,
            session.session_id,
            SessionPatch(status=STATUS_COMPLETED, clear_current_stage=True),
        )
        self._purge_session(updated)
        return self.score_service.aggregate_for(
            updated.owner_id, updated.session_id
        )

    def purge_session_artifacts(self, session: SessionRecord) -> int:
        """Delete every artifact referenced by or tagged for the session."""
        return self._purge_session(session)

    def _purge_stage(self, session: SessionRecord, stage: StageKind) -> int:
        ids = set(_stage_artifact_ids(session, stage))
        ids.update(
            self.resource_service.owner_artifact_ids(
                session.owner_id, artifact_tag(session.session_id, str(stage))
            )
        )
        return self.resource_service.delete_many(ids)

    def _purge_session(self, session: SessionRecord) -> int:
        ids = session.artifact_ids()
        ids.update(
            self.resource_service.session_artifact_ids(
                session.owner_id, session.session_id
            )
        )
        return self.resource_service.delete_many(ids)


def _first_pending(session: SessionRecord) -> StageKind | None:
    for stage in STAGE_ORDER:
        if not session.is_complete(stage):
            return stage
    return None


def _stage_artifact_ids(session: SessionRecord, stage: StageKind) -> list[str]:
    payload = session.stage_data.get(stage, {})
    raw = payload.get("artifact_ids", [])
    return [str(item) for item in raw] if isinstance(raw, list) else []
