"""Server-side handling of forced completion.

Timer expiry, an unload notification and an explicit final submit all land here.
Whichever arrives first closes the session; later calls observe the completed
status and return the same scores without writing anything.
"""

import logging
from dataclasses import dataclass

from assessment_engine.domain.scores import AggregateScore
from assessment_engine.services.scoring import ScoreService
from assessment_engine.services.session_store import SessionStore
from assessment_engine.services.stages import StageEngine

logger = logging.getLogger(__name__)

REASON_TIMER = "timer_expired"
REASON_UNLOAD = "client_unload"
REASON_SUBMIT = "user_submit"


@dataclass(frozen=True)
class ForceSubmitOutcome:
    """Result of a force submit, including whether it changed anything."""

    aggregate: AggregateScore
    zeroed: list[str]
    already_completed: bool


@dataclass
class RecoveryService:
    session_store: SessionStore
    score_service: ScoreService
    stage_engine: StageEngine

    def force_submit(
        self, owner_id: str, session_id: str, reason: str
    ) -> ForceSubmitOutcome:
        """Zero every stage that was never completed and close the session."""
        session = self.session_store.get(owner_id, session_id)
        if session.is_terminated():
            logger.info(
                "Force submit on completed session ignored",
                extra={"session_id": session_id, "reason": reason},
            )
            return ForceSubmitOutcome(
                aggregate=self.score_service.aggregate_for(owner_id, session_id),
                zeroed=[],
                already_completed=True,
            )

        zeroed = self.score_service.zero_missing(
            owner_id, session_id, set(session.completed_stages())
        )
        aggregate = self.stage_engine.finalize(session)
        logger.info(
            "Session force submitted",
            extra={
                "session_id": session_id,
                "reason": reason,
                "zeroed": [str(stage) for stage in zeroed],
                "overall": aggregate.overall,
            },
        )
        return ForceSubmitOutcome(
            aggregate=aggregate,
            zeroed=[str(stage) for stage in zeroed],
            already_completed=False,
        )
