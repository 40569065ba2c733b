"""Supabase-backed stage scores stored on the owner's profile."""

from dataclasses import dataclass

from supabase import Client

from assessment_engine.domain.scores import StageScore
from assessment_engine.domain.stages import parse_stage
from assessment_engine.retry import retry_storage
from assessment_engine.services.scoring import ScoreRepository
from assessment_engine.timeutils import parse_timestamp


@dataclass
class SupabaseScoreRepository(ScoreRepository):
    """Supabase implementation for stage scores."""

    client: Client
    max_attempts: int = 3

    def list_scores(self, owner_id: str, attempt_id: str) -> list[StageScore]:
        """Return every stored score for an attempt."""
        response = retry_storage(
            lambda: self.client.table("stage_scores")
            .select("owner_id, attempt_id, stage, score, details, completed_at")
            .eq("owner_id", owner_id)
            .eq("attempt_id", attempt_id)
            .execute(),
            attempts=self.max_attempts,
            label="list_scores",
        )
        scores = []
        for row in response.data or []:
            stage = parse_stage(str(row.get("stage", "")))
            if stage is None:
                continue
            scores.append(
                StageScore(
                    owner_id=str(row["owner_id"]),
                    attempt_id=str(row["attempt_id"]),
                    stage=stage,
                    score=int(row["score"]),
                    completed_at=parse_timestamp(row["completed_at"]),
                    details=row.get("details") or {},
                )
            )
        return scores

    def insert_score(self, score: StageScore) -> bool:
        """Insert the score row unless the stage already has one."""
        response = retry_storage(
            lambda: self.client.table("stage_scores")
            .upsert(
                {
                    "owner_id": score.owner_id,
                    "attempt_id": score.attempt_id,
                    "stage": str(score.stage),
                    "score": score.score,
                    "details": score.details,
                    "completed_at": score.completed_at.isoformat(),
                },
                on_conflict="owner_id,attempt_id,stage",
                ignore_duplicates=True,
            )
            .execute(),
            attempts=self.max_attempts,
            label="insert_score",
        )
        return bool(response.data)

    def delete_scores(self, owner_id: str, attempt_id: str) -> None:
        """Delete every score row of an attempt."""
        retry_storage(
            lambda: self.client.table("stage_scores")
            .delete()
            .eq("owner_id", owner_id)
            .eq("attempt_id", attempt_id)
            .execute(),
            attempts=self.max_attempts,
            label="delete_scores",
        )
