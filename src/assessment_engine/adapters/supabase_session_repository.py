"""Supabase-backed session repository."""

from dataclasses import dataclass

from supabase import Client

from assessment_engine.domain.sessions import (
    STATUS_COMPLETED,
    SessionRecord,
    empty_completion,
)
from assessment_engine.domain.stages import parse_stage
from assessment_engine.retry import retry_storage
from assessment_engine.services.session_store import SessionRepository
from assessment_engine.timeutils import parse_timestamp

_COLUMNS = (
    "owner_id, session_id, status, current_stage, stage_completion, stage_data, "
    "created_at, last_activity"
)


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for assessment sessions."""

    client: Client
    max_attempts: int = 3

    def get_session(self, owner_id: str, session_id: str) -> SessionRecord | None:
        """Return the session for the owner, if present."""
        response = retry_storage(
            lambda: self.client.table("assessment_sessions")
            .select(_COLUMNS)
            .eq("owner_id", owner_id)
            .eq("session_id", session_id)
            .limit(1)
            .execute(),
            attempts=self.max_attempts,
            label="get_session",
        )
        if not response.data:
            return None
        return _to_record(response.data[0])

    def create_session(self, record: SessionRecord) -> SessionRecord:
        """Insert a session row and return it."""
        response = retry_storage(
            lambda: self.client.table("assessment_sessions")
            .insert(_to_row(record))
            .execute(),
            attempts=self.max_attempts,
            label="create_session",
        )
        if not response.data:
            raise RuntimeError("Failed to create session")
        return _to_record(response.data[0])

    def replace_session(self, record: SessionRecord) -> bool:
        """Overwrite a session row; False when it is gone or already completed."""
        row = _to_row(record)

        def query():  # type: ignore[no-untyped-def]
            builder = (
                self.client.table("assessment_sessions")
                .update(row)
                .eq("owner_id", record.owner_id)
                .eq("session_id", record.session_id)
            )
            if record.status != STATUS_COMPLETED:
                builder = builder.neq("status", STATUS_COMPLETED)
            return builder.execute()

        response = retry_storage(
            query, attempts=self.max_attempts, label="replace_session"
        )
        return bool(response.data)

    def delete_session(self, owner_id: str, session_id: str) -> None:
        """Delete a session row if present."""
        retry_storage(
            lambda: self.client.table("assessment_sessions")
            .delete()
            .eq("owner_id", owner_id)
            .eq("session_id", session_id)
            .execute(),
            attempts=self.max_attempts,
            label="delete_session",
        )

    def list_sessions(self) -> list[SessionRecord]:
        """Return every stored session."""
        response = retry_storage(
            lambda: self.client.table("assessment_sessions").select(_COLUMNS).execute(),
            attempts=self.max_attempts,
            label="list_sessions",
        )
        return [_to_record(row) for row in response.data or []]

    def delete_inactive_sessions(self, cutoff_iso: str) -> int:
        """Delete sessions inactive since before the cutoff."""
        response = retry_storage(
            lambda: self.client.table("assessment_sessions")
            .delete()
            .lt("last_activity", cutoff_iso)
            .execute(),
            attempts=self.max_attempts,
            label="delete_inactive_sessions",
        )
        return len(response.data or [])


def _to_row(record: SessionRecord) -> dict[str, object]:
    return {
        "owner_id": record.owner_id,
        "session_id": record.session_id,
        "status": record.status,
        "current_stage": str(record.current_stage) if record.current_stage else None,
        "stage_completion": {
            str(stage): done for stage, done in record.stage_completion.items()
        },
        "stage_data": {str(stage): data for stage, data in record.stage_data.items()},
        "created_at": record.created_at.isoformat(),
        "last_activity": record.last_activity.isoformat(),
    }


def _to_record(row: dict[str, object]) -> SessionRecord:
    completion = empty_completion()
    raw_completion = row.get("stage_completion") or {}
    if isinstance(raw_completion, dict):
        for key, done in raw_completion.items():
            stage = parse_stage(str(key))
            if stage is not None:
                completion[stage] = bool(done)
    stage_data = {}
    raw_data = row.get("stage_data") or {}
    if isinstance(raw_data, dict):
        for key, payload in raw_data.items():
            stage = parse_stage(str(key))
            if stage is not None and isinstance(payload, dict):
                stage_data[stage] = payload
    current = row.get("current_stage")
    return SessionRecord(
        owner_id=str(row["owner_id"]),
        session_id=str(row["session_id"]),
        status=str(row["status"]),
        current_stage=parse_stage(str(current)) if current else None,
        created_at=parse_timestamp(row["created_at"]),
        last_activity=parse_timestamp(row["last_activity"]),
        stage_completion=completion,
        stage_data=stage_data,
    )
