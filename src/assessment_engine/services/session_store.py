"""Durable per-attempt session records."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Protocol

from assessment_engine.domain.sessions import (
    STATUS_COMPLETED,
    STATUS_NOT_STARTED,
    SessionPatch,
    SessionRecord,
    empty_completion,
)
from assessment_engine.errors import SessionExpired, SessionNotFound, StageLocked
from assessment_engine.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)


class SessionRepository(Protocol):
    """Persistence interface for session records."""

    def get_session(self, owner_id: str, session_id: str) -> SessionRecord | None:
        """Return the session for the owner, if present."""

    def create_session(self, record: SessionRecord) -> SessionRecord:
        """Insert a new session record and return it."""

    def replace_session(self, record: SessionRecord) -> bool:
        """Overwrite an existing record.

        Returns False when the record no longer exists, or when it was completed
        and ``record`` does not complete it.
        """

    def delete_session(self, owner_id: str, session_id: str) -> None:
        """Delete a session record if present."""

    def list_sessions(self) -> list[SessionRecord]:
        """Return every stored session record."""

    def delete_inactive_sessions(self, cutoff_iso: str) -> int:
        """Delete sessions whose last activity is older than the cutoff."""


@dataclass
class SessionStore:
    """Session lifecycle with monotonic completion and create-on-miss updates."""

    repository: SessionRepository
    ttl: timedelta = DEFAULT_SESSION_TTL
    clock: Clock = field(default=utcnow)

    def get(self, owner_id: str, session_id: str) -> SessionRecord:
        """Return a live session or raise SessionNotFound/SessionExpired."""
        record = self.repository.get_session(owner_id, session_id)
        if record is None:
            raise SessionNotFound(session_id)
        if record.is_expired(self.clock(), self.ttl):
            raise SessionExpired(session_id)
        return record

    def find(self, owner_id: str, session_id: str) -> SessionRecord | None:
        """Return the stored record even when it is past the horizon."""
        return self.repository.get_session(owner_id, session_id)

    def get_or_create(self, owner_id: str, session_id: str) -> SessionRecord:
        """Return the live session, creating a fresh one when missing or void."""
        record = self.repository.get_session(owner_id, session_id)
        if record is not None and not record.is_expired(self.clock(), self.ttl):
            return record
        if record is not None:
            logger.info(
                "Replacing session past inactivity horizon",
                extra={"owner_id": owner_id, "session_id": session_id},
            )
            self.repository.delete_session(owner_id, session_id)
        now = self.clock()
        return self.repository.create_session(
            SessionRecord(
                owner_id=owner_id,
                session_id=session_id,
                status=STATUS_NOT_STARTED,
                current_stage=None,
                created_at=now,
                last_activity=now,
                stage_completion=empty_completion(),
                stage_data={},
            )
        )

    def update(
        self, owner_id: str, session_id: str, patch: SessionPatch
    ) -> SessionRecord:
        """Apply a patch, creating the session first if it went missing.

        This is deliberately not a strict update: a record that vanished (or
        lapsed past the horizon) is recreated and the patch is reapplied to the
        fresh record instead of failing the caller. A completed record only
        accepts a closing patch; anything else raises SessionExpired, including
        when the session is completed between the read and the write.
        """
        record = self.repository.get_session(owner_id, session_id)
        if record is not None and not record.is_expired(self.clock(), self.ttl):
            updated = _apply_patch(record, patch, self.clock())
            if self.repository.replace_session(updated):
                return updated
        logger.warning(
            "Session missing or changed on update; reloading before applying patch",
            extra={"owner_id": owner_id, "session_id": session_id},
        )
        fresh = self.get_or_create(owner_id, session_id)
        updated = _apply_patch(fresh, patch, self.clock())
        if not self.repository.replace_session(updated):
            raise SessionNotFound(session_id)
        return updated

    def clear(self, owner_id: str, session_id: str) -> None:
        """Delete the session record; artifacts are not cascaded."""
        self.repository.delete_session(owner_id, session_id)

    def live_sessions(self) -> list[SessionRecord]:
        """Return sessions that are still inside the inactivity horizon."""
        now = self.clock()
        return [
            record
            for record in self.repository.list_sessions()
            if not record.is_expired(now, self.ttl)
        ]

    def referenced_artifact_ids(self) -> set[str]:
        """Return artifact ids referenced by any live session."""
        ids: set[str] = set()
        for record in self.live_sessions():
            ids.update(record.artifact_ids())
        return ids

    def sweep_expired(self) -> int:
        """Physically remove sessions past the inactivity horizon."""
        cutoff = self.clock() - self.ttl
        removed = self.repository.delete_inactive_sessions(cutoff.isoformat())
        if removed:
            logger.info("Removed %s expired sessions", removed)
        return removed


def _apply_patch(
    record: SessionRecord, patch: SessionPatch, now: datetime
) -> SessionRecord:
    if record.is_terminated() and not _is_close(patch):
        raise SessionExpired(record.session_id)
    for stage in patch.stage_data:
        if record.is_complete(stage):
            raise StageLocked(f"{record.session_id}:{stage}")
    completion = dict(record.stage_completion)
    for stage, done in patch.stage_completion.items():
        completion[stage] = completion.get(stage, False) or done
    stage_data = dict(record.stage_data)
    stage_data.update(patch.stage_data)
    current_stage = record.current_stage
    if patch.clear_current_stage:
        current_stage = None
    elif patch.current_stage is not None:
        current_stage = patch.current_stage
    return replace(
        record,
        status=patch.status or record.status,
        current_stage=current_stage,
        stage_completion=completion,
        stage_data=stage_data,
        last_activity=now,
    )


def _is_close(patch: SessionPatch) -> bool:
    """A completed session only accepts being completed again."""
    return (
        patch.status == STATUS_COMPLETED
        and patch.current_stage is None
        and not patch.stage_completion
        and not patch.stage_data
    )
