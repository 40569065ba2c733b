"""Domain models for transient binary artifacts."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ResourceArtifact:
    """Tracking record for a blob held in the artifact store."""

    id: str
    owner_id: str
    stage_tag: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class SweepReport:
    """Counts produced by one sweep run."""

    expired_artifacts: int = 0
    orphaned_blobs: int = 0
    expired_sessions: int = 0
    skipped_referenced: int = 0


def artifact_tag(session_id: str, stage: str) -> str:
    """Return the tracking tag for an artifact produced by a session stage."""
    return f"{session_id}:{stage}"


def session_tag_prefix(session_id: str) -> str:
    return f"{session_id}:"
