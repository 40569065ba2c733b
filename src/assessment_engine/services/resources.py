"""Lifecycle of transient binary artifacts such as synthesized audio."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Protocol
from uuid import uuid4

from assessment_engine.domain.resources import ResourceArtifact, session_tag_prefix
from assessment_engine.errors import ResourceNotFound
from assessment_engine.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_TTL = timedelta(hours=1)
AUDIO_CONTENT_TYPE = "audio/mpeg"


class ArtifactRepository(Protocol):
    """Persistence interface for artifact tracking records."""

    def create_artifact(self, artifact: ResourceArtifact) -> None:
        """Insert a tracking record."""

    def get_artifact(self, artifact_id: str) -> ResourceArtifact | None:
        """Return a tracking record by id, if present."""

    def delete_artifact(self, artifact_id: str) -> bool:
        """Delete a tracking record; return False when it was already gone."""

    def list_artifacts(
        self, owner_id: str, stage_tag: str | None = None
    ) -> list[ResourceArtifact]:
        """Return tracking records for an owner, optionally for one stage."""

    def list_expired(self, now_iso: str) -> list[ResourceArtifact]:
        """Return tracking records whose expiry is at or before ``now_iso``."""

    def list_artifact_ids(self) -> set[str]:
        """Return the ids of every tracking record."""


class BlobStore(Protocol):
    """Interface for the physical blob store."""

    def put_blob(self, blob_id: str, data: bytes, content_type: str) -> None:
        """Write a blob under the given id."""

    def get_blob(self, blob_id: str) -> bytes | None:
        """Return blob bytes, or None when the blob does not exist."""

    def delete_blob(self, blob_id: str) -> None:
        """Delete a blob; deleting a missing blob is not an error."""

    def list_blob_ids(self) -> set[str]:
        """Return the ids of every stored blob."""


@dataclass
class ResourceService:
    """Creates, serves and deletes artifacts, and reconciles leaks by sweeping.

    Deletion is idempotent so the many independent cleanup call sites (stage
    completion, session clear, reset, forced submit, sweeps) may overlap freely.
    """

    artifacts: ArtifactRepository
    blobs: BlobStore
    ttl: timedelta = DEFAULT_RESOURCE_TTL
    clock: Clock = field(default=utcnow)

    def store(
        self,
        data: bytes,
        owner_id: str,
        tag: str,
        content_type: str = AUDIO_CONTENT_TYPE,
    ) -> str:
        """Persist a blob with its tracking record and return the artifact id."""
        now = self.clock()
        artifact = ResourceArtifact(
            id=uuid4().hex,
            owner_id=owner_id,
            stage_tag=tag,
            created_at=now,
            expires_at=now + self.ttl,
        )
        # The tracking record is written before the blob so an orphan sweep
        # never observes a blob without its record.
        self.artifacts.create_artifact(artifact)
        try:
            self.blobs.put_blob(artifact.id, data, content_type)
        except Exception:
            self.artifacts.delete_artifact(artifact.id)
            raise
        logger.info(
            "Stored artifact",
            extra={"artifact_id": artifact.id, "owner_id": owner_id, "tag": tag},
        )
        return artifact.id

    def read(self, artifact_id: str, owner_id: str) -> bytes:
        """Return artifact bytes for its owner."""
        artifact = self.artifacts.get_artifact(artifact_id)
        if artifact is None or artifact.owner_id != owner_id:
            raise ResourceNotFound(artifact_id)
        data = self.blobs.get_blob(artifact_id)
        if data is None:
            raise ResourceNotFound(artifact_id)
        return data

    def delete(self, artifact_id: str) -> None:
        """Delete the tracking record and blob; a missing id is a success."""
        if not self.artifacts.delete_artifact(artifact_id):
            logger.info(
                "Artifact tracking record already gone",
                extra={"artifact_id": artifact_id},
            )
        self.blobs.delete_blob(artifact_id)

    def delete_many(self, artifact_ids: set[str] | list[str]) -> int:
        """Delete each artifact id and return how many were processed."""
        count = 0
        for artifact_id in artifact_ids:
            self.delete(artifact_id)
            count += 1
        return count

    def owner_artifact_ids(
        self, owner_id: str, stage_tag: str | None = None
    ) -> set[str]:
        """Return ids of the artifacts tracked for an owner."""
        return {
            artifact.id
            for artifact in self.artifacts.list_artifacts(owner_id, stage_tag)
        }

    def session_artifact_ids(self, owner_id: str, session_id: str) -> set[str]:
        """Return ids of the owner's artifacts tagged for one session."""
        prefix = session_tag_prefix(session_id)
        return {
            artifact.id
            for artifact in self.artifacts.list_artifacts(owner_id)
            if artifact.stage_tag.startswith(prefix)
        }

    def delete_for_session(self, owner_id: str, session_id: str) -> int:
        """Delete every artifact tagged for one session of an owner."""
        return self.delete_many(self.session_artifact_ids(owner_id, session_id))

    def sweep_expired(
        self, protected_ids: set[str] | None = None
    ) -> tuple[int, int]:
        """Remove artifacts past their TTL.

        Artifacts still referenced by a live session are skipped; they go away
        with that session's cleanup or a later sweep. Returns (deleted, skipped).
        """
        protected = protected_ids or set()
        deleted = 0
        skipped = 0
        for artifact in self.artifacts.list_expired(self.clock().isoformat()):
            if artifact.id in protected:
                skipped += 1
                continue
            try:
                self.delete(artifact.id)
            except Exception:
                logger.exception(
                    "Failed to delete expired artifact",
                    extra={"artifact_id": artifact.id},
                )
                continue
            deleted += 1
        logger.info(
            "Expired artifact sweep removed %s artifacts (%s still referenced)",
            deleted,
            skipped,
        )
        return deleted, skipped

    def sweep_orphaned(self, protected_ids: set[str] | None = None) -> int:
        """Delete blobs that have no tracking record."""
        protected = protected_ids or set()
        # Blobs are listed before records; see ``store`` for the write order.
        blob_ids = self.blobs.list_blob_ids()
        tracked_ids = self.artifacts.list_artifact_ids()
        removed = 0
        for blob_id in sorted(blob_ids - tracked_ids - protected):
            try:
                self.blobs.delete_blob(blob_id)
            except Exception:
                logger.exception(
                    "Failed to delete orphaned blob", extra={"blob_id": blob_id}
                )
                continue
            removed += 1
        logger.info("Orphaned blob sweep removed %s blobs", removed)
        return removed
