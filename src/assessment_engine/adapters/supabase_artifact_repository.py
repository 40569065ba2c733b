"""Supabase-backed tracking records for transient artifacts."""

from dataclasses import dataclass

from supabase import Client

from assessment_engine.domain.resources import ResourceArtifact
from assessment_engine.retry import retry_storage
from assessment_engine.services.resources import ArtifactRepository
from assessment_engine.timeutils import parse_timestamp

_COLUMNS = "id, owner_id, stage_tag, created_at, expires_at"


@dataclass
class SupabaseArtifactRepository(ArtifactRepository):
    """Supabase implementation for artifact tracking records."""

    client: Client
    max_attempts: int = 3

    def create_artifact(self, artifact: ResourceArtifact) -> None:
        """Insert a tracking record."""
        retry_storage(
            lambda: self.client.table("resource_artifacts")
            .insert(
                {
                    "id": artifact.id,
                    "owner_id": artifact.owner_id,
                    "stage_tag": artifact.stage_tag,
                    "created_at": artifact.created_at.isoformat(),
                    "expires_at": artifact.expires_at.isoformat(),
                }
            )
            .execute(),
            attempts=self.max_attempts,
            label="create_artifact",
        )

    def get_artifact(self, artifact_id: str) -> ResourceArtifact | None:
        """Return a tracking record by id, if present."""
        response = retry_storage(
            lambda: self.client.table("resource_artifacts")
            .select(_COLUMNS)
            .eq("id", artifact_id)
            .limit(1)
            .execute(),
            attempts=self.max_attempts,
            label="get_artifact",
        )
        if not response.data:
            return None
        return _to_artifact(response.data[0])

    def delete_artifact(self, artifact_id: str) -> bool:
        """Delete a tracking record; False when it was already gone."""
        response = retry_storage(
            lambda: self.client.table("resource_artifacts")
            .delete()
            .eq("id", artifact_id)
            .execute(),
            attempts=self.max_attempts,
            label="delete_artifact",
        )
        return bool(response.data)

    def list_artifacts(
        self, owner_id: str, stage_tag: str | None = None
    ) -> list[ResourceArtifact]:
        """Return the tracking records of an owner."""

        def query():  # type: ignore[no-untyped-def]
            builder = (
                self.client.table("resource_artifacts")
                .select(_COLUMNS)
                .eq("owner_id", owner_id)
            )
            if stage_tag is not None:
                builder = builder.eq("stage_tag", stage_tag)
            return builder.execute()

        response = retry_storage(
            query, attempts=self.max_attempts, label="list_artifacts"
        )
        return [_to_artifact(row) for row in response.data or []]

    def list_expired(self, now_iso: str) -> list[ResourceArtifact]:
        """Return records whose expiry is before ``now_iso``."""
        response = retry_storage(
            lambda: self.client.table("resource_artifacts")
            .select(_COLUMNS)
            .lt("expires_at", now_iso)
            .execute(),
            attempts=self.max_attempts,
            label="list_expired",
        )
        return [_to_artifact(row) for row in response.data or []]

    def list_artifact_ids(self) -> set[str]:
        """Return the ids of every tracking record."""
        response = retry_storage(
            lambda: self.client.table("resource_artifacts").select("id").execute(),
            attempts=self.max_attempts,
            label="list_artifact_ids",
        )
        return {str(row["id"]) for row in response.data or []}


def _to_artifact(row: dict[str, object]) -> ResourceArtifact:
    return ResourceArtifact(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        stage_tag=str(row["stage_tag"]),
        created_at=parse_timestamp(row["created_at"]),
        expires_at=parse_timestamp(row["expires_at"]),
    )
