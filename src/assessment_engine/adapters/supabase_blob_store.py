"""Supabase Storage bucket holding artifact blobs."""

from dataclasses import dataclass

from supabase import Client, StorageException

from assessment_engine.retry import retry_storage
from assessment_engine.services.resources import BlobStore

_PAGE_SIZE = 1000


@dataclass
class SupabaseBlobStore(BlobStore):
    """Blob store backed by a Supabase Storage bucket, one object per artifact."""

    client: Client
    bucket: str
    max_attempts: int = 3

    def put_blob(self, blob_id: str, data: bytes, content_type: str) -> None:
        """Upload a blob, replacing any object with the same id."""
        retry_storage(
            lambda: self.client.storage.from_(self.bucket).upload(
                path=blob_id,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            ),
            attempts=self.max_attempts,
            label="put_blob",
        )

    def get_blob(self, blob_id: str) -> bytes | None:
        """Download a blob; None when the object does not exist."""
        try:
            return retry_storage(
                lambda: self.client.storage.from_(self.bucket).download(blob_id),
                attempts=self.max_attempts,
                label="get_blob",
            )
        except StorageException:
            return None

    def delete_blob(self, blob_id: str) -> None:
        """Remove a blob; removing a missing object succeeds."""
        retry_storage(
            lambda: self.client.storage.from_(self.bucket).remove([blob_id]),
            attempts=self.max_attempts,
            label="delete_blob",
        )

    def list_blob_ids(self) -> set[str]:
        """Return the name of every object in the bucket."""
        ids: set[str] = set()
        offset = 0
        while True:
            page = retry_storage(
                lambda offset=offset: self.client.storage.from_(self.bucket).list(
                    "", {"limit": _PAGE_SIZE, "offset": offset}
                ),
                attempts=self.max_attempts,
                label="list_blob_ids",
            )
            ids.update(str(item["name"]) for item in page if item.get("name"))
            if len(page) < _PAGE_SIZE:
                return ids
            offset += _PAGE_SIZE
