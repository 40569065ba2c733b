"""Tests for the artifact store and its sweeps."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from assessment_engine.domain.resources import artifact_tag
from assessment_engine.domain.sessions import SessionPatch
from assessment_engine.domain.stages import StageKind
from assessment_engine.errors import ResourceNotFound
from assessment_engine.services.resources import ResourceService
from tests.conftest import OWNER_ID, InMemoryArtifactRepository, InMemoryBlobStore


def test_store_and_read_roundtrip(engine) -> None:
    artifact_id = engine.resource_service.store(b"audio", OWNER_ID, "listening")

    artifact = engine.artifacts.artifacts[artifact_id]
    assert engine.resource_service.read(artifact_id, OWNER_ID) == b"audio"
    assert artifact.expires_at - artifact.created_at == timedelta(hours=1)


def test_read_rejects_other_owner_and_missing_ids(engine) -> None:
    artifact_id = engine.resource_service.store(b"audio", OWNER_ID, "story")

    with pytest.raises(ResourceNotFound):
        engine.resource_service.read(artifact_id, "intruder")
    with pytest.raises(ResourceNotFound):
        engine.resource_service.read("missing", OWNER_ID)


def test_read_fails_when_blob_is_gone(engine) -> None:
    artifact_id = engine.resource_service.store(b"audio", OWNER_ID, "story")
    engine.blobs.blobs.clear()

    with pytest.raises(ResourceNotFound):
        engine.resource_service.read(artifact_id, OWNER_ID)


def test_delete_is_idempotent(engine) -> None:
    artifact_id = engine.resource_service.store(b"audio", OWNER_ID, "story")

    engine.resource_service.delete(artifact_id)
    engine.resource_service.delete(artifact_id)
    engine.resource_service.delete("never-existed")

    assert engine.artifacts.artifacts == {}
    assert engine.blobs.blobs == {}


def test_delete_for_session_keeps_other_sessions(engine) -> None:
    resources = engine.resource_service
    own = resources.store(b"a", OWNER_ID, artifact_tag("s1", "story"))
    similar = resources.store(b"b", OWNER_ID, artifact_tag("s10", "story"))
    foreign = resources.store(b"c", "other-owner", artifact_tag("s1", "story"))

    removed = resources.delete_for_session(OWNER_ID, "s1")

    assert removed == 1
    assert own not in engine.blobs.blobs
    assert similar in engine.blobs.blobs
    assert foreign in engine.blobs.blobs


def test_store_rolls_back_record_when_blob_write_fails(clock) -> None:
    artifacts = InMemoryArtifactRepository()
    blobs = InMemoryBlobStore(fail_puts=True)
    service = ResourceService(artifacts, blobs, clock=clock)

    with pytest.raises(RuntimeError):
        service.store(b"audio", OWNER_ID, "story")

    assert artifacts.artifacts == {}


def test_sweep_expired_skips_referenced_artifacts(engine) -> None:
    stale = engine.resource_service.store(b"1", OWNER_ID, "story")
    referenced = engine.resource_service.store(b"2", OWNER_ID, "listening")
    engine.clock.advance(minutes=61)
    fresh = engine.resource_service.store(b"3", OWNER_ID, "listening")

    deleted, skipped = engine.resource_service.sweep_expired({referenced})

    assert (deleted, skipped) == (1, 1)
    assert stale not in engine.blobs.blobs
    assert referenced in engine.blobs.blobs
    assert fresh in engine.blobs.blobs


def test_sweep_orphaned_removes_untracked_blobs(engine) -> None:
    tracked = engine.resource_service.store(b"1", OWNER_ID, "story")
    engine.blobs.blobs["orphan"] = b"x"
    engine.blobs.blobs["protected"] = b"y"

    removed = engine.resource_service.sweep_orphaned({"protected"})

    assert removed == 1
    assert set(engine.blobs.blobs) == {tracked, "protected"}


def test_sweeper_run_once_reports_counts(engine) -> None:
    engine.session_store.get_or_create(OWNER_ID, "old")
    expired = engine.resource_service.store(b"1", OWNER_ID, "story")
    engine.clock.advance(hours=25)
    engine.blobs.blobs["orphan"] = b"x"

    report = engine.sweeper.run_once()

    assert report.expired_sessions == 1
    assert report.expired_artifacts == 1
    assert report.orphaned_blobs == 1
    assert expired not in engine.blobs.blobs


@pytest.mark.parametrize(("session_count", "artifact_count"), [(5, 4), (12, 3)])
def test_orphan_sweep_never_removes_referenced_artifacts(
    engine, session_count: int, artifact_count: int
) -> None:
    referenced: set[str] = set()
    for index in range(session_count):
        ids = [
            engine.resource_service.store(b"audio", OWNER_ID, "listening")
            for _ in range(artifact_count)
        ]
        engine.session_store.update(
            OWNER_ID,
            f"s{index}",
            SessionPatch(stage_data={StageKind.LISTENING: {"artifact_ids": ids}}),
        )
        referenced.update(ids)
    for index in range(session_count):
        engine.blobs.blobs[f"orphan-{index}"] = b"x"

    def sweep() -> int:
        protected = engine.session_store.referenced_artifact_ids()
        return engine.resource_service.sweep_orphaned(protected)

    def read_sessions() -> int:
        return sum(
            len(engine.session_store.get(OWNER_ID, f"s{index}").artifact_ids())
            for index in range(session_count)
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(sweep) for _ in range(4)]
        futures += [pool.submit(read_sessions) for _ in range(8)]
        for future in futures:
            future.result()

    assert referenced <= set(engine.blobs.blobs)
    assert not any(blob_id.startswith("orphan-") for blob_id in engine.blobs.blobs)
