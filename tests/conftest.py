"""Shared test fixtures."""

import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

import pytest

from assessment_engine.config import Settings
from assessment_engine.containers import AppContainer
from assessment_engine.domain.models import ProfileRecord
from assessment_engine.domain.resources import ResourceArtifact
from assessment_engine.domain.scores import StageScore
from assessment_engine.domain.sessions import SessionRecord
from assessment_engine.services.assessment import AssessmentService, ProfileRepository
from assessment_engine.services.collaborators import (
    CollaboratorGateway,
    CollaboratorPolicy,
    LanguageModelClient,
    SpeechClient,
)
from assessment_engine.services.content import ContentService
from assessment_engine.services.recovery import RecoveryService
from assessment_engine.services.resources import (
    ArtifactRepository,
    BlobStore,
    ResourceService,
)
from assessment_engine.services.scoring import ScoreRepository, ScoreService
from assessment_engine.services.session_store import SessionRepository, SessionStore
from assessment_engine.services.stages import StageEngine
from assessment_engine.services.sweeper import ResourceSweeper
from assessment_engine.timeutils import parse_timestamp

OWNER_ID = "owner-1"


@dataclass
class FakeClock:
    """Settable clock for tests."""

    now: datetime = field(
        default_factory=lambda: datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: dict[tuple[str, str], SessionRecord] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def get_session(self, owner_id: str, session_id: str) -> SessionRecord | None:
        with self.lock:
            return self.sessions.get((owner_id, session_id))

    def create_session(self, record: SessionRecord) -> SessionRecord:
        with self.lock:
            self.sessions[(record.owner_id, record.session_id)] = record
        return record

    def replace_session(self, record: SessionRecord) -> bool:
        key = (record.owner_id, record.session_id)
        with self.lock:
            stored = self.sessions.get(key)
            if stored is None:
                return False
            if stored.is_terminated() and not record.is_terminated():
                return False
            self.sessions[key] = record
        return True

    def delete_session(self, owner_id: str, session_id: str) -> None:
        with self.lock:
            self.sessions.pop((owner_id, session_id), None)

    def list_sessions(self) -> list[SessionRecord]:
        with self.lock:
            return list(self.sessions.values())

    def delete_inactive_sessions(self, cutoff_iso: str) -> int:
        cutoff = parse_timestamp(cutoff_iso)
        with self.lock:
            stale = [
                key
                for key, record in self.sessions.items()
                if record.last_activity < cutoff
            ]
            for key in stale:
                del self.sessions[key]
        return len(stale)


@dataclass
class InMemoryArtifactRepository(ArtifactRepository):
    """In-memory artifact tracking records for tests."""

    artifacts: dict[str, ResourceArtifact] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def create_artifact(self, artifact: ResourceArtifact) -> None:
        with self.lock:
            self.artifacts[artifact.id] = artifact

    def get_artifact(self, artifact_id: str) -> ResourceArtifact | None:
        with self.lock:
            return self.artifacts.get(artifact_id)

    def delete_artifact(self, artifact_id: str) -> bool:
        with self.lock:
            return self.artifacts.pop(artifact_id, None) is not None

    def list_artifacts(
        self, owner_id: str, stage_tag: str | None = None
    ) -> list[ResourceArtifact]:
        with self.lock:
            return [
                artifact
                for artifact in self.artifacts.values()
                if artifact.owner_id == owner_id
                and (stage_tag is None or artifact.stage_tag == stage_tag)
            ]

    def list_expired(self, now_iso: str) -> list[ResourceArtifact]:
        now = parse_timestamp(now_iso)
        with self.lock:
            return [
                artifact
                for artifact in self.artifacts.values()
                if artifact.is_expired(now)
            ]

    def list_artifact_ids(self) -> set[str]:
        with self.lock:
            return set(self.artifacts)


@dataclass
class InMemoryBlobStore(BlobStore):
    """In-memory blob store for tests."""

    blobs: dict[str, bytes] = field(default_factory=dict)
    fail_puts: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)

    def put_blob(self, blob_id: str, data: bytes, content_type: str) -> None:
        if self.fail_puts:
            raise RuntimeError("blob store unavailable")
        with self.lock:
            self.blobs[blob_id] = data

    def get_blob(self, blob_id: str) -> bytes | None:
        with self.lock:
            return self.blobs.get(blob_id)

    def delete_blob(self, blob_id: str) -> None:
        with self.lock:
            self.blobs.pop(blob_id, None)

    def list_blob_ids(self) -> set[str]:
        with self.lock:
            return set(self.blobs)


@dataclass
class InMemoryScoreRepository(ScoreRepository):
    """In-memory stage scores for tests."""

    scores: dict[tuple[str, str, str], StageScore] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def list_scores(self, owner_id: str, attempt_id: str) -> list[StageScore]:
        with self.lock:
            return [
                score
                for (owner, attempt, _stage), score in self.scores.items()
                if owner == owner_id and attempt == attempt_id
            ]

    def insert_score(self, score: StageScore) -> bool:
        key = (score.owner_id, score.attempt_id, str(score.stage))
        with self.lock:
            if key in self.scores:
                return False
            self.scores[key] = score
        return True

    def delete_scores(self, owner_id: str, attempt_id: str) -> None:
        with self.lock:
            for key in list(self.scores):
                if key[0] == owner_id and key[1] == attempt_id:
                    del self.scores[key]


@dataclass
class InMemoryProfileRepository(ProfileRepository):
    """In-memory profiles for tests."""

    profiles: dict[str, ProfileRecord] = field(default_factory=dict)

    def get_profile(self, owner_id: str) -> ProfileRecord | None:
        return self.profiles.get(owner_id)

    def consume_attempt(self, owner_id: str) -> bool:
        profile = self.profiles.get(owner_id)
        if profile is None or profile.tests_remaining <= 0:
            return False
        self.profiles[owner_id] = replace(
            profile,
            tests_remaining=profile.tests_remaining - 1,
            tests_taken=profile.tests_taken + 1,
        )
        return True


GENERATED_SENTENCES = [
    "The team met early to plan the product launch.",
    "She explained the new schedule to every manager.",
    "Our office moved to a larger building last spring.",
    "Good feedback helps people improve their daily work.",
    "Can you share the report before the meeting ends?",
]

GENERATED_PAYLOADS: dict[str, dict[str, object]] = {
    "sentences": {"sentences": GENERATED_SENTENCES},
    "story": {
        "story": (
            "A young gardener planted seeds in a dry field. Every morning she "
            "carried water from the river. By summer the field was full of "
            "flowers and the whole village came to see them."
        )
    },
    "question": {"question": "Tell me about a project you are proud of."},
    "comprehension": {
        "passage": "Remote work has changed how teams communicate every day.",
        "questions": [
            {
                "question": "What has remote work changed?",
                "options": ["Communication", "Weather", "Prices", "Sports"],
                "correct_answer": "Communication",
            },
            {
                "question": "How often does it affect teams?",
                "options": ["Never", "Every day", "Once a year", "Rarely"],
                "correct_answer": "Every day",
            },
        ],
    },
    "fill_blanks": {
        "questions": [
            {
                "question": "She _____ to work every day.",
                "options": ["go", "goes", "going"],
                "correct_answer": "goes",
            },
            {
                "question": "They _____ finished the task.",
                "options": ["has", "have", "having"],
                "correct_answer": "have",
            },
        ]
    },
    "evaluation": {"score": 80, "rationale": "Clear and complete."},
    "feedback": {
        "summary": "Strong reading, weak grammar.",
        "strengths": ["Reading Ability"],
        "improvements": ["Fill in the Blanks"],
    },
}


@dataclass
class FakeLanguageModelClient(LanguageModelClient):
    """Language model returning canned payloads by schema name."""

    payloads: dict[str, dict[str, object]] = field(
        default_factory=lambda: dict(GENERATED_PAYLOADS)
    )
    fail_schemas: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)

    async def complete_json(
        self,
        *,
        model: str,
        instructions: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        self.calls.append(schema_name)
        self.prompts.append(prompt)
        if schema_name in self.fail_schemas:
            raise RuntimeError(f"{schema_name} generation failed")
        return self.payloads[schema_name]


@dataclass
class FakeSpeechClient(SpeechClient):
    """Speech client returning deterministic bytes."""

    fail: bool = False
    calls: int = 0

    async def synthesize(self, *, model: str, voice: str, text: str) -> bytes:
        self.calls += 1
        if self.fail:
            raise RuntimeError("speech unavailable")
        return f"audio:{text}".encode()


@dataclass
class Engine:
    """Every service wired over in-memory fakes."""

    clock: FakeClock
    sessions: InMemorySessionRepository
    artifacts: InMemoryArtifactRepository
    blobs: InMemoryBlobStore
    scores: InMemoryScoreRepository
    profiles: InMemoryProfileRepository
    language_model: FakeLanguageModelClient
    speech: FakeSpeechClient
    session_store: SessionStore
    score_service: ScoreService
    resource_service: ResourceService
    stage_engine: StageEngine
    content_service: ContentService
    recovery_service: RecoveryService
    assessment_service: AssessmentService
    sweeper: ResourceSweeper


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        openai_api_key="openai-key",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(clock: FakeClock) -> Engine:
    sessions = InMemorySessionRepository()
    artifacts = InMemoryArtifactRepository()
    blobs = InMemoryBlobStore()
    scores = InMemoryScoreRepository()
    profiles = InMemoryProfileRepository(
        profiles={OWNER_ID: ProfileRecord(OWNER_ID, tests_remaining=2, tests_taken=0)}
    )
    language_model = FakeLanguageModelClient()
    speech = FakeSpeechClient()
    session_store = SessionStore(sessions, clock=clock)
    score_service = ScoreService(scores, clock=clock)
    resource_service = ResourceService(artifacts, blobs, clock=clock)
    stage_engine = StageEngine(session_store, score_service, resource_service)
    gateway = CollaboratorGateway(
        language_model=language_model,
        speech=speech,
        model="test-model",
        tts_model="test-tts",
        tts_voice="alloy",
        policy=CollaboratorPolicy(
            timeout_seconds=1.0, max_attempts=2, backoff_seconds=0.0
        ),
    )
    content_service = ContentService(gateway, resource_service, session_store)
    recovery_service = RecoveryService(session_store, score_service, stage_engine)
    assessment_service = AssessmentService(
        session_store=session_store,
        stage_engine=stage_engine,
        score_service=score_service,
        resource_service=resource_service,
        content_service=content_service,
        recovery_service=recovery_service,
        gateway=gateway,
        profile_repository=profiles,
        duration_seconds=1200,
    )
    return Engine(
        clock=clock,
        sessions=sessions,
        artifacts=artifacts,
        blobs=blobs,
        scores=scores,
        profiles=profiles,
        language_model=language_model,
        speech=speech,
        session_store=session_store,
        score_service=score_service,
        resource_service=resource_service,
        stage_engine=stage_engine,
        content_service=content_service,
        recovery_service=recovery_service,
        assessment_service=assessment_service,
        sweeper=ResourceSweeper(resource_service, session_store, interval_seconds=60),
    )


@pytest.fixture
def container(settings: Settings, engine: Engine) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        assessment_service=engine.assessment_service,
        sweeper=engine.sweeper,
        close_resources=close_resources,
    )
