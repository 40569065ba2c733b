"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from assessment_engine.adapters.openai_language_client import OpenAILanguageClient
from assessment_engine.adapters.openai_speech_client import OpenAISpeechClient
from assessment_engine.adapters.supabase_artifact_repository import (
    SupabaseArtifactRepository,
)
from assessment_engine.adapters.supabase_blob_store import SupabaseBlobStore
from assessment_engine.adapters.supabase_profile_repository import (
    SupabaseProfileRepository,
)
from assessment_engine.adapters.supabase_score_repository import (
    SupabaseScoreRepository,
)
from assessment_engine.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from assessment_engine.config import Settings
from assessment_engine.services.assessment import AssessmentService
from assessment_engine.services.collaborators import (
    CollaboratorGateway,
    CollaboratorPolicy,
)
from assessment_engine.services.content import ContentService
from assessment_engine.services.recovery import RecoveryService
from assessment_engine.services.resources import ResourceService
from assessment_engine.services.scoring import ScoreService
from assessment_engine.services.session_store import SessionStore
from assessment_engine.services.stages import StageEngine
from assessment_engine.services.sweeper import ResourceSweeper


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    assessment_service: AssessmentService
    sweeper: ResourceSweeper
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    attempts = resolved_settings.storage_max_attempts
    session_store = SessionStore(
        SupabaseSessionRepository(supabase_client, max_attempts=attempts),
        ttl=timedelta(hours=resolved_settings.session_ttl_hours),
    )
    score_service = ScoreService(
        SupabaseScoreRepository(supabase_client, max_attempts=attempts)
    )
    resource_service = ResourceService(
        artifacts=SupabaseArtifactRepository(supabase_client, max_attempts=attempts),
        blobs=SupabaseBlobStore(
            supabase_client,
            bucket=resolved_settings.supabase_audio_bucket,
            max_attempts=attempts,
        ),
        ttl=timedelta(seconds=resolved_settings.resource_ttl_seconds),
    )
    language_client = OpenAILanguageClient.create(resolved_settings.openai_api_key)
    speech_client = OpenAISpeechClient.create(resolved_settings.openai_api_key)
    gateway = CollaboratorGateway(
        language_model=language_client,
        speech=speech_client,
        model=resolved_settings.openai_model,
        tts_model=resolved_settings.openai_tts_model,
        tts_voice=resolved_settings.openai_tts_voice,
        policy=CollaboratorPolicy(
            timeout_seconds=resolved_settings.collaborator_timeout_seconds,
            max_attempts=resolved_settings.collaborator_max_attempts,
            backoff_seconds=resolved_settings.collaborator_backoff_seconds,
        ),
    )
    stage_engine = StageEngine(session_store, score_service, resource_service)
    assessment_service = AssessmentService(
        session_store=session_store,
        stage_engine=stage_engine,
        score_service=score_service,
        resource_service=resource_service,
        content_service=ContentService(gateway, resource_service, session_store),
        recovery_service=RecoveryService(session_store, score_service, stage_engine),
        gateway=gateway,
        profile_repository=SupabaseProfileRepository(
            supabase_client, max_attempts=attempts
        ),
        duration_seconds=resolved_settings.assessment_duration_seconds,
    )
    sweeper = ResourceSweeper(
        resource_service=resource_service,
        session_store=session_store,
        interval_seconds=resolved_settings.sweep_interval_seconds,
    )

    async def close_resources() -> None:
        await language_client.close()
        await speech_client.close()

    return AppContainer(
        settings=resolved_settings,
        assessment_service=assessment_service,
        sweeper=sweeper,
        close_resources=close_resources,
    )
