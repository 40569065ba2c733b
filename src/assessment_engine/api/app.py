"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response

from assessment_engine.api.admin import router as admin_router
from assessment_engine.api.models import (
    AggregateResponse,
    CompleteStageRequest,
    CompletionResponse,
    DetailedResultsResponse,
    FeedbackResponse,
    ForceSubmitRequest,
    ForceSubmitResponse,
    ItemSubmissionRequest,
    PregenerateRequest,
    PregenerateResponse,
    SessionResponse,
    SnapshotResponse,
    StageContentRequest,
    StageContentResponse,
    SubmitResponse,
)
from assessment_engine.app_logging import configure_logging
from assessment_engine.config import parse_owner_id
from assessment_engine.containers import AppContainer
from assessment_engine.domain.stages import StageKind
from assessment_engine.errors import (
    AssessmentError,
    NoQuotaAvailable,
    ResourceNotFound,
    SessionExpired,
    SessionNotFound,
    StageLocked,
    StorageTransient,
)
from assessment_engine.services.assessment import AssessmentService, ItemSubmission
from assessment_engine.services.content import StageRequest

_ERROR_STATUS: list[tuple[type[AssessmentError], int]] = [
    (SessionNotFound, status.HTTP_404_NOT_FOUND),
    (ResourceNotFound, status.HTTP_404_NOT_FOUND),
    (SessionExpired, status.HTTP_410_GONE),
    (StageLocked, status.HTTP_409_CONFLICT),
    (NoQuotaAvailable, status.HTTP_403_FORBIDDEN),
    (StorageTransient, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def require_owner(x_owner_id: str | None = Header(default=None)) -> str:
    """Return the caller's owner id from the X-Owner-Id header."""
    owner_id = parse_owner_id(x_owner_id)
    if owner_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return owner_id


def _service(request: Request) -> AssessmentService:
    container: AppContainer = request.app.state.container
    return container.assessment_service


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper_task = asyncio.create_task(app.state.container.sweeper.run_forever())
        yield
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(AssessmentError)
    async def assessment_error_handler(
        request: Request, exc: AssessmentError
    ) -> JSONResponse:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, mapped in _ERROR_STATUS:
            if isinstance(exc, error_type):
                status_code = mapped
                break
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "Request failed: %s", exc, extra={"path": request.url.path}
            )
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "detail": str(exc)},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/sessions", status_code=status.HTTP_201_CREATED)
    def create_session(
        request: Request, owner_id: str = Depends(require_owner)
    ) -> SessionResponse:
        service = _service(request)
        record = service.create_session(owner_id)
        return SessionResponse.from_record(record, service.duration_seconds)

    @app.post("/sessions/{session_id}/pregenerate")
    async def pregenerate(
        session_id: str,
        request: Request,
        body: PregenerateRequest | None = None,
        owner_id: str = Depends(require_owner),
    ) -> PregenerateResponse:
        requests = [
            StageRequest(item.stage, item.topic, item.difficulty)
            for item in (body.stages if body else [])
        ]
        first = await _service(request).pregenerate(owner_id, session_id, requests)
        return PregenerateResponse(session_id=session_id, current_stage=first)

    @app.get("/sessions/{session_id}")
    def get_session(
        session_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> SnapshotResponse:
        snapshot = _service(request).get_snapshot(owner_id, session_id)
        return SnapshotResponse.from_snapshot(snapshot)

    @app.post("/sessions/{session_id}/stages/{stage}/content")
    async def get_stage_content(
        session_id: str,
        stage: StageKind,
        request: Request,
        body: StageContentRequest | None = None,
        owner_id: str = Depends(require_owner),
    ) -> StageContentResponse:
        stage_request = StageRequest(
            stage,
            body.topic if body else None,
            body.difficulty if body else None,
        )
        view = await _service(request).get_stage_content(
            owner_id, session_id, stage_request
        )
        return StageContentResponse.from_view(view)

    @app.post("/sessions/{session_id}/stages/{stage}/items")
    async def submit_stage_item(
        session_id: str,
        stage: StageKind,
        body: ItemSubmissionRequest,
        request: Request,
        owner_id: str = Depends(require_owner),
    ) -> SubmitResponse:
        result = await _service(request).submit_stage_item(
            owner_id,
            session_id,
            stage,
            ItemSubmission(
                answer=body.answer,
                answers=body.answers,
                pronunciation=body.pronunciation,
            ),
        )
        return SubmitResponse.from_result(result)

    @app.post("/sessions/{session_id}/stages/{stage}/complete")
    def complete_stage(
        session_id: str,
        stage: StageKind,
        body: CompleteStageRequest,
        request: Request,
        owner_id: str = Depends(require_owner),
    ) -> CompletionResponse:
        completion = _service(request).complete_stage(
            owner_id, session_id, stage, body.score
        )
        return CompletionResponse.from_completion(completion)

    @app.post("/sessions/{session_id}/force-submit")
    def force_submit(
        session_id: str,
        request: Request,
        body: ForceSubmitRequest | None = None,
        owner_id: str = Depends(require_owner),
    ) -> ForceSubmitResponse:
        reason = body.reason if body else ForceSubmitRequest().reason
        outcome = _service(request).force_submit(owner_id, session_id, reason)
        return ForceSubmitResponse.from_outcome(outcome)

    @app.get("/sessions/{session_id}/score")
    def get_score(
        session_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> AggregateResponse:
        aggregate = _service(request).get_aggregate_score(owner_id, session_id)
        return AggregateResponse.from_aggregate(aggregate)

    @app.get("/sessions/{session_id}/results")
    def get_results(
        session_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> DetailedResultsResponse:
        results = _service(request).get_detailed_results(owner_id, session_id)
        return DetailedResultsResponse.from_results(results)

    @app.get("/sessions/{session_id}/feedback")
    async def get_feedback(
        session_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> FeedbackResponse:
        feedback = await _service(request).get_consolidated_feedback(
            owner_id, session_id
        )
        return FeedbackResponse.from_result(feedback)

    @app.delete("/sessions/{session_id}")
    def clear_session(
        session_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> dict[str, object]:
        removed = _service(request).clear_session(owner_id, session_id)
        return {"status": "cleared", "artifacts_removed": removed}

    @app.post("/sessions/{session_id}/reset")
    def reset_session(
        session_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> dict[str, str]:
        _service(request).reset(owner_id, session_id)
        return {"status": "reset"}

    @app.get("/audio/{artifact_id}")
    def get_audio(
        artifact_id: str, request: Request, owner_id: str = Depends(require_owner)
    ) -> Response:
        data = _service(request).read_artifact(artifact_id, owner_id)
        return Response(content=data, media_type="audio/mpeg")

    return app
