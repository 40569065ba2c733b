"""Assessment orchestration: the operations exposed to clients."""

import logging
from dataclasses import dataclass, field, replace
from typing import Protocol
from uuid import uuid4

from assessment_engine.domain.content import Feedback, PronunciationResult
from assessment_engine.domain.models import ProfileRecord
from assessment_engine.domain.scores import AggregateScore, DetailedResults
from assessment_engine.domain.sessions import SessionPatch, SessionRecord
from assessment_engine.domain.stages import StageKind
from assessment_engine.errors import NoQuotaAvailable
from assessment_engine.services.collaborators import (
    CollaboratorGateway,
    CollaboratorResult,
)
from assessment_engine.services.content import ContentService, StageRequest
from assessment_engine.services.recovery import ForceSubmitOutcome, RecoveryService
from assessment_engine.services.resources import ResourceService
from assessment_engine.services.scoring import ScoreService, clamp_score, ratio_score
from assessment_engine.services.session_store import SessionStore
from assessment_engine.services.stages import StageCompletion, StageEngine

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 20 * 60


class ProfileRepository(Protocol):
    """Persistence interface for owner profiles and their attempt quota."""

    def get_profile(self, owner_id: str) -> ProfileRecord | None:
        """Return the owner's profile, if present."""

    def consume_attempt(self, owner_id: str) -> bool:
        """Take one attempt from the quota; return False when none is left."""


@dataclass(frozen=True)
class ItemSubmission:
    """An answer for the current item of a stage.

    ``answer`` carries free text, ``answers`` the full list for multiple choice
    stages and ``pronunciation`` the speech assessment for spoken items.
    """

    answer: str | None = None
    answers: list[str] | None = None
    pronunciation: PronunciationResult | None = None


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of submitting one stage item."""

    stage: StageKind
    correct: bool | None
    next_item: dict[str, object] | None
    stage_complete: bool
    score: int | None = None
    next_stage: StageKind | None = None
    feedback: str | None = None
    aggregate: AggregateScore | None = None


@dataclass(frozen=True)
class StageContentView:
    """Stage content as shown to the client, without answers."""

    stage: StageKind
    content: dict[str, object]
    index: int
    total: int
    degraded: bool


@dataclass(frozen=True)
class SessionSnapshot:
    """Server-authoritative progress used by clients to reconcile."""

    session_id: str
    status: str
    current_stage: StageKind | None
    stage_completion: dict[StageKind, bool]
    scores: dict[StageKind, int | None]
    duration_seconds: int
    last_activity: str


@dataclass
class AssessmentService:
    """Coordinates sessions, content, scoring and recovery for one owner."""

    session_store: SessionStore
    stage_engine: StageEngine
    score_service: ScoreService
    resource_service: ResourceService
    content_service: ContentService
    recovery_service: RecoveryService
    gateway: CollaboratorGateway
    profile_repository: ProfileRepository
    duration_seconds: int = field(default=DEFAULT_DURATION_SECONDS)

    def create_session(self, owner_id: str) -> SessionRecord:
        """Consume one attempt from the owner's quota and open a session."""
        profile = self.profile_repository.get_profile(owner_id)
        if profile is None or profile.tests_remaining <= 0:
            raise NoQuotaAvailable(owner_id)
        if not self.profile_repository.consume_attempt(owner_id):
            raise NoQuotaAvailable(owner_id)
        session = self.session_store.get_or_create(owner_id, uuid4().hex)
        logger.info(
            "Session created",
            extra={"owner_id": owner_id, "session_id": session.session_id},
        )
        return session

    async def pregenerate(
        self,
        owner_id: str,
        session_id: str,
        requests: list[StageRequest] | None = None,
    ) -> StageKind | None:
        """Generate every stage, then start the session on its first stage."""
        await self.content_service.pregenerate(owner_id, session_id, requests)
        session = self.session_store.get(owner_id, session_id)
        return self.stage_engine.start(session)

    async def get_stage_content(
        self, owner_id: str, session_id: str, request: StageRequest
    ) -> StageContentView:
        payload = await self.content_service.get_stage_content(
            owner_id, session_id, request
        )
        return _content_view(request.stage, payload)

    async def submit_stage_item(
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        submission: ItemSubmission,
    ) -> SubmitResult:
        """Score one item and complete the stage after its last item."""
        payload = await self.content_service.get_stage_content(
            owner_id, session_id, StageRequest(stage)
        )
        content = payload.get("content")
        content = content if isinstance(content, dict) else {}
        if stage in {StageKind.READING, StageKind.LISTENING}:
            return self._submit_spoken(owner_id, session_id, stage, payload, submission)
        if stage == StageKind.JUMBLED:
            return self._submit_jumbled(owner_id, session_id, payload, submission)
        if stage in {StageKind.STORY, StageKind.PERSONAL}:
            return await self._submit_evaluated(
                owner_id, session_id, stage, content, submission
            )
        return self._submit_choices(owner_id, session_id, stage, content, submission)

    def complete_stage(
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        score: float,
    ) -> StageCompletion:
        session = self.session_store.get(owner_id, session_id)
        return self.stage_engine.complete(
            session, stage, score, {"source": "client"}
        )

    def force_submit(
        self, owner_id: str, session_id: str, reason: str
    ) -> ForceSubmitOutcome:
        return self.recovery_service.force_submit(owner_id, session_id, reason)

    def get_aggregate_score(self, owner_id: str, session_id: str) -> AggregateScore:
        """Return the overall score; works after the session is gone."""
        return self.score_service.aggregate_for(owner_id, session_id)

    def get_detailed_results(self, owner_id: str, session_id: str) -> DetailedResults:
        """Return every stage's score, details and completion time."""
        return DetailedResults(
            session_id=session_id,
            aggregate=self.score_service.aggregate_for(owner_id, session_id),
            stages=self.score_service.stage_results(owner_id, session_id),
        )

    async def get_consolidated_feedback(
        self, owner_id: str, session_id: str
    ) -> CollaboratorResult[Feedback]:
        """Return written feedback across every stage of the attempt."""
        results = self.get_detailed_results(owner_id, session_id)
        feedback = await self.gateway.feedback_or_fallback(
            results.stages, results.aggregate.overall
        )
        logger.info(
            "Consolidated feedback generated",
            extra={"session_id": session_id, "degraded": feedback.degraded},
        )
        return feedback

    def get_snapshot(self, owner_id: str, session_id: str) -> SessionSnapshot:
        session = self.session_store.get(owner_id, session_id)
        return SessionSnapshot(
            session_id=session.session_id,
            status=session.status,
            current_stage=self.stage_engine.current_stage(session),
            stage_completion=dict(session.stage_completion),
            scores=self.score_service.scores_for(owner_id, session_id),
            duration_seconds=self.duration_seconds,
            last_activity=session.last_activity.isoformat(),
        )

    def read_artifact(self, artifact_id: str, owner_id: str) -> bytes:
        return self.resource_service.read(artifact_id, owner_id)

    def clear_session(self, owner_id: str, session_id: str) -> int:
        """Delete the session record and every artifact it owns."""
        session = self.session_store.find(owner_id, session_id)
        if session is None:
            removed = self.resource_service.delete_for_session(owner_id, session_id)
        else:
            removed = self.stage_engine.purge_session_artifacts(session)
        self.session_store.clear(owner_id, session_id)
        logger.info(
            "Session cleared",
            extra={"session_id": session_id, "artifacts_removed": removed},
        )
        return removed

    def reset(self, owner_id: str, session_id: str) -> None:
        """Drop the attempt's scores, its artifacts and the session record."""
        self.score_service.reset(owner_id, session_id)
        self.clear_session(owner_id, session_id)

    def _submit_spoken(
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        payload: dict[str, object],
        submission: ItemSubmission,
    ) -> SubmitResult:
        texts = _item_texts(stage, payload)
        index = _int(payload.get("index"))
        results = list(_results(payload))
        pronunciation = submission.pronunciation or PronunciationResult()
        results.append(
            {
                "text": texts[index] if index < len(texts) else "",
                "recognized_text": pronunciation.recognized_text,
                "pronunciation_score": pronunciation.pronunciation_score,
                "accuracy_score": pronunciation.accuracy_score,
                "fluency_score": pronunciation.fluency_score,
                "completeness_score": pronunciation.completeness_score,
            }
        )
        next_index = index + 1
        if next_index < len(texts):
            self._save_progress(
                owner_id, session_id, stage, payload, next_index, results
            )
            return SubmitResult(
                stage=stage,
                correct=None,
                next_item=_public_item(stage, payload, next_index),
                stage_complete=False,
            )
        scores = [_float(result.get("pronunciation_score")) for result in results]
        score = clamp_score(sum(scores) / len(scores)) if scores else 0
        return self._finish(
            owner_id, session_id, stage, payload, results, score, {"items": results}
        )

    def _submit_jumbled(
        self,
        owner_id: str,
        session_id: str,
        payload: dict[str, object],
        submission: ItemSubmission,
    ) -> SubmitResult:
        stage = StageKind.JUMBLED
        content = payload["content"]
        questions = content.get("questions", []) if isinstance(content, dict) else []
        index = _int(payload.get("index"))
        original = str(questions[index]["original"]) if index < len(questions) else ""
        answer = submission.answer or ""
        correct = answer.strip().lower() == original.strip().lower()
        results = list(_results(payload))
        results.append({"original": original, "answer": answer, "correct": correct})
        next_index = index + 1
        if next_index < len(questions):
            self._save_progress(
                owner_id, session_id, stage, payload, next_index, results
            )
            return SubmitResult(
                stage=stage,
                correct=correct,
                next_item=_public_item(stage, payload, next_index),
                stage_complete=False,
            )
        correct_count = sum(1 for result in results if result.get("correct"))
        score = ratio_score(correct_count, len(questions))
        result = self._finish(
            owner_id,
            session_id,
            stage,
            payload,
            results,
            score,
            {"items": results, "correct": correct_count, "total": len(questions)},
        )
        return replace(result, correct=correct)

    async def _submit_evaluated(
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        content: dict[str, object],
        submission: ItemSubmission,
    ) -> SubmitResult:
        reference_key = "story" if stage == StageKind.STORY else "question"
        reference = str(content.get(reference_key, ""))
        answer = (submission.answer or "").strip()
        if not answer and submission.pronunciation is not None:
            answer = submission.pronunciation.recognized_text
        speech_score = (
            submission.pronunciation.pronunciation_score
            if submission.pronunciation is not None
            else None
        )
        evaluation = await self.gateway.evaluate_or_fallback(
            stage, reference, answer, speech_score
        )
        details = {
            "reference": reference,
            "answer": answer,
            "rationale": evaluation.value.rationale,
            "degraded": evaluation.degraded,
        }
        if speech_score is not None:
            details["pronunciation_score"] = speech_score
        completion = self.stage_engine.complete(
            self.session_store.get(owner_id, session_id),
            stage,
            evaluation.value.score,
            details,
        )
        return SubmitResult(
            stage=stage,
            correct=None,
            next_item=None,
            stage_complete=True,
            score=completion.score,
            next_stage=completion.next_stage,
            feedback=evaluation.value.rationale,
            aggregate=completion.aggregate,
        )

    def _submit_choices(
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        content: dict[str, object],
        submission: ItemSubmission,
    ) -> SubmitResult:
        questions = content.get("questions", [])
        questions = questions if isinstance(questions, list) else []
        answers = list(submission.answers or [])
        answers += [""] * (len(questions) - len(answers))
        results = []
        for question, answer in zip(questions, answers, strict=False):
            expected = str(question.get("correct_answer", ""))
            results.append(
                {
                    "question": question.get("question", ""),
                    "answer": answer,
                    "correct_answer": expected,
                    "correct": answer.strip().lower() == expected.strip().lower(),
                }
            )
        correct_count = sum(1 for result in results if result["correct"])
        completion = self.stage_engine.complete(
            self.session_store.get(owner_id, session_id),
            stage,
            ratio_score(correct_count, len(questions)),
            {"items": results, "correct": correct_count, "total": len(questions)},
        )
        return SubmitResult(
            stage=stage,
            correct=None,
            next_item=None,
            stage_complete=True,
            score=completion.score,
            next_stage=completion.next_stage,
            feedback=f"{correct_count}/{len(questions)} correct",
            aggregate=completion.aggregate,
        )

    def _save_progress(  # noqa: PLR0913
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        payload: dict[str, object],
        index: int,
        results: list[dict[str, object]],
    ) -> None:
        updated = {**payload, "index": index, "results": results}
        self.session_store.update(
            owner_id, session_id, SessionPatch(stage_data={stage: updated})
        )

    def _finish(  # noqa: PLR0913
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        payload: dict[str, object],
        results: list[dict[str, object]],
        score: int,
        details: dict[str, object],
    ) -> SubmitResult:
        self._save_progress(
            owner_id, session_id, stage, payload, len(results), results
        )
        completion = self.stage_engine.complete(
            self.session_store.get(owner_id, session_id), stage, score, details
        )
        return SubmitResult(
            stage=stage,
            correct=None,
            next_item=None,
            stage_complete=True,
            score=completion.score,
            next_stage=completion.next_stage,
            aggregate=completion.aggregate,
        )


def _content_view(stage: StageKind, payload: dict[str, object]) -> StageContentView:
    content = payload.get("content")
    content = content if isinstance(content, dict) else {}
    public = dict(content)
    if stage == StageKind.JUMBLED:
        public["questions"] = [
            {"jumbled": question["jumbled"]} for question in content["questions"]
        ]
    elif stage in {StageKind.COMPREHENSION, StageKind.FILL_BLANKS}:
        public["questions"] = [
            {"question": question["question"], "options": question["options"]}
            for question in content["questions"]
        ]
    return StageContentView(
        stage=stage,
        content=public,
        index=_int(payload.get("index")),
        total=_item_total(stage, content),
        degraded=bool(payload.get("degraded")),
    )


def _item_total(stage: StageKind, content: dict[str, object]) -> int:
    if stage == StageKind.READING:
        return len(content.get("sentences", []))
    if stage == StageKind.LISTENING:
        return len(content.get("items", []))
    if stage == StageKind.JUMBLED:
        return len(content.get("questions", []))
    return 1


def _item_texts(stage: StageKind, payload: dict[str, object]) -> list[str]:
    content = payload.get("content")
    content = content if isinstance(content, dict) else {}
    if stage == StageKind.READING:
        return [str(sentence) for sentence in content.get("sentences", [])]
    return [str(item.get("text", "")) for item in content.get("items", [])]


def _public_item(
    stage: StageKind, payload: dict[str, object], index: int
) -> dict[str, object]:
    content = payload["content"]
    if not isinstance(content, dict):
        return {}
    if stage == StageKind.READING:
        return {"index": index, "text": content["sentences"][index]}
    if stage == StageKind.LISTENING:
        item = content["items"][index]
        return {
            "index": index,
            "text": item["text"],
            "artifact_id": item["artifact_id"],
        }
    return {"index": index, "jumbled": content["questions"][index]["jumbled"]}


def _results(payload: dict[str, object]) -> list[dict[str, object]]:
    raw = payload.get("results", [])
    return [dict(item) for item in raw] if isinstance(raw, list) else []


def _int(value: object) -> int:
    return value if isinstance(value, int) else 0


def _float(value: object) -> float:
    return float(value) if isinstance(value, int | float) else 0.0
