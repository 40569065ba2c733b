"""Stage content generation, pre-generation and per-session caching."""

import asyncio
import logging
import random
import re
from dataclasses import dataclass, field

from pydantic import BaseModel, ValidationError

from assessment_engine.domain.content import (
    ComprehensionContent,
    FillBlanksContent,
    JumbledContent,
    JumbledQuestion,
    ListeningContent,
    ListeningItem,
    PersonalContent,
    ReadingContent,
    StoryContent,
)
from assessment_engine.domain.resources import artifact_tag
from assessment_engine.domain.sessions import SessionPatch
from assessment_engine.domain.stages import STAGE_ORDER, StageKind
from assessment_engine.errors import SessionExpired, StageLocked
from assessment_engine.services import fallbacks
from assessment_engine.services.collaborators import CollaboratorGateway
from assessment_engine.services.resources import ResourceService
from assessment_engine.services.session_store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_TOPICS: dict[StageKind, str] = {
    StageKind.READING: "general topics",
    StageKind.LISTENING: "general conversation",
    StageKind.JUMBLED: "general",
    StageKind.STORY: "general stories",
    StageKind.PERSONAL: "general",
    StageKind.COMPREHENSION: "technology",
    StageKind.FILL_BLANKS: "grammar patterns",
}
SENTENCES_PER_STAGE = 5
_SHUFFLE_ATTEMPTS = 10
_STRIP_PUNCTUATION = re.compile(r"[!,;:'\"()\[\]{}<>-]")


@dataclass(frozen=True)
class StageRequest:
    """Topic and difficulty chosen for one stage."""

    stage: StageKind
    topic: str | None = None
    difficulty: str | None = None

    def resolved_topic(self) -> str:
        return (self.topic or "").strip() or DEFAULT_TOPICS[self.stage]

    def resolved_difficulty(self) -> str:
        return (self.difficulty or "").strip().lower() or DEFAULT_DIFFICULTY


@dataclass
class ContentService:
    """Builds stage content, stores its audio artifacts and caches it per session.

    Content for a stage is generated once; later requests within the stage
    return the stored payload instead of regenerating.
    """

    gateway: CollaboratorGateway
    resource_service: ResourceService
    session_store: SessionStore
    rng: random.Random = field(default_factory=random.Random)

    async def get_stage_content(
        self, owner_id: str, session_id: str, request: StageRequest
    ) -> dict[str, object]:
        """Return the stage payload, generating it on first request."""
        session = self.session_store.get(owner_id, session_id)
        if session.is_terminated():
            raise SessionExpired(session_id)
        if session.is_complete(request.stage):
            raise StageLocked(f"{session_id}:{request.stage}")
        existing = session.stage_data.get(request.stage)
        if existing and "content" in existing:
            return existing

        payload = await self.build(owner_id, session_id, request)
        self._persist(owner_id, session_id, {request.stage: payload})
        return payload

    async def pregenerate(
        self,
        owner_id: str,
        session_id: str,
        requests: list[StageRequest] | None = None,
    ) -> dict[StageKind, dict[str, object]]:
        """Generate content for every stage concurrently before the session starts.

        Collaborator failures degrade per stage. Any other failure fails the
        whole batch, and artifacts created by the batch are deleted.
        """
        session = self.session_store.get(owner_id, session_id)
        if session.is_terminated():
            raise SessionExpired(session_id)
        by_stage = {request.stage: request for request in requests or []}
        pending = [
            by_stage.get(stage, StageRequest(stage))
            for stage in STAGE_ORDER
            if not session.is_complete(stage)
            and "content" not in session.stage_data.get(stage, {})
        ]
        results = await asyncio.gather(
            *(self.build(owner_id, session_id, request) for request in pending),
            return_exceptions=True,
        )
        payloads: dict[StageKind, dict[str, object]] = {}
        failures: list[BaseException] = []
        for request, result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                failures.append(result)
            else:
                payloads[request.stage] = result
        if failures:
            self._discard(payloads)
            logger.error(
                "Pre-generation failed; no stage was started",
                extra={"session_id": session_id, "failures": len(failures)},
            )
            raise failures[0]

        self._persist(owner_id, session_id, payloads)
        degraded = [str(stage) for stage, p in payloads.items() if p.get("degraded")]
        logger.info(
            "Pre-generated %s stages (%s degraded)",
            len(payloads),
            len(degraded),
            extra={"session_id": session_id, "degraded": degraded},
        )
        return payloads

    async def build(
        self, owner_id: str, session_id: str, request: StageRequest
    ) -> dict[str, object]:
        """Generate and materialize the payload for one stage."""
        topic = request.resolved_topic()
        difficulty = request.resolved_difficulty()
        generated = await self.gateway.generate_or_fallback(
            request.stage, topic, difficulty
        )
        degraded = generated.degraded
        try:
            content, artifact_ids = await self._materialize(
                owner_id, session_id, request.stage, generated.value
            )
        except ValidationError:
            logger.warning(
                "Generated content failed validation; using fallback",
                extra={"stage": str(request.stage)},
            )
            degraded = True
            content, artifact_ids = await self._materialize(
                owner_id,
                session_id,
                request.stage,
                fallbacks.fallback_content(request.stage),
            )
        return {
            "content": content.model_dump(mode="json"),
            "topic": topic,
            "difficulty": difficulty,
            "degraded": degraded,
            "artifact_ids": artifact_ids,
            "index": 0,
            "results": [],
        }

    async def _materialize(
        self,
        owner_id: str,
        session_id: str,
        stage: StageKind,
        raw: dict[str, object],
    ) -> tuple[BaseModel, list[str]]:
        if stage == StageKind.READING:
            sentences = _sentences(raw)
            return ReadingContent(sentences=sentences), []
        if stage == StageKind.JUMBLED:
            questions = build_jumbled_questions(_sentences(raw), self.rng)
            return JumbledContent(questions=questions), []
        if stage == StageKind.PERSONAL:
            return PersonalContent.model_validate(raw), []
        if stage == StageKind.COMPREHENSION:
            return ComprehensionContent.model_validate(raw), []
        if stage == StageKind.FILL_BLANKS:
            return FillBlanksContent.model_validate(raw), []

        if stage == StageKind.STORY:
            texts = [StoryContent.model_validate(raw).story]
        else:
            texts = _sentences(raw)
        audio = await asyncio.gather(
            *(self.gateway.synthesize_or_skip(text) for text in texts)
        )
        artifact_ids: list[str] = []
        slots: list[str | None] = []
        try:
            for result in audio:
                if result.value is None:
                    slots.append(None)
                    continue
                artifact_id = self.resource_service.store(
                    result.value, owner_id, artifact_tag(session_id, str(stage))
                )
                artifact_ids.append(artifact_id)
                slots.append(artifact_id)
        except Exception:
            self.resource_service.delete_many(artifact_ids)
            raise
        if stage == StageKind.STORY:
            return StoryContent(story=texts[0], artifact_id=slots[0]), artifact_ids
        items = [
            ListeningItem(text=text, artifact_id=slot)
            for text, slot in zip(texts, slots, strict=True)
        ]
        return ListeningContent(items=items), artifact_ids

    def _persist(
        self,
        owner_id: str,
        session_id: str,
        payloads: dict[StageKind, dict[str, object]],
    ) -> None:
        try:
            self.session_store.update(
                owner_id, session_id, SessionPatch(stage_data=payloads)
            )
        except Exception:
            self._discard(payloads)
            raise

    def _discard(self, payloads: dict[StageKind, dict[str, object]]) -> None:
        for payload in payloads.values():
            ids = payload.get("artifact_ids", [])
            if isinstance(ids, list):
                self.resource_service.delete_many([str(item) for item in ids])


def build_jumbled_questions(
    sentences: list[str], rng: random.Random
) -> list[JumbledQuestion]:
    """Shuffle each sentence's tokens into an order different from the original.

    Tokens are lowercased with internal punctuation removed; a trailing period
    or question mark is kept as its own token. Tokens are joined with " / ".
    """
    questions = []
    for sentence in sentences:
        original = sentence.strip()
        trailing = original[-1] if original.endswith((".", "?")) else ""
        body = original[:-1] if trailing else original
        tokens = [
            token.lower() for token in _STRIP_PUNCTUATION.sub(" ", body).split()
        ]
        if trailing:
            tokens.append(trailing)
        jumbled = " / ".join(_shuffle_different(tokens, rng))
        questions.append(JumbledQuestion(original=original, jumbled=jumbled))
    return questions


def _shuffle_different(tokens: list[str], rng: random.Random) -> list[str]:
    if len(tokens) < 2:  # noqa: PLR2004
        return list(tokens)
    for _ in range(_SHUFFLE_ATTEMPTS):
        candidate = list(tokens)
        rng.shuffle(candidate)
        if candidate != tokens:
            return candidate
    return tokens[1:] + tokens[:1]


def _sentences(raw: dict[str, object]) -> list[str]:
    value = raw.get("sentences", [])
    sentences = [str(item).strip() for item in value] if isinstance(value, list) else []
    sentences = [sentence for sentence in sentences if sentence]
    return sentences[:SENTENCES_PER_STAGE]
