"""Gateway to the content, speech and evaluation collaborators.

Adapters raise freely; this module converts every failure into a
``GenerationFailed``/``SynthesisFailed``/``EvaluationFailed`` after bounded
retries, and the ``*_or_fallback`` methods turn those into degraded results so
collaborator trouble never reaches the user as a hard error.
"""

import logging
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from pydantic import ValidationError

from assessment_engine.domain.content import Evaluation, Feedback
from assessment_engine.domain.scores import StageResult
from assessment_engine.domain.stages import StageKind
from assessment_engine.errors import (
    EvaluationFailed,
    GenerationFailed,
    SynthesisFailed,
)
from assessment_engine.retry import retry_async
from assessment_engine.services import fallbacks

logger = logging.getLogger(__name__)

T = TypeVar("T")

SENTENCES_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "sentences": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["sentences"],
    "additionalProperties": False,
}

STORY_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {"story": {"type": "string"}},
    "required": ["story"],
    "additionalProperties": False,
}

QUESTION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {"question": {"type": "string"}},
    "required": ["question"],
    "additionalProperties": False,
}

_CHOICE_QUESTION: dict[str, object] = {
    "type": "object",
    "properties": {
        "question": {"type": "string"},
        "options": {"type": "array", "items": {"type": "string"}},
        "correct_answer": {"type": "string"},
    },
    "required": ["question", "options", "correct_answer"],
    "additionalProperties": False,
}

COMPREHENSION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "passage": {"type": "string"},
        "questions": {"type": "array", "items": _CHOICE_QUESTION},
    },
    "required": ["passage", "questions"],
    "additionalProperties": False,
}

FILL_BLANKS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {"questions": {"type": "array", "items": _CHOICE_QUESTION}},
    "required": ["questions"],
    "additionalProperties": False,
}

EVALUATION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "score": {"type": "integer", "minimum": 0, "maximum": 100},
        "rationale": {"type": "string"},
    },
    "required": ["score", "rationale"],
    "additionalProperties": False,
}

FEEDBACK_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "strengths": {"type": "array", "items": {"type": "string"}},
        "improvements": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["summary", "strengths", "improvements"],
    "additionalProperties": False,
}

_SENTENCE_COUNT = 5

_GENERATION_INSTRUCTIONS = (
    "You create English communication assessment material for adult learners. "
    "Follow the requested topic and difficulty and always answer in JSON."
)

_EVALUATION_INSTRUCTIONS = (
    "You are an honest, constructive communication skills evaluator. "
    "Score the submission from 0 to 100 and explain the score briefly."
)

_FEEDBACK_INSTRUCTIONS = (
    "You are an honest, critical communication skills evaluator. Base the "
    "analysis on the scores you are given and do not sugar-coat weaknesses."
)


class LanguageModelClient(Protocol):
    """Interface for structured-output language model calls."""

    async def complete_json(
        self,
        *,
        model: str,
        instructions: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        """Return the model output parsed as JSON matching ``schema``."""


class SpeechClient(Protocol):
    """Interface for text-to-speech synthesis."""

    async def synthesize(self, *, model: str, voice: str, text: str) -> bytes:
        """Return encoded audio bytes for ``text``."""


@dataclass(frozen=True)
class CollaboratorResult(Generic[T]):
    """Value from a collaborator, flagged when it came from a fallback."""

    value: T
    degraded: bool = False
    error: str | None = None


@dataclass
class CollaboratorPolicy:
    """Timeout and retry bounds for collaborator calls."""

    timeout_seconds: float = 30.0
    max_attempts: int = 2
    backoff_seconds: float = 2.0


@dataclass
class CollaboratorGateway:
    """Prompts, schemas and failure handling for every collaborator call."""

    language_model: LanguageModelClient
    speech: SpeechClient
    model: str
    tts_model: str
    tts_voice: str
    policy: CollaboratorPolicy

    async def generate(
        self, stage: StageKind, topic: str, difficulty: str
    ) -> dict[str, object]:
        """Generate raw content for a stage or raise GenerationFailed."""
        schema, schema_name = _generation_schema(stage)
        prompt = _generation_prompt(stage, topic, difficulty)
        try:
            raw = await retry_async(
                lambda: self.language_model.complete_json(
                    model=self.model,
                    instructions=_GENERATION_INSTRUCTIONS,
                    prompt=prompt,
                    schema=schema,
                    schema_name=schema_name,
                ),
                attempts=self.policy.max_attempts,
                timeout_seconds=self.policy.timeout_seconds,
                backoff_seconds=self.policy.backoff_seconds,
                label=f"generate {stage}",
            )
        except Exception as exc:
            raise GenerationFailed(f"{stage}: {exc}") from exc
        if not _looks_complete(stage, raw):
            raise GenerationFailed(f"{stage}: incomplete content")
        return raw

    async def generate_or_fallback(
        self, stage: StageKind, topic: str, difficulty: str
    ) -> CollaboratorResult[dict[str, object]]:
        """Generate content, degrading to canned content on failure."""
        try:
            return CollaboratorResult(await self.generate(stage, topic, difficulty))
        except GenerationFailed as exc:
            logger.warning(
                "Using fallback content", extra={"stage": str(stage), "error": str(exc)}
            )
            return CollaboratorResult(
                fallbacks.fallback_content(stage), degraded=True, error=str(exc)
            )

    async def synthesize_speech(self, text: str) -> bytes:
        """Synthesize audio or raise SynthesisFailed."""
        try:
            audio = await retry_async(
                lambda: self.speech.synthesize(
                    model=self.tts_model, voice=self.tts_voice, text=text
                ),
                attempts=self.policy.max_attempts,
                timeout_seconds=self.policy.timeout_seconds,
                backoff_seconds=self.policy.backoff_seconds,
                label="synthesize",
            )
        except Exception as exc:
            raise SynthesisFailed(str(exc)) from exc
        if not audio:
            raise SynthesisFailed("empty audio")
        return audio

    async def synthesize_or_skip(self, text: str) -> CollaboratorResult[bytes | None]:
        """Synthesize audio; on failure the caller serves text only."""
        try:
            return CollaboratorResult(await self.synthesize_speech(text))
        except SynthesisFailed as exc:
            logger.warning("Speech synthesis unavailable", extra={"error": str(exc)})
            return CollaboratorResult(None, degraded=True, error=str(exc))

    async def evaluate(
        self, stage: StageKind, reference: str, submission: str
    ) -> Evaluation:
        """Score a free-text submission or raise EvaluationFailed."""
        prompt = _evaluation_prompt(stage, reference, submission)
        try:
            raw = await retry_async(
                lambda: self.language_model.complete_json(
                    model=self.model,
                    instructions=_EVALUATION_INSTRUCTIONS,
                    prompt=prompt,
                    schema=EVALUATION_SCHEMA,
                    schema_name="evaluation",
                ),
                attempts=self.policy.max_attempts,
                timeout_seconds=self.policy.timeout_seconds,
                backoff_seconds=self.policy.backoff_seconds,
                label=f"evaluate {stage}",
            )
            return Evaluation.model_validate(raw)
        except ValidationError as exc:
            raise EvaluationFailed(f"{stage}: invalid evaluation") from exc
        except Exception as exc:
            raise EvaluationFailed(f"{stage}: {exc}") from exc

    async def evaluate_or_fallback(
        self,
        stage: StageKind,
        reference: str,
        submission: str,
        pronunciation_score: float | None = None,
    ) -> CollaboratorResult[Evaluation]:
        """Evaluate, degrading to a heuristic score on failure."""
        try:
            return CollaboratorResult(
                await self.evaluate(stage, reference, submission)
            )
        except EvaluationFailed as exc:
            logger.warning(
                "Using heuristic evaluation",
                extra={"stage": str(stage), "error": str(exc)},
            )
            evaluation = fallbacks.heuristic_evaluation(
                stage, reference, submission, pronunciation_score
            )
            return CollaboratorResult(evaluation, degraded=True, error=str(exc))

    async def consolidate_feedback(
        self, results: list[StageResult], overall: int
    ) -> Feedback:
        """Summarize an attempt across stages or raise EvaluationFailed."""
        prompt = _feedback_prompt(results, overall)
        try:
            raw = await retry_async(
                lambda: self.language_model.complete_json(
                    model=self.model,
                    instructions=_FEEDBACK_INSTRUCTIONS,
                    prompt=prompt,
                    schema=FEEDBACK_SCHEMA,
                    schema_name="feedback",
                ),
                attempts=self.policy.max_attempts,
                timeout_seconds=self.policy.timeout_seconds,
                backoff_seconds=self.policy.backoff_seconds,
                label="consolidate feedback",
            )
            return Feedback.model_validate(raw)
        except ValidationError as exc:
            raise EvaluationFailed("feedback: invalid feedback") from exc
        except Exception as exc:
            raise EvaluationFailed(f"feedback: {exc}") from exc

    async def feedback_or_fallback(
        self, results: list[StageResult], overall: int
    ) -> CollaboratorResult[Feedback]:
        """Consolidate feedback, degrading to a score-based summary on failure."""
        try:
            return CollaboratorResult(await self.consolidate_feedback(results, overall))
        except EvaluationFailed as exc:
            logger.warning("Using heuristic feedback", extra={"error": str(exc)})
            feedback = fallbacks.heuristic_feedback(results, overall)
            return CollaboratorResult(feedback, degraded=True, error=str(exc))


def _generation_schema(stage: StageKind) -> tuple[dict[str, object], str]:
    if stage in {StageKind.READING, StageKind.LISTENING, StageKind.JUMBLED}:
        return SENTENCES_SCHEMA, "sentences"
    if stage == StageKind.STORY:
        return STORY_SCHEMA, "story"
    if stage == StageKind.PERSONAL:
        return QUESTION_SCHEMA, "question"
    if stage == StageKind.COMPREHENSION:
        return COMPREHENSION_SCHEMA, "comprehension"
    return FILL_BLANKS_SCHEMA, "fill_blanks"


def _generation_prompt(stage: StageKind, topic: str, difficulty: str) -> str:
    if stage == StageKind.READING:
        return (
            f"Generate {_SENTENCE_COUNT} different English sentences of 8-20 words "
            f'for pronunciation practice about "{topic}" at {difficulty} '
            "difficulty. Use common vocabulary and clear pronunciation patterns."
        )
    if stage == StageKind.LISTENING:
        return (
            f"Generate {_SENTENCE_COUNT} different English sentences of 8-20 words "
            f'for listening practice about "{topic}" at {difficulty} difficulty. '
            "Make them clear, natural and related to the topic."
        )
    if stage == StageKind.JUMBLED:
        return (
            f"Generate {_SENTENCE_COUNT} different English sentences about "
            f'"{topic}" at {difficulty} difficulty. Do not use commas, semicolons '
            "or other internal punctuation; end each sentence with a period or a "
            "question mark."
        )
    if stage == StageKind.STORY:
        return (
            f"Tell a short story about {topic} at {difficulty} difficulty, around "
            "60-100 words, with a clear beginning, middle and end that is easy to "
            "summarize."
        )
    if stage == StageKind.PERSONAL:
        return (
            f"Write one realistic {difficulty} job interview question about "
            f"{topic} that tests communication skills and can be answered aloud "
            "in 30-90 seconds."
        )
    if stage == StageKind.COMPREHENSION:
        return (
            f'Write a reading passage of 200-350 words about "{topic}" at '
            f"{difficulty} difficulty and {_SENTENCE_COUNT} multiple choice "
            "questions with four options each. correct_answer must repeat the "
            "exact text of the correct option."
        )
    return (
        f'Write 10 grammar fill-in-the-blank questions themed on "{topic}" at '
        f"{difficulty} difficulty. Mark the blank with _____, give three options "
        "and set correct_answer to the exact text of the correct option."
    )


def _evaluation_prompt(stage: StageKind, reference: str, submission: str) -> str:
    if stage == StageKind.STORY:
        return (
            f"Original story:\n{reference}\n\nUser summary:\n{submission}\n\n"
            "Evaluate completeness, accuracy, clarity and understanding."
        )
    return (
        f'Interview question: "{reference}"\n\nCandidate response: "{submission}"'
        "\n\nWeigh content quality 40%, clarity 30%, speech 20% and professional "
        "delivery 10%."
    )


def _feedback_prompt(results: list[StageResult], overall: int) -> str:
    lines = []
    for result in results:
        if result.attempted and result.score is not None:
            lines.append(f"- {result.title}: {result.score}/100")
        else:
            lines.append(f"- {result.title}: Not Attempted")
    attempted = sum(1 for result in results if result.attempted)
    return (
        f"ASSESSMENT SCORES ({attempted} out of {len(results)} completed):\n"
        + "\n".join(lines)
        + f"\n- Overall Score: {overall}/100\n\n"
        "Stages marked Not Attempted count as zero and are missed opportunities. "
        "Base the analysis on the completed stages, name specific weaknesses "
        "against professional expectations and list concrete improvements."
    )


def _looks_complete(stage: StageKind, raw: dict[str, object]) -> bool:
    if stage in {StageKind.READING, StageKind.LISTENING, StageKind.JUMBLED}:
        sentences = raw.get("sentences")
        return isinstance(sentences, list) and len(sentences) > 0
    if stage == StageKind.STORY:
        return bool(raw.get("story"))
    if stage == StageKind.PERSONAL:
        return bool(raw.get("question"))
    questions = raw.get("questions")
    return isinstance(questions, list) and len(questions) > 0
