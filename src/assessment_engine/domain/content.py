"""Models for generated stage content and evaluations."""

from pydantic import BaseModel, Field


class ReadingContent(BaseModel):
    """Sentences read aloud for pronunciation scoring."""

    sentences: list[str] = Field(min_length=1)


class ListeningItem(BaseModel):
    """One sentence with its synthesized audio, when synthesis succeeded."""

    text: str
    artifact_id: str | None = None


class ListeningContent(BaseModel):
    """Sentences the user listens to and repeats."""

    items: list[ListeningItem] = Field(min_length=1)


class JumbledQuestion(BaseModel):
    """A sentence and its shuffled token form."""

    original: str
    jumbled: str


class JumbledContent(BaseModel):
    """Sentences to reconstruct from shuffled tokens."""

    questions: list[JumbledQuestion] = Field(min_length=1)


class StoryContent(BaseModel):
    """Short story the user listens to and summarizes."""

    story: str
    artifact_id: str | None = None


class PersonalContent(BaseModel):
    """Interview-style question answered by speaking."""

    question: str


class ChoiceQuestion(BaseModel):
    """Multiple choice question with a single correct answer."""

    question: str
    options: list[str] = Field(min_length=2)
    correct_answer: str


class ComprehensionContent(BaseModel):
    """Reading passage followed by multiple choice questions."""

    passage: str
    questions: list[ChoiceQuestion] = Field(min_length=1)


class FillBlanksContent(BaseModel):
    """Grammar questions with one blank each."""

    questions: list[ChoiceQuestion] = Field(min_length=1)


class Evaluation(BaseModel):
    """Score and rationale returned for a free-text submission."""

    score: int = Field(ge=0, le=100)
    rationale: str


class Feedback(BaseModel):
    """Consolidated written feedback across every stage of an attempt."""

    summary: str
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class PronunciationResult(BaseModel):
    """Pronunciation assessment for one spoken sentence."""

    pronunciation_score: float = Field(default=0.0, ge=0.0, le=100.0)
    accuracy_score: float = Field(default=0.0, ge=0.0, le=100.0)
    fluency_score: float = Field(default=0.0, ge=0.0, le=100.0)
    completeness_score: float = Field(default=0.0, ge=0.0, le=100.0)
    recognized_text: str = ""
