"""Static content and heuristic scores used when collaborators fail."""

import re

from assessment_engine.domain.content import Evaluation, Feedback
from assessment_engine.domain.scores import StageResult
from assessment_engine.domain.stages import StageKind

READING_SENTENCES = [
    "The quick brown fox jumps over the lazy dog every morning.",
    "Learning English pronunciation takes practice and patience every day.",
    "She sells beautiful seashells by the peaceful seashore.",
    "The weather is absolutely beautiful and sunny today.",
    "I love reading interesting books in my free time.",
]

LISTENING_SENTENCES = [
    "The sun is shining brightly in the clear blue sky.",
    "Children are playing happily in the neighborhood park.",
    "The library is open from nine to five on weekdays.",
    "Students study hard to prepare for their final exams.",
    "The meeting will start at ten o'clock sharp.",
]

JUMBLED_SENTENCES = [
    "The sun shines brightly in the morning sky.",
    "Students study hard for their important exams.",
    "Children play happily in the school playground.",
    "The library opens at nine o'clock every day.",
    "Fresh vegetables are good for your health.",
]

STORY = (
    "Tom was a hardworking baker who owned a small shop in the village. Every "
    "morning he woke up before sunrise to bake fresh bread. One day a hungry old "
    "woman with no money came into his shop. Tom gave her a warm loaf and a cup of "
    "tea. She smiled and revealed that she was testing people's kindness. As a "
    "reward she blessed his bakery, and soon people traveled from far away to "
    "taste his bread."
)

PERSONAL_QUESTION = (
    "Tell me about a time when you had to explain a complex idea to someone "
    "without a technical background. How did you approach it?"
)

COMPREHENSION: dict[str, object] = {
    "passage": (
        "Technology has changed the way we communicate and work. From "
        "smartphones to cloud computing, digital tools shape nearly every part of "
        "daily life. Social media connects people across continents, while video "
        "conferencing makes remote collaboration possible. This rapid change also "
        "brings challenges such as privacy concerns, digital addiction and the "
        "need to keep learning. It is important to balance the benefits of "
        "technology with mindful use."
    ),
    "questions": [
        {
            "question": "What is the main topic of the passage?",
            "options": [
                "The history of smartphones",
                "Technology's impact on modern life",
                "Social media platforms",
                "Privacy laws",
            ],
            "correct_answer": "Technology's impact on modern life",
        },
        {
            "question": "What makes remote collaboration possible?",
            "options": [
                "Social media",
                "Smartphones",
                "Video conferencing",
                "Cloud storage",
            ],
            "correct_answer": "Video conferencing",
        },
        {
            "question": "Which challenge does the passage mention?",
            "options": [
                "High costs",
                "Limited availability",
                "Privacy concerns",
                "Slow internet",
            ],
            "correct_answer": "Privacy concerns",
        },
        {
            "question": "What does the passage recommend?",
            "options": [
                "Avoiding technology",
                "Mindful and balanced use",
                "Using technology only for work",
                "Buying the newest devices",
            ],
            "correct_answer": "Mindful and balanced use",
        },
    ],
}

FILL_BLANKS: dict[str, object] = {
    "questions": [
        {
            "question": "She _____ to the store every morning.",
            "options": ["go", "goes", "going"],
            "correct_answer": "goes",
        },
        {
            "question": "The book is _____ the table.",
            "options": ["in", "on", "at"],
            "correct_answer": "on",
        },
        {
            "question": "I have _____ apple in my bag.",
            "options": ["a", "an", "the"],
            "correct_answer": "an",
        },
        {
            "question": "They _____ finished their homework before dinner.",
            "options": ["have", "has", "had"],
            "correct_answer": "had",
        },
        {
            "question": "She speaks English _____ than her brother.",
            "options": ["good", "better", "best"],
            "correct_answer": "better",
        },
        {
            "question": "I _____ like to have some coffee, please.",
            "options": ["will", "would", "should"],
            "correct_answer": "would",
        },
    ]
}

STORY_SCORE_RANGE = (30, 85)
PERSONAL_SCORE_RANGE = (40, 85)
_DEFAULT_PRONUNCIATION = 60.0
_SHORT_RESPONSE_WORDS = 20
STRONG_STAGE_SCORE = 70
WEAK_STAGE_SCORE = 60


def fallback_content(stage: StageKind) -> dict[str, object]:
    """Return canned raw content shaped like the generator's output."""
    if stage == StageKind.READING:
        return {"sentences": list(READING_SENTENCES)}
    if stage == StageKind.LISTENING:
        return {"sentences": list(LISTENING_SENTENCES)}
    if stage == StageKind.JUMBLED:
        return {"sentences": list(JUMBLED_SENTENCES)}
    if stage == StageKind.STORY:
        return {"story": STORY}
    if stage == StageKind.PERSONAL:
        return {"question": PERSONAL_QUESTION}
    if stage == StageKind.COMPREHENSION:
        return dict(COMPREHENSION)
    return dict(FILL_BLANKS)


def heuristic_evaluation(
    stage: StageKind,
    reference: str,
    submission: str,
    pronunciation_score: float | None = None,
) -> Evaluation:
    """Score a submission without the evaluator."""
    if stage == StageKind.STORY:
        score = _keyword_overlap_score(reference, submission)
        hint = (
            "Good job identifying the main points."
            if score >= 70  # noqa: PLR2004
            else "Try to include more specific details from the story."
        )
        return Evaluation(
            score=score,
            rationale=f"Your summary captured some key elements of the story. {hint}",
        )
    words = len(submission.split())
    speech = (
        pronunciation_score
        if pronunciation_score is not None
        else _DEFAULT_PRONUNCIATION
    )
    low, high = PERSONAL_SCORE_RANGE
    score = max(low, min(high, round(words * 2 + speech * 0.5)))
    detail = (
        "Your response was brief; add examples and explanation."
        if words < _SHORT_RESPONSE_WORDS
        else "Your response addressed the question with reasonable detail."
    )
    return Evaluation(score=score, rationale=detail)


def heuristic_feedback(results: list[StageResult], overall: int) -> Feedback:
    """Summarize an attempt from its scores alone."""
    strengths = [
        f"{result.title}: {result.score}/100"
        for result in results
        if result.attempted
        and result.score is not None
        and result.score >= STRONG_STAGE_SCORE
    ]
    improvements = []
    for result in results:
        if not result.attempted or result.score is None:
            improvements.append(f"{result.title}: not attempted")
        elif result.score < WEAK_STAGE_SCORE:
            improvements.append(f"{result.title}: {result.score}/100")
    attempted = sum(1 for result in results if result.attempted)
    summary = (
        f"Overall score {overall}/100 with {attempted} of {len(results)} "
        "stages completed."
    )
    if attempted < len(results):
        summary += " Unfinished stages count as zero."
    return Feedback(summary=summary, strengths=strengths, improvements=improvements)


def _keyword_overlap_score(reference: str, submission: str) -> int:
    story_words = _significant_words(reference)
    summary_words = _significant_words(submission)
    vocabulary = set(story_words)
    matches = sum(1 for word in summary_words if word in vocabulary)
    raw = round(matches / max(len(story_words) * 0.3, 1) * 100)
    low, high = STORY_SCORE_RANGE
    return max(low, min(high, raw))


def _significant_words(text: str) -> list[str]:
    return [word for word in re.split(r"\s+", text.lower()) if len(word) > 2]
