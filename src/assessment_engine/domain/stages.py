"""Stage identifiers and their fixed order."""

from enum import StrEnum


class StageKind(StrEnum):
    """The seven independently scored sub-assessments."""

    READING = "reading"
    LISTENING = "listening"
    JUMBLED = "jumbled"
    STORY = "story"
    PERSONAL = "personal"
    COMPREHENSION = "comprehension"
    FILL_BLANKS = "fillblanks"


STAGE_ORDER: tuple[StageKind, ...] = (
    StageKind.READING,
    StageKind.LISTENING,
    StageKind.JUMBLED,
    StageKind.STORY,
    StageKind.PERSONAL,
    StageKind.COMPREHENSION,
    StageKind.FILL_BLANKS,
)

STAGE_COUNT = len(STAGE_ORDER)

STAGE_TITLES: dict[StageKind, str] = {
    StageKind.READING: "Reading Ability",
    StageKind.LISTENING: "Listening Ability",
    StageKind.JUMBLED: "Jumbled Sentences",
    StageKind.STORY: "Story Summarization",
    StageKind.PERSONAL: "Personal Questions",
    StageKind.COMPREHENSION: "Reading Comprehension",
    StageKind.FILL_BLANKS: "Fill in the Blanks",
}


def parse_stage(raw: str) -> StageKind | None:
    """Return the stage for a wire value, if it names one."""
    try:
        return StageKind(raw.strip().lower())
    except ValueError:
        return None
