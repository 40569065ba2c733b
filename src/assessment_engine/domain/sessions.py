"""Domain models for assessment sessions."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from assessment_engine.domain.stages import STAGE_ORDER, StageKind

STATUS_NOT_STARTED = "NOT_STARTED"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"


def empty_completion() -> dict[StageKind, bool]:
    """Return a completion map with every stage pending."""
    return {stage: False for stage in STAGE_ORDER}


@dataclass(frozen=True)
class SessionRecord:
    """Durable per-attempt state for one owner.

    ``stage_completion`` only ever moves from False to True. ``stage_data`` for a
    stage may change only while that stage is still pending.
    """

    owner_id: str
    session_id: str
    status: str
    current_stage: StageKind | None
    created_at: datetime
    last_activity: datetime
    stage_completion: dict[StageKind, bool] = field(default_factory=empty_completion)
    stage_data: dict[StageKind, dict[str, object]] = field(default_factory=dict)

    def is_complete(self, stage: StageKind) -> bool:
        return self.stage_completion.get(stage, False)

    def completed_stages(self) -> list[StageKind]:
        return [stage for stage in STAGE_ORDER if self.is_complete(stage)]

    def pending_stages(self) -> list[StageKind]:
        return [stage for stage in STAGE_ORDER if not self.is_complete(stage)]

    def is_terminated(self) -> bool:
        return self.status == STATUS_COMPLETED

    def is_expired(self, now: datetime, horizon: timedelta) -> bool:
        """Return True once the session is past its inactivity horizon."""
        return now - self.last_activity >= horizon

    def artifact_ids(self) -> set[str]:
        """Return every artifact id referenced by stage data."""
        ids: set[str] = set()
        for payload in self.stage_data.values():
            raw = payload.get("artifact_ids", [])
            if isinstance(raw, list):
                ids.update(str(item) for item in raw)
        return ids


@dataclass(frozen=True)
class SessionPatch:
    """Partial update applied to a session record.

    ``stage_completion`` entries are merged (True wins) and ``stage_data`` entries
    replace the payload for that stage only.
    """

    status: str | None = None
    current_stage: StageKind | None = None
    clear_current_stage: bool = False
    stage_completion: dict[StageKind, bool] = field(default_factory=dict)
    stage_data: dict[StageKind, dict[str, object]] = field(default_factory=dict)
