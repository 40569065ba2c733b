"""Client-held cache of session progress, reconciled against the server."""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from assessment_engine.domain.stages import STAGE_ORDER
from assessment_engine.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class MirrorState:
    """Locally displayed progress for one session."""

    session_id: str
    status: str
    current_stage: str | None
    stage_completion: dict[str, bool]
    scores: dict[str, int | None]
    timer_remaining: int | None
    updated_at: str


@dataclass
class ClientProgressMirror:
    """JSON-file cache used for optimistic progress display.

    The server is authoritative for status, completion flags and scores. Only
    the timer's remaining seconds are owned locally, because the countdown runs
    on the client.
    """

    path: Path
    clock: Clock = field(default=utcnow)

    def load(self) -> MirrorState | None:
        """Return the cached state, or None when missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return MirrorState(**raw)
        except (OSError, ValueError, TypeError):
            logger.warning("Discarding unreadable progress cache", exc_info=True)
            return None

    def save(self, state: MirrorState) -> None:
        state.updated_at = self.clock().isoformat()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(asdict(state)), encoding="utf-8")
        tmp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def mark_stage_complete(self, stage: str, score: int | None = None) -> MirrorState:
        """Record an optimistic completion until the server confirms it."""
        state = self._require()
        state.stage_completion[stage] = True
        if score is not None:
            state.scores[stage] = score
        state.current_stage = next(
            (
                str(candidate)
                for candidate in STAGE_ORDER
                if not state.stage_completion.get(str(candidate))
            ),
            None,
        )
        self.save(state)
        return state

    def reconcile(self, snapshot: dict[str, object]) -> MirrorState:
        """Merge a server snapshot into the cache and persist the result."""
        local = self.load()
        session_id = str(snapshot["session_id"])
        if local is not None and local.session_id != session_id:
            logger.info("Progress cache belonged to another session; replacing it")
            local = None
        completion = snapshot.get("stage_completion") or {}
        scores = snapshot.get("scores") or {}
        if local is not None:
            _log_divergence(local, completion)
        timer_remaining = local.timer_remaining if local is not None else None
        if timer_remaining is None:
            duration = snapshot.get("duration_seconds")
            timer_remaining = duration if isinstance(duration, int) else None
        current = snapshot.get("current_stage")
        state = MirrorState(
            session_id=session_id,
            status=str(snapshot.get("status", "")),
            current_stage=str(current) if current else None,
            stage_completion={
                str(stage): bool(completion.get(str(stage), False))
                for stage in STAGE_ORDER
            },
            scores={str(stage): scores.get(str(stage)) for stage in STAGE_ORDER},
            timer_remaining=timer_remaining,
            updated_at="",
        )
        self.save(state)
        return state

    def save_remaining(self, remaining: int) -> None:
        """Persist the timer's remaining seconds; see ``TimerStateStore``."""
        state = self.load()
        if state is None:
            return
        state.timer_remaining = remaining
        self.save(state)

    def load_remaining(self) -> int | None:
        state = self.load()
        return state.timer_remaining if state is not None else None

    def _require(self) -> MirrorState:
        state = self.load()
        if state is None:
            raise LookupError("No cached session progress; reconcile first")
        return state


def _log_divergence(local: MirrorState, server: dict[str, object]) -> None:
    diverged = [
        stage
        for stage, done in local.stage_completion.items()
        if done != bool(server.get(stage, False))
    ]
    if diverged:
        logger.info(
            "Local progress differed from server; server wins",
            extra={"session_id": local.session_id, "stages": diverged},
        )
