"""Periodic reconciliation of expired sessions and leaked artifacts."""

import asyncio
import logging
from dataclasses import dataclass

from assessment_engine.domain.resources import SweepReport
from assessment_engine.services.resources import ResourceService
from assessment_engine.services.session_store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 30 * 60


@dataclass
class ResourceSweeper:
    """Runs the expiry and orphan sweeps on a schedule independent of users."""

    resource_service: ResourceService
    session_store: SessionStore
    interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS

    def run_once(self) -> SweepReport:
        """Run one full sweep and return what it removed."""
        expired_sessions = self.session_store.sweep_expired()
        protected = self.session_store.referenced_artifact_ids()
        expired, skipped = self.resource_service.sweep_expired(protected)
        orphaned = self.resource_service.sweep_orphaned(protected)
        return SweepReport(
            expired_artifacts=expired,
            orphaned_blobs=orphaned,
            expired_sessions=expired_sessions,
            skipped_referenced=skipped,
        )

    async def run_forever(self) -> None:
        """Sweep every interval until cancelled."""
        logger.info(
            "Artifact sweeps scheduled every %s minutes", self.interval_seconds / 60
        )
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Scheduled sweep failed")
            await asyncio.sleep(self.interval_seconds)
