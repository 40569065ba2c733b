"""Best-effort force-submit notification sent when the client goes away."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT_SECONDS = 3.0


@dataclass
class ForceSubmitNotifier:
    """Sends at most one force-submit signal per session.

    Delivery is never assumed: failures are logged and dropped, and the
    server-side session expiry and sweeps are the backstop.
    """

    session_id: str
    send: Callable[[str, str], Awaitable[object]]
    timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS
    _sent: bool = field(default=False, init=False)
    _pending: set[asyncio.Task[bool]] = field(default_factory=set, init=False)

    @property
    def sent(self) -> bool:
        return self._sent

    async def notify(self, reason: str) -> bool:
        """Send the signal once; return True only if this call delivered it."""
        if self._sent:
            return False
        self._sent = True
        try:
            await asyncio.wait_for(
                self.send(self.session_id, reason), timeout=self.timeout_seconds
            )
        except Exception:
            logger.exception(
                "Force submit notification dropped",
                extra={"session_id": self.session_id, "reason": reason},
            )
            return False
        return True

    def fire(self, reason: str) -> None:
        """Schedule ``notify`` without waiting for it."""
        if self._sent:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; force submit notification dropped",
                extra={"session_id": self.session_id, "reason": reason},
            )
            self._sent = True
            return
        task = loop.create_task(self.notify(reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
