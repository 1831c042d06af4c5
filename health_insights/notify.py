from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from .models import EngineEvent

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, event: EngineEvent) -> None: ...


class LogNotifier:
    """Writes events to the log. Used when no push transport is configured."""

    def send(self, event: EngineEvent) -> None:
        logger.info("notify user=%s kind=%s: %s", event.user_id, event.kind, event.message)


def dispatch(notifier: Optional[Notifier], events: Iterable[EngineEvent]) -> int:
    """Deliver events best-effort; a failing notifier never fails the caller.

    Returns the number of events delivered.
    """
    if notifier is None:
        return 0
    delivered = 0
    for ev in events:
        try:
            notifier.send(ev)
            delivered += 1
        except Exception:
            logger.warning("notifier failed for %s (%s)", ev.kind, ev.user_id, exc_info=True)
    return delivered
