"""No-op queue used when notifications are disabled (the default)."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class NullQueue:
    """Satisfies MessageQueue but drops every message."""

    def publish(self, stream: str, message: dict) -> str | None:
        logger.debug("[NullQueue] Dropping run notification for stream '%s'", stream)
        return None

    def is_available(self) -> bool:
        return False
