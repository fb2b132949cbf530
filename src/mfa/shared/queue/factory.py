"""Queue factory driven by environment variables.

Environment Variables:
    QUEUE_ENABLED: "true" to publish run notifications to Redis, "false" (default) for NullQueue
    QUEUE_URL: Redis URL (default: "redis://localhost:6379")
"""

from __future__ import annotations

import logging
import os

from mfa.shared.queue.null_queue import NullQueue
from mfa.shared.queue.protocol import MessageQueue

logger = logging.getLogger(__name__)


def create_queue() -> MessageQueue:
    """Return a NullQueue unless QUEUE_ENABLED=true, then a RedisStreamQueue."""
    enabled = os.environ.get("QUEUE_ENABLED", "false").lower() == "true"

    if not enabled:
        logger.debug("[Queue] QUEUE_ENABLED=false, using NullQueue")
        return NullQueue()

    url = os.environ.get("QUEUE_URL", "redis://localhost:6379")
    logger.info("[Queue] QUEUE_ENABLED=true, publishing to %s", url)

    from mfa.shared.queue.redis_queue import RedisStreamQueue
    return RedisStreamQueue(url)
