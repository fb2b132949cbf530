"""Redis Streams publisher for run-completion notifications.

Each notification is stored as one JSON ``data`` field via XADD on a
length-capped stream. Connection problems surface as redis errors.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis

logger = logging.getLogger(__name__)

DEFAULT_MAXLEN = 1000


class RedisStreamQueue:
    """Publish notifications with XADD, probing the connection lazily."""

    def __init__(self, url: str = "redis://localhost:6379", maxlen: int = DEFAULT_MAXLEN) -> None:
        self._url = url
        self._maxlen = maxlen
        self._client: redis.Redis | None = None
        self._connected: bool | None = None  # None = not yet probed

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

        if self._connected is None:
            try:
                self._client.ping()
                self._connected = True
                logger.info("[RedisQueue] Connected to %s", self._url)
            except redis.exceptions.RedisError:
                self._connected = False
                raise

        return self._client

    def publish(self, stream: str, message: dict) -> str | None:
        """XADD ``message`` to ``stream`` and return the Redis message ID."""
        client = self._get_client()
        msg_id: Any = client.xadd(
            stream,
            {"data": json.dumps(message, ensure_ascii=False)},
            maxlen=self._maxlen,
            approximate=True,
        )
        logger.debug("[RedisQueue] Published to %s: %s", stream, msg_id)
        return str(msg_id)

    def is_available(self) -> bool:
        try:
            self._get_client().ping()
            return True
        except redis.exceptions.RedisError as e:
            logger.warning("[RedisQueue] Unavailable at %s: %s", self._url, e)
            return False
