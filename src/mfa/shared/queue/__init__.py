"""Run-completion notifications over Redis Streams.

Disabled unless QUEUE_ENABLED=true; the pipeline then publishes one
envelope per finished run.

Usage:
    from mfa.shared.queue import create_queue

    queue = create_queue()
    if queue.is_available():
        queue.publish("mfa:runs", envelope)
"""

from mfa.shared.queue.factory import create_queue
from mfa.shared.queue.null_queue import NullQueue
from mfa.shared.queue.protocol import MessageQueue
from mfa.shared.queue.redis_queue import RedisStreamQueue
from mfa.shared.queue.types import (
    MessageEnvelope,
    RunCompletedMessage,
    StageCounts,
    build_envelope,
)

__all__ = [
    "create_queue",
    "MessageQueue",
    "NullQueue",
    "RedisStreamQueue",
    "MessageEnvelope",
    "RunCompletedMessage",
    "StageCounts",
    "build_envelope",
]
