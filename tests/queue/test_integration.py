"""Integration tests for queue module (requires Redis)."""

import json

import pytest


def is_redis_available():
    """Check if Redis is available on localhost:6379."""
    try:
        import redis
        client = redis.from_url("redis://localhost:6379")
        client.ping()
        return True
    except Exception:
        return False


# Skip all tests in this module if Redis is not available
pytestmark = pytest.mark.skipif(
    not is_redis_available(),
    reason="Redis not available on localhost:6379"
)


@pytest.fixture
def redis_client():
    """Create a Redis client and clean up test streams."""
    import redis
    client = redis.from_url("redis://localhost:6379")
    yield client
    for key in client.keys("test:*"):
        client.delete(key)


class TestRedisStreamQueue:
    """Integration tests for RedisStreamQueue."""

    def test_publish_and_read(self, redis_client):
        """Message can be published and read from Redis."""
        from mfa.shared.queue.redis_queue import RedisStreamQueue

        queue = RedisStreamQueue("redis://localhost:6379")
        assert queue.is_available() is True

        msg_id = queue.publish("test:publish", {"run_id": "r1", "query": "规划"})
        assert msg_id is not None

        result = redis_client.xrange("test:publish", "-", "+", count=1)
        assert len(result) == 1
        stored = json.loads(result[0][1][b"data"].decode())
        assert stored == {"run_id": "r1", "query": "规划"}

    def test_connection_failure_raises(self):
        """ConnectionError raised when Redis unavailable."""
        import redis
        from mfa.shared.queue.redis_queue import RedisStreamQueue

        queue = RedisStreamQueue("redis://localhost:9999")
        with pytest.raises(redis.exceptions.ConnectionError):
            queue.publish("test:fail", {"data": "x"})


class TestPipelineNotification:
    """A finished run publishes its summary."""

    def test_run_publishes_summary(self, redis_client, tmp_path):
        from conftest import FakeInference, make_item

        from mfa.config import PipelineConfig
        from mfa.pipeline import ExtractionPipeline
        from mfa.shared.logger import PipelineLogger
        from mfa.shared.queue.redis_queue import RedisStreamQueue

        config = PipelineConfig(backoff_base=0.0, output_dir=str(tmp_path), queue_stream="test:runs")
        queue = RedisStreamQueue("redis://localhost:6379")
        with ExtractionPipeline(
            FakeInference(), config, queue=queue, log=PipelineLogger(console=False)
        ) as pipeline:
            result = pipeline.run([make_item(1, source="A")], query="parks")

        entries = redis_client.xrange("test:runs", "-", "+")
        envelope = json.loads(entries[-1][1][b"data"].decode())
        assert envelope["payload"]["run_id"] == result.run_id
        assert envelope["payload"]["stages"]["extraction"]["succeeded"] == 1
