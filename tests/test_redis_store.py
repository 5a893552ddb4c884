"""
Unit tests for the Redis-backed store: mocked redis client, no server needed.

Run with: pytest tests/test_redis_store.py -v
"""
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from voteboard.redis_store import RedisStore
from voteboard.store import StoreUnavailable


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client():
    client = MagicMock()
    pipe = MagicMock()
    client.pipeline.return_value.__enter__.return_value = pipe
    # don't swallow exceptions raised inside the with-block
    client.pipeline.return_value.__exit__.return_value = False
    return client


@pytest.fixture
def redis_store(client):
    return RedisStore(client)


# ---------------------------------------------------------------------------
# Command mapping
# ---------------------------------------------------------------------------

class TestCommands:
    def test_from_url_decodes_responses(self):
        with patch("voteboard.redis_store.redis.from_url") as mock_from_url:
            RedisStore.from_url("redis://localhost:6379/0")
        mock_from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)

    def test_close_closes_client(self, redis_store, client):
        redis_store.close()
        client.close.assert_called_once()

    def test_add_uses_zadd_mapping(self, redis_store, client):
        redis_store.add("score:", "article:1", 1700000432)
        client.zadd.assert_called_once_with("score:", {"article:1": 1700000432})

    def test_bump_uses_zincrby(self, redis_store, client):
        client.zincrby.return_value = 864.0
        assert redis_store.bump("score:", "article:1", 432) == 864.0
        client.zincrby.assert_called_once_with("score:", 432, "article:1")

    def test_range_descending_uses_zrevrange(self, redis_store, client):
        client.zrevrange.return_value = ["article:2", "article:1"]
        assert redis_store.range("score:", 0, 24) == ["article:2", "article:1"]
        client.zrevrange.assert_called_once_with("score:", 0, 24)

    def test_range_ascending_uses_zrange(self, redis_store, client):
        redis_store.range("time:", 0, 9, desc=False)
        client.zrange.assert_called_once_with("time:", 0, 9)

    def test_intersect_uses_zinterstore_with_max(self, redis_store, client):
        client.zinterstore.return_value = 3
        assert redis_store.intersect("score:g", ["group:g", "score:"], aggregate="max") == 3
        client.zinterstore.assert_called_once_with("score:g", ["group:g", "score:"], aggregate="MAX")

    def test_add_member_reports_new_member(self, redis_store, client):
        client.sadd.return_value = 1
        assert redis_store.add_member("voted:1", "bob") is True
        client.sadd.return_value = 0
        assert redis_store.add_member("voted:1", "bob") is False

    def test_put_record_stores_text(self, redis_store, client):
        redis_store.put_record("article:1", {"title": "T", "votes": 1})
        client.hset.assert_called_once_with("article:1", mapping={"title": "T", "votes": "1"})

    def test_next_id_uses_incr(self, redis_store, client):
        client.incr.return_value = 7
        assert redis_store.next_id("article:") == 7

    def test_exists(self, redis_store, client):
        client.exists.return_value = 0
        assert redis_store.exists("score:g") is False

    @pytest.mark.parametrize("raw, expected", [(-2, None), (-1, None), (42, 42)])
    def test_ttl_maps_negative_codes_to_none(self, redis_store, client, raw, expected):
        client.ttl.return_value = raw
        assert redis_store.ttl("score:g") == expected

    def test_purge_is_left_to_redis(self, redis_store, client):
        assert redis_store.purge_expired() == 0
        client.delete.assert_not_called()


# ---------------------------------------------------------------------------
# Atomic batches and failures
# ---------------------------------------------------------------------------

class TestAtomic:
    def test_batch_queues_on_transactional_pipeline(self, redis_store, client):
        pipe = client.pipeline.return_value.__enter__.return_value

        with redis_store.atomic() as batch:
            batch.bump("score:", "article:1", 432)
            batch.bump_field("article:1", "votes", 1)

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.zincrby.assert_called_once_with("score:", 432, "article:1")
        pipe.hincrby.assert_called_once_with("article:1", "votes", 1)
        pipe.execute.assert_called_once()

    def test_failed_batch_is_not_executed(self, redis_store, client):
        pipe = client.pipeline.return_value.__enter__.return_value

        with pytest.raises(RuntimeError):
            with redis_store.atomic() as batch:
                batch.bump("score:", "article:1", 432)
                raise RuntimeError("crash between the two bumps")

        pipe.execute.assert_not_called()

    @pytest.mark.parametrize("error", [RedisConnectionError("refused"), RedisTimeoutError("slow")])
    def test_connection_errors_raise_store_unavailable(self, redis_store, client, error):
        client.zscore.side_effect = error
        with pytest.raises(StoreUnavailable):
            redis_store.score("time:", "article:1")

    def test_failed_exec_raises_store_unavailable(self, redis_store, client):
        pipe = client.pipeline.return_value.__enter__.return_value
        pipe.execute.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailable):
            with redis_store.atomic() as batch:
                batch.bump("score:", "article:1", 432)
