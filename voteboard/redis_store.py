import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Mapping, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from voteboard.store import Batch, KeyValueStore, StoreUnavailable

logger = logging.getLogger(__name__)


class _RedisBatch(Batch):
    """Queues commands on a MULTI/EXEC pipeline."""

    def __init__(self, pipe):
        self._pipe = pipe

    def bump(self, key: str, member: str, delta: float) -> None:
        self._pipe.zincrby(key, delta, member)

    def bump_field(self, key: str, field: str, amount: int) -> None:
        self._pipe.hincrby(key, field, amount)


class RedisStore(KeyValueStore):
    """
    KeyValueStore backed by a Redis server. Every method maps onto a single
    Redis command, so per-call atomicity and key expiry come from Redis itself.
    The client must be created with decode_responses=True.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(redis.from_url(url, decode_responses=True))

    def close(self) -> None:
        self.client.close()

    @contextmanager
    def _command(self):
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(f"[redis-store] Redis unavailable: {e}")
            raise StoreUnavailable(str(e)) from e

    @contextmanager
    def atomic(self):
        with self._command(), self.client.pipeline(transaction=True) as pipe:
            yield _RedisBatch(pipe)
            pipe.execute()

    # ---------------------------------------------------------------------------
    # Sorted index
    # ---------------------------------------------------------------------------

    def add(self, key: str, member: str, score: float) -> None:
        with self._command():
            self.client.zadd(key, {member: score})

    def bump(self, key: str, member: str, delta: float) -> float:
        with self._command():
            return float(self.client.zincrby(key, delta, member))

    def score(self, key: str, member: str) -> Optional[float]:
        with self._command():
            return self.client.zscore(key, member)

    def range(self, key: str, start: int, end: int, desc: bool = True) -> List[str]:
        with self._command():
            if desc:
                return self.client.zrevrange(key, start, end)
            return self.client.zrange(key, start, end)

    def intersect(self, dest: str, keys: Iterable[str], aggregate: str = "max") -> int:
        with self._command():
            return self.client.zinterstore(dest, list(keys), aggregate=aggregate.upper())

    # ---------------------------------------------------------------------------
    # Sets
    # ---------------------------------------------------------------------------

    def add_member(self, key: str, member: str) -> bool:
        with self._command():
            return self.client.sadd(key, member) == 1

    def remove_member(self, key: str, member: str) -> bool:
        with self._command():
            return self.client.srem(key, member) == 1

    def is_member(self, key: str, member: str) -> bool:
        with self._command():
            return bool(self.client.sismember(key, member))

    # ---------------------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------------------

    def put_record(self, key: str, mapping: Mapping[str, object]) -> None:
        with self._command():
            self.client.hset(key, mapping={field: str(value) for field, value in mapping.items()})

    def get_record(self, key: str) -> Dict[str, str]:
        with self._command():
            return self.client.hgetall(key)

    def bump_field(self, key: str, field: str, amount: int) -> int:
        with self._command():
            return self.client.hincrby(key, field, amount)

    # ---------------------------------------------------------------------------
    # Keyspace
    # ---------------------------------------------------------------------------

    def next_id(self, counter_key: str) -> int:
        with self._command():
            return self.client.incr(counter_key)

    def exists(self, key: str) -> bool:
        with self._command():
            return self.client.exists(key) == 1

    def expire(self, key: str, seconds: int) -> bool:
        with self._command():
            return bool(self.client.expire(key, seconds))

    def ttl(self, key: str) -> Optional[int]:
        with self._command():
            remaining = self.client.ttl(key)
        # -2: no such key, -1: key without expiry
        return remaining if remaining >= 0 else None

    def purge_expired(self) -> int:
        # Redis evicts expired keys itself
        return 0
