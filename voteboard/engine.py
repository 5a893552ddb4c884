import time
from functools import lru_cache
from typing import Callable, Iterator

from fastapi import Depends

from voteboard.articles import ArticleRepository
from voteboard.config import settings
from voteboard.database import SessionLocal
from voteboard.groups import GroupView
from voteboard.ranking import RankingIndex
from voteboard.redis_store import RedisStore
from voteboard.sql_store import SQLStore
from voteboard.store import KeyValueStore
from voteboard.voting import VotingLedger


class RankingEngine:
    """The four ranking components wired over one store and one clock."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.articles = ArticleRepository(store, clock)
        self.voting = VotingLedger(store, clock)
        self.ranking = RankingIndex(store)
        self.groups = GroupView(store, self.ranking)


@lru_cache
def get_redis_store() -> RedisStore:
    """One Redis client (and connection pool) for the whole process."""
    return RedisStore.from_url(settings.redis_url)


def close_redis_store() -> None:
    """Release the shared Redis client, if one was ever created."""
    if get_redis_store.cache_info().currsize:
        get_redis_store().close()
        get_redis_store.cache_clear()


def get_store() -> Iterator[KeyValueStore]:
    """
    FastAPI dependency: the store selected by VOTEBOARD_STORE_BACKEND.
    Only the SQL backend opens a session, one per request, closed afterwards.
    """
    if settings.store_backend == "redis":
        yield get_redis_store()
        return
    db = SessionLocal()
    try:
        yield SQLStore(db)
    finally:
        db.close()


def get_engine(store: KeyValueStore = Depends(get_store)) -> RankingEngine:
    return RankingEngine(store)
