import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import Integer, String, cast, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from voteboard.models import Counter, RecordField, SetMember, SortedMember, StoreKey
from voteboard.store import Batch, KeyValueStore, StoreUnavailable

logger = logging.getLogger(__name__)

# Score aggregation modes accepted by intersect()
AGGREGATES: Dict[str, Callable[[float, float], float]] = {
    "max": max,
    "min": min,
    "sum": lambda a, b: a + b,
}

# Every table that holds data for a key, used when a key is dropped
DATA_TABLES = (Counter, SetMember, SortedMember, RecordField)

# INSERT ... ON CONFLICT builders, by dialect name
INSERT_BUILDERS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class _SQLBatch(Batch):
    """Writes issued on the store's session while atomic() holds the transaction open."""

    def __init__(self, store: "SQLStore"):
        self._store = store

    def bump(self, key: str, member: str, delta: float) -> None:
        self._store._bump(key, member, delta)

    def bump_field(self, key: str, field: str, amount: int) -> None:
        self._store._bump_field(key, field, amount)


class SQLStore(KeyValueStore):
    """
    KeyValueStore on top of a SQLAlchemy session.

    Expiry is plain data: each key's row in store_keys carries an expires_at
    timestamp. Any command touching a key first drops it if it is past that
    timestamp, and purge_expired() sweeps keys nobody reads any more.

    Each public method runs in its own transaction and commits before
    returning; atomic() instead keeps one transaction open for the whole block.

    Rows are only ever created with INSERT ... ON CONFLICT, so sessions racing
    to create the same key, member or counter never fail on the primary key.
    Needs a SQLite or PostgreSQL database.
    """

    def __init__(self, db: Session, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock
        self._in_batch = False

    # ---------------------------------------------------------------------------
    # Transactions
    # ---------------------------------------------------------------------------

    @contextmanager
    def _command(self):
        if self._in_batch:
            # the enclosing atomic() block commits or rolls back
            yield
            return
        try:
            yield
            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            logger.error(f"[sql-store] Database unavailable: {e}")
            raise StoreUnavailable(str(e)) from e
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def atomic(self):
        with self._command():
            self._in_batch = True
            try:
                yield _SQLBatch(self)
            finally:
                self._in_batch = False

    # ---------------------------------------------------------------------------
    # Insert-if-absent
    # ---------------------------------------------------------------------------

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect not in INSERT_BUILDERS:
            raise NotImplementedError(f"SQLStore does not support the '{dialect}' dialect")
        return INSERT_BUILDERS[dialect](model.__table__)

    def _insert_missing(self, model, **values) -> bool:
        """Insert one row unless its primary key is taken. True when this call inserted it."""
        stmt = self._insert(model).values(**values).on_conflict_do_nothing()
        return self.db.execute(stmt).rowcount == 1

    def _upsert(self, model, keys: Sequence[str], **values) -> None:
        """Insert one row, or overwrite the non-key columns of the row already there."""
        stmt = self._insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(keys),
            set_={column: stmt.excluded[column] for column in values if column not in keys},
        )
        self.db.execute(stmt)

    # ---------------------------------------------------------------------------
    # Key registry helpers
    # ---------------------------------------------------------------------------

    def _delete_data(self, name: str) -> None:
        for table in DATA_TABLES:
            self.db.execute(delete(table).where(table.key == name))
        self.db.expire_all()

    def _drop(self, name: str) -> None:
        self.db.execute(delete(StoreKey).where(StoreKey.name == name))
        self._delete_data(name)

    def _drop_expired(self, name: str) -> bool:
        """Drop name only if it is still past its expiry. False when another session recreated it."""
        result = self.db.execute(
            delete(StoreKey.__table__).where(
                StoreKey.name == name,
                StoreKey.expires_at.is_not(None),
                StoreKey.expires_at <= self.clock(),
            )
        )
        if result.rowcount == 0:
            return False
        self._delete_data(name)
        return True

    def _live_key(self, name: str, kind: Optional[str] = None) -> Optional[StoreKey]:
        """The registry row for name, or None when it is missing or has just expired."""
        key = self.db.get(StoreKey, name)
        if key is None:
            return None
        if key.expires_at is not None and key.expires_at <= self.clock():
            logger.debug(f"[sql-store] Key '{name}' expired, dropping it")
            self._drop_expired(name)
            return None
        if kind is not None and key.kind != kind:
            raise TypeError(f"Key '{name}' holds a {key.kind}, not a {kind}")
        return key

    def _touch(self, name: str, kind: str) -> StoreKey:
        """Return the live registry row for name, creating it when absent."""
        key = self._live_key(name, kind)
        if key is not None:
            return key
        self._insert_missing(StoreKey, name=name, kind=kind, expires_at=None)
        # either our row or the one a concurrent session created first
        key = self.db.get(StoreKey, name, populate_existing=True)
        if key.kind != kind:
            raise TypeError(f"Key '{name}' holds a {key.kind}, not a {kind}")
        return key

    # ---------------------------------------------------------------------------
    # Sorted index
    # ---------------------------------------------------------------------------

    def add(self, key: str, member: str, score: float) -> None:
        with self._command():
            self._touch(key, "zset")
            self._upsert(SortedMember, ("key", "member"), key=key, member=member, score=float(score))

    def _bump(self, key: str, member: str, delta: float) -> float:
        self._touch(key, "zset")
        self._insert_missing(SortedMember, key=key, member=member, score=0.0)
        # increment happens inside the database, never read-modify-write from here
        self.db.execute(
            update(SortedMember)
            .where(SortedMember.key == key, SortedMember.member == member)
            .values(score=SortedMember.score + delta)
            .execution_options(synchronize_session=False)
        )
        return self.db.scalar(
            select(SortedMember.score).where(SortedMember.key == key, SortedMember.member == member)
        )

    def bump(self, key: str, member: str, delta: float) -> float:
        with self._command():
            return self._bump(key, member, delta)

    def score(self, key: str, member: str) -> Optional[float]:
        with self._command():
            if self._live_key(key, "zset") is None:
                return None
            return self.db.scalar(
                select(SortedMember.score).where(SortedMember.key == key, SortedMember.member == member)
            )

    def range(self, key: str, start: int, end: int, desc: bool = True) -> List[str]:
        with self._command():
            if self._live_key(key, "zset") is None:
                return []

            # negative indexes count from the end, as in Redis
            if start < 0 or end < 0:
                size = self.db.scalar(
                    select(func.count()).select_from(SortedMember).where(SortedMember.key == key)
                )
                start = max(start + size, 0) if start < 0 else start
                end = end + size if end < 0 else end
            if end < start:
                return []

            if desc:
                order = (SortedMember.score.desc(), SortedMember.member.desc())
            else:
                order = (SortedMember.score.asc(), SortedMember.member.asc())

            return list(self.db.scalars(
                select(SortedMember.member)
                .where(SortedMember.key == key)
                .order_by(*order)
                .offset(start)
                .limit(end - start + 1)
            ))

    def _scores_of(self, name: str) -> Dict[str, float]:
        key = self._live_key(name)
        if key is None:
            return {}
        if key.kind == "set":
            members = self.db.scalars(select(SetMember.member).where(SetMember.key == name))
            return {member: 1.0 for member in members}
        if key.kind == "zset":
            rows = self.db.execute(
                select(SortedMember.member, SortedMember.score).where(SortedMember.key == name)
            )
            return {member: score for member, score in rows}
        raise TypeError(f"Key '{name}' holds a {key.kind}, which cannot be intersected")

    def intersect(self, dest: str, keys: Iterable[str], aggregate: str = "max") -> int:
        combine = AGGREGATES[aggregate.lower()]
        keys = list(keys)
        if not keys:
            raise ValueError("intersect() needs at least one source key")

        with self._command():
            merged = self._scores_of(keys[0])
            for name in keys[1:]:
                scores = self._scores_of(name)
                merged = {
                    member: combine(merged[member], score)
                    for member, score in scores.items()
                    if member in merged
                }

            # dest is replaced outright, including any expiry it carried
            self._drop(dest)
            if not merged:
                return 0

            self._touch(dest, "zset")
            for member, score in merged.items():
                self._upsert(SortedMember, ("key", "member"), key=dest, member=member, score=score)
            return len(merged)

    # ---------------------------------------------------------------------------
    # Sets
    # ---------------------------------------------------------------------------

    def add_member(self, key: str, member: str) -> bool:
        with self._command():
            self._touch(key, "set")
            # the composite primary key decides which of two racing sessions wins
            return self._insert_missing(SetMember, key=key, member=member)

    def remove_member(self, key: str, member: str) -> bool:
        with self._command():
            if self._live_key(key, "set") is None:
                return False
            result = self.db.execute(
                delete(SetMember)
                .where(SetMember.key == key, SetMember.member == member)
                .execution_options(synchronize_session=False)
            )
            remaining = self.db.scalar(
                select(func.count()).select_from(SetMember).where(SetMember.key == key)
            )
            # empty sets stop existing
            if remaining == 0:
                self._drop(key)
            return result.rowcount > 0

    def is_member(self, key: str, member: str) -> bool:
        with self._command():
            if self._live_key(key, "set") is None:
                return False
            return self.db.get(SetMember, (key, member)) is not None

    # ---------------------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------------------

    def put_record(self, key: str, mapping: Mapping[str, object]) -> None:
        with self._command():
            self._touch(key, "hash")
            for field, value in mapping.items():
                self._upsert(RecordField, ("key", "field"), key=key, field=field, value=str(value))

    def get_record(self, key: str) -> Dict[str, str]:
        with self._command():
            if self._live_key(key, "hash") is None:
                return {}
            rows = self.db.execute(
                select(RecordField.field, RecordField.value).where(RecordField.key == key)
            )
            return {field: value for field, value in rows}

    def _bump_field(self, key: str, field: str, amount: int) -> int:
        self._touch(key, "hash")
        self._insert_missing(RecordField, key=key, field=field, value="0")
        self.db.execute(
            update(RecordField)
            .where(RecordField.key == key, RecordField.field == field)
            .values(value=cast(cast(RecordField.value, Integer) + amount, String))
            .execution_options(synchronize_session=False)
        )
        return int(self.db.scalar(
            select(RecordField.value).where(RecordField.key == key, RecordField.field == field)
        ))

    def bump_field(self, key: str, field: str, amount: int) -> int:
        with self._command():
            return self._bump_field(key, field, amount)

    # ---------------------------------------------------------------------------
    # Keyspace
    # ---------------------------------------------------------------------------

    def next_id(self, counter_key: str) -> int:
        with self._command():
            self._touch(counter_key, "counter")
            self._insert_missing(Counter, key=counter_key, value=0)
            self.db.execute(
                update(Counter)
                .where(Counter.key == counter_key)
                .values(value=Counter.value + 1)
                .execution_options(synchronize_session=False)
            )
            return self.db.scalar(select(Counter.value).where(Counter.key == counter_key))

    def exists(self, key: str) -> bool:
        with self._command():
            return self._live_key(key) is not None

    def expire(self, key: str, seconds: int) -> bool:
        with self._command():
            row = self._live_key(key)
            if row is None:
                return False
            if seconds <= 0:
                self._drop(key)
                return True
            row.expires_at = self.clock() + seconds
            self.db.flush()
            return True

    def ttl(self, key: str) -> Optional[int]:
        with self._command():
            row = self._live_key(key)
            if row is None or row.expires_at is None:
                return None
            return max(0, int(round(row.expires_at - self.clock())))

    def purge_expired(self) -> int:
        with self._command():
            names = self.db.scalars(
                select(StoreKey.name).where(
                    StoreKey.expires_at.is_not(None),
                    StoreKey.expires_at <= self.clock(),
                )
            ).all()
            purged = sum(1 for name in names if self._drop_expired(name))
        if purged:
            logger.info(f"[sql-store] Purged {purged} expired keys")
        return purged
