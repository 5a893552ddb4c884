from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Dict, Iterable, List, Mapping, Optional


class StoreUnavailable(Exception):
    """The backing store could not be reached or failed mid-command. Never recovered locally."""


# ---------------------------------------------------------------------------
# Atomic batch: the subset of writes that must land together
# ---------------------------------------------------------------------------

class Batch(ABC):
    """
    Writes queued inside KeyValueStore.atomic(). Either every queued write is
    applied when the block exits, or none is (the block raised).
    """

    @abstractmethod
    def bump(self, key: str, member: str, delta: float) -> None:
        pass

    @abstractmethod
    def bump_field(self, key: str, field: str, amount: int) -> None:
        pass


# ---------------------------------------------------------------------------
# Sorted index capability: ordered collections of (member, score)
# ---------------------------------------------------------------------------

class SortedIndex(ABC):

    @abstractmethod
    def add(self, key: str, member: str, score: float) -> None:
        """Insert member at score, overwriting any previous score."""
        pass

    @abstractmethod
    def bump(self, key: str, member: str, delta: float) -> float:
        """Atomically add delta to member's score (missing members start at 0). Returns the new score."""
        pass

    @abstractmethod
    def score(self, key: str, member: str) -> Optional[float]:
        pass

    @abstractmethod
    def range(self, key: str, start: int, end: int, desc: bool = True) -> List[str]:
        """
        Members ranked start..end inclusive (zero-based). Descending order breaks
        score ties by member descending, ascending order by member ascending.
        """
        pass

    @abstractmethod
    def intersect(self, dest: str, keys: Iterable[str], aggregate: str = "max") -> int:
        """
        Replace dest with the members common to all keys. Keys may be sorted
        indexes or plain sets (set members count as score 1). Overlapping scores
        are combined with aggregate ("max", "min" or "sum"). An empty result
        leaves dest absent. Returns the number of members stored.
        """
        pass


# ---------------------------------------------------------------------------
# Full collaborator contract
# ---------------------------------------------------------------------------

class KeyValueStore(SortedIndex):
    """
    Everything the ranking engine needs from its backing store.
    Every method is atomic on its own; atomic() groups the writes that must
    not be observed half-applied.
    """

    # --- sets ---

    @abstractmethod
    def add_member(self, key: str, member: str) -> bool:
        """Add member to the set at key. True only if it was not already present."""
        pass

    @abstractmethod
    def remove_member(self, key: str, member: str) -> bool:
        pass

    @abstractmethod
    def is_member(self, key: str, member: str) -> bool:
        pass

    # --- records ---

    @abstractmethod
    def put_record(self, key: str, mapping: Mapping[str, object]) -> None:
        """Write every field of mapping in a single call. Values are stored as text."""
        pass

    @abstractmethod
    def get_record(self, key: str) -> Dict[str, str]:
        """All fields of the record at key, or an empty dict when it does not exist."""
        pass

    @abstractmethod
    def bump_field(self, key: str, field: str, amount: int) -> int:
        pass

    # --- keyspace ---

    @abstractmethod
    def next_id(self, counter_key: str) -> int:
        """Increment the counter at counter_key and return the new value (first call returns 1)."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def expire(self, key: str, seconds: int) -> bool:
        """Schedule key for removal after seconds. False when the key does not exist."""
        pass

    @abstractmethod
    def ttl(self, key: str) -> Optional[int]:
        """Seconds left before key expires, or None when it does not exist or never expires."""
        pass

    @abstractmethod
    def purge_expired(self) -> int:
        """Remove every key past its expiry. Returns how many keys were removed."""
        pass

    @abstractmethod
    def atomic(self) -> AbstractContextManager[Batch]:
        pass
