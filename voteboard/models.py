from sqlalchemy import BigInteger, Column, Float, Index, String

from voteboard.database import Base


class StoreKey(Base):
    """
    Registry of every live key in the SQL store.
    A key exists exactly when it has a row here (and that row has not expired).
    """
    __tablename__ = "store_keys"

    name = Column(String, primary_key=True)
    kind = Column(String, nullable=False)        # "counter", "set", "zset" or "hash"
    expires_at = Column(Float, nullable=True)    # epoch seconds; NULL means the key never expires


class Counter(Base):
    __tablename__ = "store_counters"

    key = Column(String, primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)


class SetMember(Base):
    __tablename__ = "store_set_members"

    # Composite primary key is what makes "add if absent" atomic
    key = Column(String, primary_key=True)
    member = Column(String, primary_key=True)


class SortedMember(Base):
    __tablename__ = "store_sorted_members"

    key = Column(String, primary_key=True)
    member = Column(String, primary_key=True)
    score = Column(Float, nullable=False)

    __table_args__ = (Index("ix_store_sorted_members_key_score", "key", "score"),)


class RecordField(Base):
    __tablename__ = "store_record_fields"

    key = Column(String, primary_key=True)
    field = Column(String, primary_key=True)
    value = Column(String, nullable=False)       # text, like a Redis hash
