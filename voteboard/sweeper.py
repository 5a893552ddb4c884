import asyncio
import logging

from voteboard.sql_store import SQLStore

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60


class ExpirySweeper:
    """
    Runs a continuous background loop that removes expired keys from the SQL store.
    Expired keys are already invisible to readers; this only reclaims their rows.
    """

    def __init__(self, interval_seconds: int = SWEEP_INTERVAL_SECONDS):
        self.interval_seconds = interval_seconds

    async def run(self, db_factory):
        """
        Entry point for the background task.
        db_factory: callable that returns a new SQLAlchemy Session (e.g. SessionLocal)
        """
        logger.info("ExpirySweeper started, sweeping every %ds", self.interval_seconds)
        while True:
            self.sweep(db_factory)
            await asyncio.sleep(self.interval_seconds)

    def sweep(self, db_factory) -> int:
        """Purge expired keys once. Returns how many keys were removed."""
        db = db_factory()
        try:
            return SQLStore(db).purge_expired()
        except Exception as e:
            # keep the loop alive; the next sweep retries
            logger.error(f"Expiry sweep failed: {e}")
            return 0
        finally:
            db.close()
