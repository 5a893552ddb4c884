import logging
import time
from typing import Callable

from voteboard.ranking import SCORE_ORDER, TIME_ORDER
from voteboard.store import KeyValueStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Voting rules
# ---------------------------------------------------------------------------

VOTE_WINDOW_SECONDS = 7 * 86400  # articles older than a week are frozen
VOTE_SCORE = 432                 # 86400 / 200: 200 votes lift an article by one day


def voted_key(article_id: str) -> str:
    """Set of users who already voted for the article."""
    return "voted:" + str(article_id)


class VotingLedger:
    """Applies each user's vote at most once per article, while the article is inside its voting window."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def vote(self, user: str, article: str) -> bool:
        """
        Cast user's vote for article (a key such as 'article:12').

        Returns True when the vote counted. Votes on unknown or expired articles
        and repeat votes are ignored and return False.
        """
        cutoff = self.clock() - VOTE_WINDOW_SECONDS
        posted = self.store.score(TIME_ORDER, article)
        if posted is None or posted < cutoff:
            logger.debug(f"[vote] Ignoring vote by '{user}' on closed or unknown {article}")
            return False

        article_id = article.partition(":")[-1]

        # the set add decides, so two racing votes from one user bump only once
        if not self.store.add_member(voted_key(article_id), user):
            logger.debug(f"[vote] '{user}' already voted on {article}")
            return False

        with self.store.atomic() as batch:
            batch.bump(SCORE_ORDER, article, VOTE_SCORE)
            batch.bump_field(article, "votes", 1)

        logger.info(f"[vote] '{user}' voted for {article}")
        return True

    def has_voted(self, user: str, article: str) -> bool:
        """
        Whether user's vote (or submission) is on record for article. Records
        are dropped when the voting window closes, so this is False afterwards.
        """
        article_id = article.partition(":")[-1]
        return self.store.is_member(voted_key(article_id), user)
