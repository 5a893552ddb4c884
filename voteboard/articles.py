import logging
import time
from typing import Callable, Optional

from voteboard.ranking import SCORE_ORDER, TIME_ORDER
from voteboard.schemas import Article
from voteboard.store import KeyValueStore
from voteboard.voting import VOTE_SCORE, VOTE_WINDOW_SECONDS, voted_key

logger = logging.getLogger(__name__)

ARTICLE_COUNTER = "article:"  # INCR'd to allocate ids; also the prefix of every article key


def article_key(article_id: str) -> str:
    return ARTICLE_COUNTER + str(article_id)


class ArticleRepository:
    """
    Creates articles and seeds their entries in both global orderings.
    Articles are never deleted here; the vote count is only changed by VotingLedger afterwards.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def submit(self, user: str, title: str, link: str) -> str:
        """
        Post a new article and return its id.

        The poster is recorded as having voted, so they cannot vote for their own
        article, and that record expires with the voting window. The stored vote
        count starts at 1 while the score starts one VOTE_SCORE above the
        creation time; later votes add exactly VOTE_SCORE and 1 each.

        Four separate store writes, no rollback between them. Store failures propagate.
        """
        article_id = str(self.store.next_id(ARTICLE_COUNTER))

        voted = voted_key(article_id)
        self.store.add_member(voted, user)
        self.store.expire(voted, VOTE_WINDOW_SECONDS)

        now = int(self.clock())
        article = article_key(article_id)
        self.store.put_record(article, {
            "title": title,
            "link": link,
            "poster": user,
            "time": now,
            "votes": 1,
        })

        self.store.add(SCORE_ORDER, article, now + VOTE_SCORE)
        self.store.add(TIME_ORDER, article, now)

        logger.info(f"[submit] {article} posted by '{user}': '{title[:60]}'")
        return article_id

    def get(self, key: str) -> Optional[Article]:
        """Fetch one article by its key (e.g. 'article:12'); None when it does not exist."""
        record = self.store.get_record(key)
        if not record:
            return None
        return Article(id=key, **record)
