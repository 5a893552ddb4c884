from typing import List

from voteboard.schemas import Article
from voteboard.store import KeyValueStore

SCORE_ORDER = "score:"   # articles by creation time + VOTE_SCORE per vote
TIME_ORDER = "time:"     # articles by creation time
ARTICLES_PER_PAGE = 25


class RankingIndex:
    """Reads pages of articles, highest score first, from an ordering key."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def page(self, order: str, page: int, page_size: int = ARTICLES_PER_PAGE) -> List[Article]:
        """
        Return page number `page` (1-based) of `order`, which may be a global
        ordering or a cached group ordering. Pages past the end are empty.
        """
        start = (page - 1) * page_size
        end = start + page_size - 1

        articles = []
        for key in self.store.range(order, start, end, desc=True):
            record = self.store.get_record(key)
            articles.append(Article(id=key, **record))
        return articles
