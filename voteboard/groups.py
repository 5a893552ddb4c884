import logging
from typing import Iterable, List, Optional

from voteboard.articles import article_key
from voteboard.ranking import SCORE_ORDER, RankingIndex
from voteboard.schemas import Article
from voteboard.store import KeyValueStore

logger = logging.getLogger(__name__)

GROUP_CACHE_SECONDS = 60  # how long a group's cached ordering may go stale


def group_key(group: str) -> str:
    return "group:" + group


class GroupView:
    """
    Named groups of articles, ranked by intersecting the group's members with a
    global ordering. The intersection is cached for GROUP_CACHE_SECONDS and is
    not refreshed early when votes or memberships change.
    """

    def __init__(self, store: KeyValueStore, ranking: RankingIndex):
        self.store = store
        self.ranking = ranking

    def add_to_groups(self, article_id: str, groups: Iterable[str]) -> None:
        article = article_key(article_id)
        for group in groups:
            self.store.add_member(group_key(group), article)

    def remove_from_groups(self, article_id: str, groups: Iterable[str]) -> None:
        article = article_key(article_id)
        for group in groups:
            self.store.remove_member(group_key(group), article)

    def group_page(self, group: str, page: int, order: str = SCORE_ORDER) -> List[Article]:
        key = order + group
        if not self.store.exists(key):
            # Two readers may both rebuild an expired key; they write the same result
            count = self.store.intersect(key, [group_key(group), order], aggregate="max")
            self.store.expire(key, GROUP_CACHE_SECONDS)
            logger.debug(f"[groups] Rebuilt {key} with {count} articles")
        return self.ranking.page(key, page)

    def cache_ttl(self, group: str, order: str = SCORE_ORDER) -> Optional[int]:
        """Seconds until the group's cached ordering is rebuilt, or None when nothing is cached."""
        return self.store.ttl(order + group)
