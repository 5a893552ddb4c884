import logging
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from voteboard.articles import article_key
from voteboard.engine import RankingEngine, get_engine
from voteboard.ranking import SCORE_ORDER, TIME_ORDER
from voteboard.schemas import (
    Article,
    ArticleCreated,
    ArticleSubmit,
    GroupChange,
    VoteCast,
    VoteResult,
    VoteStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ORDERS = {"score": SCORE_ORDER, "time": TIME_ORDER}


def require_article(engine: RankingEngine, article_id: str) -> Article:
    article = engine.articles.get(article_key(article_id))
    if article is None:
        raise HTTPException(status_code=404, detail=f"Article {article_id} not found")
    return article


@router.post("/articles", response_model=ArticleCreated, status_code=201)
def submit(body: ArticleSubmit, engine: RankingEngine = Depends(get_engine)):
    """Post a new article. The poster's own vote is recorded immediately."""
    article_id = engine.articles.submit(body.user, body.title, body.link)
    return ArticleCreated(id=article_id, key=article_key(article_id))


@router.get("/articles", response_model=List[Article])
def list_articles(
    order: Literal["score", "time"] = "score",
    page: int = Query(1, ge=1),
    engine: RankingEngine = Depends(get_engine),
):
    """Return one page of articles, highest score (or newest) first."""
    articles = engine.ranking.page(ORDERS[order], page)
    logger.info(f"[/articles] Returning {len(articles)} articles (order={order}, page={page})")
    return articles


@router.get("/articles/{article_id}", response_model=Article)
def get_article(article_id: str, engine: RankingEngine = Depends(get_engine)):
    return require_article(engine, article_id)


@router.post("/articles/{article_id}/votes", response_model=VoteResult)
def vote(article_id: str, body: VoteCast, engine: RankingEngine = Depends(get_engine)):
    """
    Vote for an article. Repeat votes and votes on articles older than a week
    are accepted but have no effect (applied = false).
    """
    require_article(engine, article_id)
    applied = engine.voting.vote(body.user, article_key(article_id))
    article = require_article(engine, article_id)
    return VoteResult(applied=applied, votes=article.votes)


@router.get("/articles/{article_id}/votes/{user}", response_model=VoteStatus)
def vote_status(article_id: str, user: str, engine: RankingEngine = Depends(get_engine)):
    """Whether user has a vote on record for the article (posters count as voters)."""
    require_article(engine, article_id)
    return VoteStatus(user=user, voted=engine.voting.has_voted(user, article_key(article_id)))


@router.put("/articles/{article_id}/groups")
def change_groups(article_id: str, body: GroupChange, engine: RankingEngine = Depends(get_engine)):
    """Add the article to and/or remove it from named groups."""
    require_article(engine, article_id)
    engine.groups.add_to_groups(article_id, body.add)
    engine.groups.remove_from_groups(article_id, body.remove)
    logger.info(f"[/groups] {article_key(article_id)} added to {body.add}, removed from {body.remove}")
    return {"status": "ok"}


@router.get("/groups/{group}/articles", response_model=List[Article])
def group_articles(
    group: str,
    response: Response,
    order: Literal["score", "time"] = "score",
    page: int = Query(1, ge=1),
    engine: RankingEngine = Depends(get_engine),
):
    """Return one page of a group's articles. Results may be up to a minute stale."""
    articles = engine.groups.group_page(group, page, ORDERS[order])
    ttl = engine.groups.cache_ttl(group, ORDERS[order])
    if ttl is not None:
        response.headers["Cache-Control"] = f"max-age={ttl}"
    logger.info(f"[/groups/{group}] Returning {len(articles)} articles (order={order}, page={page})")
    return articles
