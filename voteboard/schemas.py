from typing import List

from pydantic import BaseModel, Field


class Article(BaseModel):
    """An article record tagged with its key. Built from the store's text fields, so numbers are coerced."""
    id: str          # e.g. "article:12"
    title: str
    link: str
    poster: str
    time: int        # creation time, seconds since epoch
    votes: int


class ArticleSubmit(BaseModel):
    """Shape expected by POST /articles."""
    user: str = Field(min_length=1)
    title: str = Field(min_length=1)
    link: str = Field(min_length=1)


class ArticleCreated(BaseModel):
    id: str          # bare id, e.g. "12"
    key: str         # e.g. "article:12"


class VoteCast(BaseModel):
    user: str = Field(min_length=1)


class VoteResult(BaseModel):
    applied: bool    # False for repeat votes and articles past their voting window
    votes: int


class VoteStatus(BaseModel):
    user: str
    voted: bool


class GroupChange(BaseModel):
    add: List[str] = []
    remove: List[str] = []
