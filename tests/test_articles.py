from voteboard.articles import ARTICLE_COUNTER, article_key
from voteboard.ranking import SCORE_ORDER, TIME_ORDER
from voteboard.voting import VOTE_SCORE, VOTE_WINDOW_SECONDS, voted_key


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------

class TestSubmit:
    def test_ids_are_sequential(self, ranking_engine):
        first = ranking_engine.articles.submit("alice", "T1", "http://x/1")
        second = ranking_engine.articles.submit("alice", "T2", "http://x/2")
        assert (first, second) == ("1", "2")

    def test_record_fields(self, ranking_engine, store, clock):
        article_id = ranking_engine.articles.submit("alice", "T", "http://x")

        assert store.get_record(article_key(article_id)) == {
            "title": "T",
            "link": "http://x",
            "poster": "alice",
            "time": str(int(clock.now)),
            "votes": "1",
        }

    def test_score_starts_one_vote_above_creation_time(self, ranking_engine, store, clock):
        article_id = ranking_engine.articles.submit("alice", "T", "http://x")
        key = article_key(article_id)

        assert store.score(SCORE_ORDER, key) == clock.now + VOTE_SCORE
        assert store.score(TIME_ORDER, key) == clock.now

    def test_poster_is_recorded_as_voter(self, ranking_engine, store):
        article_id = ranking_engine.articles.submit("alice", "T", "http://x")
        assert store.is_member(voted_key(article_id), "alice")

    def test_voter_record_expires_with_voting_window(self, ranking_engine, store):
        article_id = ranking_engine.articles.submit("alice", "T", "http://x")
        assert store.ttl(voted_key(article_id)) == VOTE_WINDOW_SECONDS

    def test_creation_time_is_whole_seconds(self, ranking_engine, store, clock):
        clock.now = 1_700_000_000.75
        article_id = ranking_engine.articles.submit("alice", "T", "http://x")
        assert store.score(TIME_ORDER, article_key(article_id)) == 1_700_000_000

    def test_counter_key_is_article_prefix(self, ranking_engine, store):
        ranking_engine.articles.submit("alice", "T", "http://x")
        assert store.next_id(ARTICLE_COUNTER) == 2


# ---------------------------------------------------------------------------
# get
# ---------------------------------------------------------------------------

class TestGet:
    def test_returns_article_tagged_with_key(self, ranking_engine, clock):
        article_id = ranking_engine.articles.submit("alice", "T", "http://x")
        article = ranking_engine.articles.get(article_key(article_id))

        assert article.id == "article:1"
        assert article.poster == "alice"
        assert article.time == int(clock.now)
        assert article.votes == 1

    def test_unknown_article_is_none(self, ranking_engine):
        assert ranking_engine.articles.get("article:404") is None
