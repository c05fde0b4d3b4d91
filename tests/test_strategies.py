from datetime import datetime, timedelta, timezone
from random import Random

import pytest

from ranking_service.domain.models import FeedType, Period, Visibility
from ranking_service.graph import GraphAccess
from ranking_service.schemas import FeedOptions
from ranking_service.scoring import trending_score
from ranking_service.strategies import STRATEGIES, FeedContext, period_start

from conftest import NOW


@pytest.fixture
def viewer(make_user):
    return make_user(1, favorite_genres=["fantasy"])


@pytest.fixture
def run_strategy(viewer, graph_repo, content_repo):
    async def _run(feed_type, rng=None, user=None, **options):
        ctx = FeedContext(
            viewer=user or viewer,
            options=FeedOptions(type=feed_type, **options),
            now=NOW,
            rng=rng or Random(7),
            graph=GraphAccess(graph_repo),
            content=content_repo,
        )
        return await STRATEGIES[feed_type].run(ctx)

    return _run


def _ids(ranked):
    return [r.item.id for r in ranked]


def test_every_feed_type_has_a_strategy():
    assert set(STRATEGIES) == set(FeedType)
    for feed_type, strategy in STRATEGIES.items():
        assert strategy.feed_type == feed_type


class TestPeriodStart:
    def test_bounds(self):
        assert period_start(None, NOW) is None
        assert period_start(Period.ALL, NOW) is None
        assert period_start(Period.TODAY, NOW) == datetime(2026, 3, 18, tzinfo=timezone.utc)
        assert period_start(Period.WEEK, NOW) == datetime(2026, 3, 16, tzinfo=timezone.utc)
        assert period_start(Period.MONTH, NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert period_start(Period.YEAR, NOW) == datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestChronological:
    async def test_own_friends_and_public_newest_first(self, graph_repo, make_post, run_strategy):
        graph_repo.befriend(1, 2)
        own = make_post(1, age=timedelta(hours=5), visibility=Visibility.PRIVATE)
        friend = make_post(2, age=timedelta(hours=1), visibility=Visibility.FRIENDS)
        public = make_post(3, age=timedelta(hours=3))
        make_post(3, age=timedelta(hours=2), visibility=Visibility.FRIENDS)

        ranked = await run_strategy(FeedType.CHRONOLOGICAL)

        assert _ids(ranked) == [friend.id, public.id, own.id]
        assert all(r.strategy == FeedType.CHRONOLOGICAL for r in ranked)
        assert ranked[0].score == friend.timestamp.timestamp()

    async def test_period_bounds_publication(self, make_post, run_strategy):
        today = make_post(3, age=timedelta(hours=2))
        make_post(3, age=timedelta(days=1))

        ranked = await run_strategy(FeedType.CHRONOLOGICAL, period=Period.TODAY)
        assert _ids(ranked) == [today.id]

    async def test_unpublished_posts_are_skipped(self, make_post, run_strategy):
        make_post(3, published_at=NOW + timedelta(hours=1))
        assert await run_strategy(FeedType.CHRONOLOGICAL) == []

    async def test_flagged_posts_only_for_owner_and_admin(self, make_user, make_post, run_strategy):
        own_hidden = make_post(1, is_hidden=True)
        reported = make_post(3, is_reported=True)

        assert _ids(await run_strategy(FeedType.CHRONOLOGICAL)) == [own_hidden.id]

        admin = make_user(9, is_admin=True)
        ranked = await run_strategy(FeedType.CHRONOLOGICAL, user=admin)
        assert set(_ids(ranked)) == {own_hidden.id, reported.id}

    async def test_caps_pool(self, make_post, run_strategy):
        for i in range(130):
            make_post(3, age=timedelta(minutes=i + 1))
        assert len(await run_strategy(FeedType.CHRONOLOGICAL)) == 100


class TestAlgorithmic:
    async def test_ranked_by_engagement_within_window(self, graph_repo, make_post, run_strategy):
        graph_repo.befriend(1, 2)
        quiet = make_post(3, age=timedelta(hours=10), likes_count=1)
        busy = make_post(3, age=timedelta(hours=10), likes_count=100)
        friend = make_post(2, age=timedelta(hours=10), likes_count=50, visibility=Visibility.FRIENDS)
        make_post(3, age=timedelta(days=8), likes_count=1000)

        ranked = await run_strategy(FeedType.ALGORITHMIC)

        # busy: (200 + 2) / 10, friend: (100 + 10) / 10, quiet: (2 + 2) / 10
        assert _ids(ranked) == [busy.id, friend.id, quiet.id]
        assert ranked[0].score == pytest.approx(20.2)
        assert ranked[1].score == pytest.approx(11.0)


class TestFollowing:
    async def test_nobody_followed_skips_query(self, make_post, content_repo, run_strategy):
        make_post(3)
        assert await run_strategy(FeedType.FOLLOWING) == []
        assert content_repo.queries == []

    async def test_only_followed_authors(self, graph_repo, make_post, run_strategy):
        graph_repo.follow(1, 3)
        graph_repo.follow(1, 4, muted=True)
        followed = make_post(3, visibility=Visibility.FRIENDS)
        make_post(4)
        make_post(5)

        assert _ids(await run_strategy(FeedType.FOLLOWING)) == [followed.id]


class TestTrending:
    async def test_threshold_and_window(self, make_post, run_strategy):
        hot = make_post(3, age=timedelta(hours=2), likes_count=10)
        warm = make_post(3, age=timedelta(hours=3), likes_count=3, comments_count=1)
        make_post(3, age=timedelta(hours=1), likes_count=2, comments_count=1)
        make_post(3, age=timedelta(hours=30), likes_count=100)
        make_post(3, age=timedelta(hours=1), likes_count=100, visibility=Visibility.FRIENDS)

        ranked = await run_strategy(FeedType.TRENDING)

        assert _ids(ranked) == [hot.id, warm.id]
        assert all(trending_score(r.item) > 5 for r in ranked)

    async def test_custom_window(self, make_post, run_strategy):
        older = make_post(3, age=timedelta(hours=30), likes_count=100)
        ranked = await run_strategy(FeedType.TRENDING, trending_hours=48)
        assert _ids(ranked) == [older.id]


class TestDiscover:
    @pytest.fixture
    def discover_pool(self, graph_repo, make_post, content_repo):
        graph_repo.befriend(1, 2)
        make_post(1, likes_count=50)
        make_post(2, likes_count=50)
        make_post(3, likes_count=50, visibility=Visibility.FRIENDS)
        make_post(3, likes_count=50, age=timedelta(days=4))
        make_post(3, likes_count=2, content="nothing in common")
        interest = make_post(3, likes_count=0, content="A new Fantasy series")
        tagged = make_post(4, likes_count=0, content="untagged text", tags=["mystery"])
        popular = make_post(5, likes_count=10)
        content_repo.like(1, "Loved it #mystery", NOW - timedelta(days=2))
        content_repo.like(1, "Old news #poetry", NOW - timedelta(days=40))
        return {interest.id, tagged.id, popular.id}

    async def test_pool_selection(self, discover_pool, run_strategy):
        ranked = await run_strategy(FeedType.DISCOVER)
        assert set(_ids(ranked)) == discover_pool

    async def test_interests(self, discover_pool, viewer, graph_repo, content_repo):
        ctx = FeedContext(
            viewer=viewer,
            options=FeedOptions(type=FeedType.DISCOVER),
            now=NOW,
            rng=Random(0),
            graph=GraphAccess(graph_repo),
            content=content_repo,
        )
        interests = await STRATEGIES[FeedType.DISCOVER].user_interests(ctx)
        assert interests == ["fantasy", "mystery"]

    async def test_shuffle_is_seeded_and_capped(self, make_post, run_strategy):
        for i in range(150):
            make_post(10 + i, likes_count=10 + i, age=timedelta(hours=1))

        first = await run_strategy(FeedType.DISCOVER, rng=Random(99))
        again = await run_strategy(FeedType.DISCOVER, rng=Random(99))
        other = await run_strategy(FeedType.DISCOVER, rng=Random(100))

        assert len(first) == 100
        assert _ids(first) == _ids(again)
        assert _ids(first) != _ids(other)

    async def test_scored_by_total_engagement(self, make_post, run_strategy):
        busy = make_post(10, likes_count=12, comments_count=3, shares_count=1)
        quiet = make_post(11, likes_count=10)

        ranked = {r.item.id: r.score for r in await run_strategy(FeedType.DISCOVER)}

        assert ranked == {busy.id: 16.0, quiet.id: 10.0}

    async def test_sample_size_option(self, make_post, content_repo, run_strategy):
        for i in range(150):
            make_post(10 + i, likes_count=10 + i)

        await run_strategy(FeedType.DISCOVER, sample_size=120)
        assert content_repo.queries[-1].limit == 120


async def test_bookmarks_is_empty(make_post, run_strategy):
    make_post(1)
    assert await run_strategy(FeedType.BOOKMARKS) == []
