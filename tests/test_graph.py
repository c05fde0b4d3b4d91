import json

from ranking_service.cache import friend_ids_key, following_ids_key
from ranking_service.domain.models import FriendshipStatus, SocialEdge
from ranking_service.graph import GraphAccess


def _chain(graph_repo):
    # 1 - 2 - 3 - 4 - 5, plus 1 - 6 - 3
    for a, b in [(1, 2), (2, 3), (3, 4), (4, 5), (1, 6), (6, 3)]:
        graph_repo.befriend(a, b)


class TestFriendIds:
    async def test_accepted_only_both_directions(self, graph_repo):
        graph_repo.befriend(1, 2)
        graph_repo.befriend(3, 1)
        graph_repo.befriend(1, 4, FriendshipStatus.PENDING)
        graph_repo.befriend(5, 1, FriendshipStatus.BLOCKED)

        graph = GraphAccess(graph_repo)
        assert await graph.friend_ids(1) == {2, 3}

    async def test_unknown_user_is_empty(self, graph_repo):
        graph = GraphAccess(graph_repo)
        assert await graph.friend_ids(404) == set()
        assert await graph.following_ids(404) == set()
        assert await graph.neighbors_at_degree(404, 2) == set()

    async def test_reads_through_cache(self, graph_repo, cache, fake_redis):
        graph_repo.befriend(1, 2)
        await GraphAccess(graph_repo, cache).friend_ids(1)

        assert json.loads(fake_redis.store[friend_ids_key(1)]) == [2]
        assert fake_redis.ttls[friend_ids_key(1)] == 3600

        # A fresh instance is served from Redis, not the repository
        graph_repo.calls.clear()
        assert await GraphAccess(graph_repo, cache).friend_ids(1) == {2}
        assert graph_repo.calls == []

    async def test_cache_outage_falls_back_to_repository(self, graph_repo, cache, fake_redis):
        graph_repo.befriend(1, 2)
        fake_redis.fail = True
        assert await GraphAccess(graph_repo, cache).friend_ids(1) == {2}


async def test_following_ignores_muted(graph_repo, cache, fake_redis):
    graph_repo.follow(1, 2)
    graph_repo.follow(1, 3, muted=True)
    graph_repo.follow(4, 1)

    assert await GraphAccess(graph_repo, cache).following_ids(1) == {2}
    assert following_ids_key(1) in fake_redis.store


class TestNeighborsAtDegree:
    async def test_exact_shortest_path_distance(self, graph_repo):
        _chain(graph_repo)
        graph = GraphAccess(graph_repo)

        assert await graph.neighbors_at_degree(1, 1) == {2, 6}
        assert await graph.neighbors_at_degree(1, 2) == {3}
        assert await graph.neighbors_at_degree(1, 3) == {4}
        assert await graph.neighbors_at_degree(1, 4) == {5}
        assert await graph.neighbors_at_degree(1, 5) == set()
        assert await graph.neighbors_at_degree(1, 0) == set()

    async def test_levels_are_memoized(self, graph_repo):
        _chain(graph_repo)
        graph = GraphAccess(graph_repo)
        await graph.neighbors_at_degree(1, 3)

        graph_repo.calls.clear()
        assert await graph.neighbors_at_degree(1, 2) == {3}
        assert await graph.neighbors_at_degree(1, 3) == {4}
        assert graph_repo.calls == []


async def test_friend_counts(graph_repo):
    _chain(graph_repo)
    counts = await GraphAccess(graph_repo).friend_counts([1, 3, 5])
    assert counts == {1: 2, 3: 3, 5: 1}


def test_edge_activity():
    assert SocialEdge(1, 2, FriendshipStatus.ACCEPTED).is_active()
    assert not SocialEdge(1, 2, FriendshipStatus.BLOCKED).is_active()
    assert SocialEdge(1, 2, is_follow=True).is_active()
    assert not SocialEdge(1, 2, is_follow=True, is_muted=True).is_active()
    assert SocialEdge(1, 2).other(2) == 1
