"""
Friend Suggestion Service - Graph-proximity candidate scoring
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
import logging

from pydantic import ValidationError

from .cache import RedisCache, suggestions_key
from .config import settings
from .domain.models import SuggestionAlgorithm, SuggestionCandidate, UserProfile
from .domain.repositories import IGraphRepository, IUserRepository
from .graph import GraphAccess
from .schemas import SuggestionAnalytics, SuggestionOptions, SuggestionResponse
from .scoring import (
    composite_suggestion_score,
    jaccard_similarity,
    preferential_attachment_score,
    suggestion_subscores,
)

logger = logging.getLogger(__name__)

HYBRID_WEIGHTS = [
    (SuggestionAlgorithm.MUTUAL_CONNECTIONS, 0.5),
    (SuggestionAlgorithm.NETWORK_ANALYSIS, 0.3),
    (SuggestionAlgorithm.FRIENDS_OF_FRIENDS, 0.2),
]


def suggestion_reason(candidate: SuggestionCandidate) -> str:
    """Human-readable reason from the strongest signal"""
    mutual = candidate.mutual_friends_count
    if mutual >= 2:
        return f"You have {mutual} mutual friends"
    if mutual == 1:
        return "You have 1 mutual friend"
    if candidate.degree_of_separation is not None:
        return "Friend of a friend"
    if candidate.common_neighbors is not None or candidate.composite_score is not None:
        return "Active in your network"
    return "Suggested for you"


@dataclass
class SuggestionContext:
    """State for one suggestion call"""
    user: UserProfile
    options: SuggestionOptions
    graph: GraphAccess
    excluded: Set[int]
    now: datetime
    profiles: Dict[int, Optional[UserProfile]] = field(default_factory=dict)


class SuggestionService:
    """Friend suggestion service with four interchangeable algorithms"""

    def __init__(
        self,
        graph_repository: IGraphRepository,
        user_repository: IUserRepository,
        cache: RedisCache,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.graph_repository = graph_repository
        self.user_repository = user_repository
        self.cache = cache
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_suggestions(
        self,
        user: UserProfile,
        options: Union[SuggestionOptions, Dict[str, Any], None] = None,
    ) -> List[SuggestionResponse]:
        """
        Get ranked friend suggestions for a user

        Args:
            user: Requesting user
            options: SuggestionOptions or a plain dict of the same fields

        Returns:
            At most options.count suggestions, best first
        """
        if not isinstance(options, SuggestionOptions):
            options = SuggestionOptions.model_validate(options or {})

        cache_key = suggestions_key(
            user.id, options.model_dump(mode="json", exclude={"use_cache"})
        )

        if options.use_cache:
            cached = await self._cached_suggestions(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for user {user.id}'s suggestions")
                return cached

        now = self.clock()
        graph = GraphAccess(self.graph_repository, self.cache)
        ctx = SuggestionContext(
            user=user,
            options=options,
            graph=graph,
            excluded=await self._excluded_ids(user.id, graph),
            now=now,
        )

        candidates = await self._generate(ctx, options.algorithm, options.count)
        candidates = candidates[:options.count]
        logger.info(
            f"Generated {len(candidates)} {options.algorithm.value} suggestions for user {user.id}"
        )

        suggestions = [
            SuggestionResponse.from_candidate(candidate, options.include_scores, now)
            for candidate in candidates
        ]

        if options.use_cache:
            await self.cache.set(
                cache_key,
                [suggestion.model_dump(mode="json") for suggestion in suggestions],
                settings.CACHE_TTL_SUGGESTIONS,
            )
        return suggestions

    async def clear_user_cache(self, user_id: int) -> int:
        """Drop every cached suggestion list of a user"""
        deleted = await self.cache.invalidate_user_suggestions(user_id)
        logger.info(f"Cleared {deleted} cached suggestion lists for user {user_id}")
        return deleted

    async def get_suggestion_analytics(self, user: UserProfile) -> SuggestionAnalytics:
        """Get network statistics for a user"""
        graph = GraphAccess(self.graph_repository, self.cache)
        friends = await graph.friend_ids(user.id)
        excluded = await self._excluded_ids(user.id, graph)
        pool_size = await self.graph_repository.count_suggestable_users(excluded)

        # Mutual friends shared with each friend, i.e. that friend's degree inside the circle
        adjacency = await graph.friend_ids_of(friends)
        shared = [len(adjacency[friend_id] & friends) for friend_id in friends]

        network_density = 0.0
        if len(friends) >= 2:
            internal_edges = sum(shared) / 2
            max_edges = len(friends) * (len(friends) - 1) / 2
            network_density = internal_edges / max_edges

        avg_mutual_friends = sum(shared) / len(shared) if shared else 0.0

        return SuggestionAnalytics(
            total_friends=len(friends),
            suggestion_pool_size=pool_size,
            network_density=network_density,
            avg_mutual_friends=avg_mutual_friends,
            last_updated=self.clock(),
        )

    async def _cached_suggestions(self, cache_key: str) -> Optional[List[SuggestionResponse]]:
        payload = await self.cache.get(cache_key)
        if payload is None:
            return None
        try:
            return [SuggestionResponse.model_validate(entry) for entry in payload]
        except (ValidationError, TypeError) as e:
            logger.error(f"Discarding malformed cached suggestions {cache_key}: {e}")
            return None

    async def _excluded_ids(self, user_id: int, graph: GraphAccess) -> Set[int]:
        """The user, friends and anyone with a friendship record of any status"""
        excluded = {user_id}
        excluded |= await graph.friend_ids(user_id)
        excluded |= await self.graph_repository.get_related_user_ids(user_id)
        return excluded

    async def _admissible(self, ctx: SuggestionContext, user_ids: Iterable[int]) -> Set[int]:
        """Keep users not excluded whose profile accepts suggestions"""
        wanted = [user_id for user_id in user_ids if user_id not in ctx.excluded]
        missing = [user_id for user_id in wanted if user_id not in ctx.profiles]
        if missing:
            found = await self.user_repository.find_by_ids(missing)
            for user_id in missing:
                ctx.profiles[user_id] = found.get(user_id)

        return {
            user_id for user_id in wanted
            if ctx.profiles[user_id] is not None and ctx.profiles[user_id].accepts_suggestions
        }

    async def _generate(
        self, ctx: SuggestionContext, algorithm: SuggestionAlgorithm, count: int
    ) -> List[SuggestionCandidate]:
        """Run one algorithm and enrich its candidates"""
        if algorithm == SuggestionAlgorithm.HYBRID:
            return await self._hybrid(ctx, count)

        if algorithm == SuggestionAlgorithm.MUTUAL_CONNECTIONS:
            candidates = await self._mutual_connections(ctx, count)
        elif algorithm == SuggestionAlgorithm.FRIENDS_OF_FRIENDS:
            candidates = await self._friends_of_friends(ctx, count)
        else:
            candidates = await self._network_analysis(ctx, count)
        return self._enrich(ctx, candidates)

    async def _mutual_connections(self, ctx: SuggestionContext, count: int) -> List[SuggestionCandidate]:
        """Rank friends-of-friends by how many friends they share with the user"""
        friends = await ctx.graph.friend_ids(ctx.user.id)
        if not friends:
            return []

        adjacency = await ctx.graph.friend_ids_of(friends)
        mutual: Dict[int, Set[int]] = {}
        for friend_id, friends_of_friend in adjacency.items():
            for other_id in friends_of_friend:
                mutual.setdefault(other_id, set()).add(friend_id)

        admissible = await self._admissible(ctx, mutual)
        min_mutual = max(ctx.options.min_mutual_friends, 1)
        candidates = [
            SuggestionCandidate(
                user_id=user_id,
                mutual_friends_count=len(mutual[user_id]),
                mutual_friend_ids=sorted(mutual[user_id]),
            )
            for user_id in admissible
            if len(mutual[user_id]) >= min_mutual
        ]
        candidates.sort(key=lambda c: (-c.mutual_friends_count, c.user_id))
        return candidates[:count * 2]

    async def _friends_of_friends(self, ctx: SuggestionContext, count: int) -> List[SuggestionCandidate]:
        """Walk out from degree 2, closer users first, until count is filled"""
        if not await ctx.graph.friend_ids(ctx.user.id):
            return []

        candidates: List[SuggestionCandidate] = []
        for degree in range(2, settings.MAX_DEGREES_SEPARATION + 1):
            level = await ctx.graph.neighbors_at_degree(ctx.user.id, degree)
            admissible = await self._admissible(ctx, level)
            for user_id in sorted(admissible)[:count]:
                candidates.append(SuggestionCandidate(
                    user_id=user_id,
                    degree_of_separation=degree,
                    score=1.0 / degree,
                ))
            if len(candidates) >= count:
                break
        return candidates[:count]

    async def _network_analysis(self, ctx: SuggestionContext, count: int) -> List[SuggestionCandidate]:
        """
        Average of common-neighbor ratio, Jaccard coefficient and
        preferential attachment scores per candidate
        """
        friends = await ctx.graph.friend_ids(ctx.user.id)
        results = [
            await self._common_neighbors(ctx, friends, count),
            await self._jaccard(ctx, friends, count),
            await self._preferential_attachment(ctx, count),
        ]

        grouped: Dict[int, List[SuggestionCandidate]] = {}
        for candidates in results:
            for candidate in candidates:
                grouped.setdefault(candidate.user_id, []).append(candidate)

        combined = []
        for group in grouped.values():
            candidate = group[0]
            candidate.composite_score = sum(c.score for c in group) / len(group)
            candidate.algorithm_count = len(group)
            combined.append(candidate)

        combined.sort(key=lambda c: (-c.composite_score, c.user_id))
        return combined[:count]

    async def _second_degree(self, ctx: SuggestionContext, friends: Set[int]) -> Dict[int, Set[int]]:
        """Admissible distance-2 users mapped to their friend lists"""
        if not friends:
            return {}
        level = await ctx.graph.neighbors_at_degree(ctx.user.id, 2)
        admissible = await self._admissible(ctx, level)
        return await ctx.graph.friend_ids_of(admissible)

    async def _common_neighbors(
        self, ctx: SuggestionContext, friends: Set[int], count: int
    ) -> List[SuggestionCandidate]:
        adjacency = await self._second_degree(ctx, friends)
        candidates = []
        for user_id, their_friends in adjacency.items():
            common = len(friends & their_friends)
            if common < settings.MIN_COMMON_NEIGHBORS:
                continue
            candidates.append(SuggestionCandidate(
                user_id=user_id,
                common_neighbors=common,
                score=common / len(their_friends),
            ))
        candidates.sort(key=lambda c: (-c.score, c.user_id))
        return candidates[:count]

    async def _jaccard(
        self, ctx: SuggestionContext, friends: Set[int], count: int
    ) -> List[SuggestionCandidate]:
        adjacency = await self._second_degree(ctx, friends)
        candidates = []
        for user_id, their_friends in adjacency.items():
            if not friends & their_friends:
                continue
            candidates.append(SuggestionCandidate(
                user_id=user_id,
                score=jaccard_similarity(friends, their_friends),
            ))
        candidates.sort(key=lambda c: (-c.score, c.user_id))
        return candidates[:count]

    async def _preferential_attachment(self, ctx: SuggestionContext, count: int) -> List[SuggestionCandidate]:
        popular = await self.graph_repository.get_popular_users(
            settings.POPULARITY_MIN_FRIENDS, ctx.excluded, count * 2
        )
        admissible = await self._admissible(ctx, popular)
        candidates = [
            SuggestionCandidate(
                user_id=user_id,
                score=preferential_attachment_score(popular[user_id]),
            )
            for user_id in admissible
        ]
        candidates.sort(key=lambda c: (-c.score, c.user_id))
        return candidates[:count]

    async def _hybrid(self, ctx: SuggestionContext, count: int) -> List[SuggestionCandidate]:
        """Weighted merge of the other three algorithms, each asked for twice the count"""
        grouped: Dict[int, List[SuggestionCandidate]] = {}
        for algorithm, weight in HYBRID_WEIGHTS:
            for candidate in await self._generate(ctx, algorithm, count * 2):
                candidate.algorithm = algorithm.value
                candidate.weighted_score = candidate.algorithm_score() * weight
                grouped.setdefault(candidate.user_id, []).append(candidate)

        merged = []
        for group in grouped.values():
            candidate = group[0]
            candidate.final_score = sum(c.weighted_score for c in group)
            candidate.algorithm_coverage = len({c.algorithm for c in group})
            merged.append(candidate)

        merged.sort(key=lambda c: (-c.final_score, c.user_id))
        return merged[:count]

    def _enrich(
        self, ctx: SuggestionContext, candidates: List[SuggestionCandidate]
    ) -> List[SuggestionCandidate]:
        """Attach display fields and sub-scores; drop candidates under min_score"""
        enriched = []
        for candidate in candidates:
            profile = ctx.profiles.get(candidate.user_id)
            if profile is None or not profile.accepts_suggestions:
                continue

            candidate.scores = suggestion_subscores(
                candidate.mutual_friends_count, ctx.user, profile, ctx.now
            )
            candidate.total_score = composite_suggestion_score(candidate.scores)
            if candidate.total_score < ctx.options.min_score:
                continue

            candidate.name = profile.name
            candidate.username = profile.username
            candidate.avatar_url = profile.avatar_url
            candidate.is_verified = profile.is_verified
            candidate.suggestion_reason = suggestion_reason(candidate)
            enriched.append(candidate)
        return enriched
