"""
Service exceptions
"""


class RankingServiceError(Exception):
    """Base error for the ranking service"""


class GraphStoreUnavailable(RankingServiceError):
    """The content and social graph store could not be queried"""
