"""
Error taxonomy for the recommendation engine.
"""


class RecommendationError(Exception):
    """Base class for all engine errors."""


class InvalidInput(RecommendationError, ValueError):
    """Malformed vectors, weights, identifiers or configuration."""


class NotFound(RecommendationError, LookupError):
    """A single explicitly requested product or user could not be resolved."""


class UpstreamFailure(RecommendationError):
    """The catalog or behavior store failed."""
