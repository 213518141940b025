"""
Matching Module for Face Access

This package contains the identity matching used by the /recognize endpoint.

Components:
    - interfaces: Decision, EmbeddingMatcher base class, embedding validation
    - euclidean_matcher: Nearest-neighbour matcher with inclusive threshold

Usage:
    from core.matching import EuclideanMatcher
    matcher = EuclideanMatcher(get_matching_config())
    decision = matcher.match(probe, store.snapshot())
"""

from core.matching.interfaces import (
    Decision,
    EmbeddingMatcher,
    as_embedding,
    validate_name,
)
from core.matching.euclidean_matcher import EuclideanMatcher

__all__ = [
    "Decision",
    "EmbeddingMatcher",
    "as_embedding",
    "validate_name",
    "EuclideanMatcher",
]
