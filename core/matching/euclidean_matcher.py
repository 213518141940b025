"""
Euclidean Matcher: nearest-neighbour identification over 128-dim face descriptors.

The dlib ResNet descriptor space is trained so that two images of the same
person lie within ~0.6 Euclidean distance of each other. The matcher scans
every enrolled record, keeps the closest one, and accepts it when its
distance is at or below the configured threshold.

Distances are computed in float64 and compared against the threshold at
float32 precision, the precision embeddings are stored and transmitted in.
The boundary is inclusive at float32 resolution: a distance is accepted
when it rounds to a float32 at or below float32(threshold). For 0.6 that
admits float64 distances up to about 0.6 + 3e-8, so a probe built as
float32(0.6) away from a record is accepted and 0.6000001 is rejected.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from core.matching.interfaces import Decision, EmbeddingMatcher, as_embedding

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.6
DEFAULT_EMBEDDING_DIM = 128
DEFAULT_TIE_TOLERANCE = 1e-9


class EuclideanMatcher(EmbeddingMatcher):
    """
    Match a probe embedding to the closest enrolled identity.

    Tie-break: every record whose distance is within tie_tolerance of the
    minimum is a candidate; the lexicographically smallest name wins, then
    the smallest record_id.

    Args:
        config: Dictionary with optional keys:
            - threshold: Maximum accepted distance, inclusive (default 0.6)
            - embedding_dim: Expected dimension (default 128)
            - tie_tolerance: Absolute distance tolerance for ties (default 1e-9)
    """

    def __init__(self, config: Optional[dict] = None):
        if config is None:
            config = {}
        self.threshold = float(config.get("threshold", DEFAULT_THRESHOLD))
        self.embedding_dim = int(config.get("embedding_dim", DEFAULT_EMBEDDING_DIM))
        self.tie_tolerance = float(config.get("tie_tolerance", DEFAULT_TIE_TOLERANCE))

        if self.threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {self.threshold}")

    def distances(self, probe: np.ndarray, records: Sequence) -> np.ndarray:
        """
        Euclidean distance from the probe to every record.

        Returns:
            (N,) float64 array, in the order of records.
        """
        if len(records) == 0:
            return np.empty(0, dtype=np.float64)

        gallery = np.stack([r.embedding for r in records]).astype(np.float64)
        diff = gallery - probe.astype(np.float64)
        return np.sqrt(np.einsum("ij,ij->i", diff, diff))

    def is_within_threshold(self, distance: float) -> bool:
        """
        Inclusive threshold check at float32 resolution.

        Both sides are rounded to float32 before comparing, so distances a
        few float64 ulps past the threshold (up to half a float32 step,
        ~3e-8 at 0.6) still count as within it.
        """
        return bool(np.float32(distance) <= np.float32(self.threshold))

    def match(self, probe, records: Sequence) -> Decision:
        """
        Decide which enrolled identity, if any, the probe belongs to.

        Args:
            probe: (D,) embedding (any numeric sequence).
            records: Snapshot of IdentityRecord objects.

        Returns:
            Decision. allowed=False with name=None when nothing is close
            enough or the snapshot is empty.

        Raises:
            InvalidEmbeddingError: If the probe has the wrong shape or
                contains non-finite values.
        """
        probe = as_embedding(probe, self.embedding_dim)

        if len(records) == 0:
            logger.debug("Match against empty store")
            return Decision.empty()

        dists = self.distances(probe, records)
        min_distance = float(dists.min())

        candidates = np.flatnonzero(dists <= min_distance + self.tie_tolerance)
        best = min(
            (records[i] for i in candidates),
            key=lambda r: (r.name, r.record_id),
        )

        if len(candidates) > 1:
            logger.debug(
                f"Tie between {len(candidates)} records at distance {min_distance:.6f}, "
                f"selected {best.name} ({best.record_id})"
            )

        allowed = self.is_within_threshold(min_distance)

        return Decision(
            allowed=allowed,
            name=best.name if allowed else None,
            distance=min_distance,
            record_id=best.record_id,
        )
