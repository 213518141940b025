"""
Matching Interfaces Module

This module defines the data types and abstract interface shared by every
face matcher:

1. Decision - The access outcome of comparing one probe against the store
2. EmbeddingMatcher - Abstract base class mapping a probe to a Decision
3. as_embedding - Boundary validation for descriptor vectors

Usage:
    from core.matching.interfaces import Decision, EmbeddingMatcher, as_embedding

    probe = as_embedding(values, dim=128)
    decision = matcher.match(probe, records)
"""

import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Sequence

from core.errors import EmptyNameError, InvalidEmbeddingError


@dataclass(frozen=True)
class Decision:
    """
    Result of comparing a probe embedding against all enrolled records.

    A miss is a normal outcome (allowed=False), not an error.

    Attributes:
        allowed: True if the nearest record is within the threshold.
        name: Name of the accepted identity. None when not allowed.
        distance: Euclidean distance to the nearest record, or None when
                  the store held no records.
        record_id: Record that produced the minimum distance (diagnostic).
    """

    allowed: bool
    name: Optional[str] = None
    distance: Optional[float] = None
    record_id: Optional[str] = None

    @classmethod
    def empty(cls) -> "Decision":
        """Decision for a store with no records."""
        return cls(allowed=False, name=None, distance=None, record_id=None)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def as_embedding(values: Any, dim: int) -> np.ndarray:
    """
    Convert a sequence of numbers into a validated embedding.

    Args:
        values: List, tuple or array of numbers.
        dim: Required embedding length.

    Returns:
        float32 ndarray of shape (dim,).

    Raises:
        InvalidEmbeddingError: If the shape is wrong or a value is NaN/inf.
    """
    if values is None:
        raise InvalidEmbeddingError("Embedding is missing")

    try:
        embedding = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InvalidEmbeddingError(f"Embedding is not numeric: {e}") from e

    if embedding.ndim != 1 or embedding.shape[0] != dim:
        raise InvalidEmbeddingError(
            f"Embedding must have shape ({dim},), got {embedding.shape}"
        )

    if not np.all(np.isfinite(embedding)):
        raise InvalidEmbeddingError("Embedding contains NaN or infinite values")

    return embedding


def validate_name(name: Optional[str]) -> str:
    """Strip a display name and make sure something is left."""
    if name is None or not name.strip():
        raise EmptyNameError()
    return name.strip()


class EmbeddingMatcher(ABC):
    """
    Abstract base class for identity matching.

    Implementations compare a probe against a snapshot of enrolled records
    and render one Decision. They must be deterministic: the same probe and
    the same record set always give the same Decision.
    """

    @abstractmethod
    def match(self, probe: np.ndarray, records: Sequence[Any]) -> Decision:
        """
        Decide which enrolled identity, if any, the probe belongs to.

        Args:
            probe: (D,) float32 embedding of the face to identify.
            records: Enrolled IdentityRecord objects (each with name,
                     record_id and a (D,) embedding).

        Returns:
            Decision for the probe.
        """
        pass
