"""
FastAPI dependencies shared by the route modules.

Routes receive the store and matcher through Depends() so tests can swap
them with app.dependency_overrides.
"""

from typing import Optional

from core.config import get_matching_config
from core.enrollment_store import EnrollmentStore, get_enrollment_store
from core.matching import EuclideanMatcher

_matcher_instance: Optional[EuclideanMatcher] = None


def get_store() -> EnrollmentStore:
    return get_enrollment_store()


def get_matcher() -> EuclideanMatcher:
    global _matcher_instance

    if _matcher_instance is None:
        _matcher_instance = EuclideanMatcher(get_matching_config())
    return _matcher_instance
