"""
Recognition Protocol Routes

This module provides the two protocol endpoints used by the capture client:
- POST /register: Enroll a name with a face descriptor
- POST /recognize: Identify a probe descriptor against every enrolled record

Both are stateless: one request, one response, no session.
Store failures propagate as StoreUnavailableError and are turned into a 503
by the handler in api.app, so an outage never looks like "not recognized".
"""

import time
import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_matcher, get_store
from api.schemas import (
    ErrorResponse,
    RegisterRequest,
    RegisterResponse,
    RecognizeRequest,
    RecognizeResponse,
)
from core.enrollment_store import EnrollmentStore
from core.errors import StoreUnavailableError
from core.matching import EuclideanMatcher

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["recognition"])

ERROR_RESPONSES = {
    422: {"model": ErrorResponse, "description": "Blank name or malformed descriptor"},
    503: {"model": ErrorResponse, "description": "Enrollment store unavailable"},
}


@router.post("/register", response_model=RegisterResponse, responses=ERROR_RESPONSES)
def register(
    request: RegisterRequest,
    store: EnrollmentStore = Depends(get_store),
):
    """
    Enroll a face descriptor under a name.

    No duplicate-name check is made: depending on the configured
    re-enrollment policy the descriptor is appended to the name's existing
    records or replaces them.
    """
    record, records_for_name = store.enroll(request.name, request.embedding)

    return RegisterResponse(
        success=True,
        record_id=record.record_id,
        name=record.name,
        records_for_name=records_for_name,
    )


@router.post("/recognize", response_model=RecognizeResponse, responses=ERROR_RESPONSES)
def recognize(
    request: RecognizeRequest,
    store: EnrollmentStore = Depends(get_store),
    matcher: EuclideanMatcher = Depends(get_matcher),
):
    """
    Identify a probe descriptor.

    The probe is compared against a snapshot of the store taken at the
    start of the request. A record enrolled while the request runs may or
    may not be considered.
    """
    start_time = time.time()

    records = store.snapshot()
    decision = matcher.match(request.embedding, records)

    processing_time_ms = int((time.time() - start_time) * 1000)

    if decision.allowed:
        logger.info(f"Recognized {decision.name} (distance={decision.distance:.4f}, "
                    f"records={len(records)})")
    elif decision.distance is None:
        logger.info("Recognition against empty store")
    else:
        logger.info(f"Not recognized (nearest distance={decision.distance:.4f}, "
                    f"records={len(records)})")

    try:
        store.log_recognition(
            name=decision.name,
            record_id=decision.record_id,
            distance=decision.distance,
            allowed=decision.allowed,
            processing_time_ms=processing_time_ms,
        )
    except StoreUnavailableError as e:
        logger.warning(f"Failed to log recognition attempt: {e}")

    return RecognizeResponse(
        allowed=decision.allowed,
        name=decision.name,
        distance=decision.distance,
    )
