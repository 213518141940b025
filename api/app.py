"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application for the
Face Access API.

The application provides:
- POST /register and POST /recognize (the capture client's protocol)
- REST endpoints for user management
- Health check endpoint

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 4000 --reload

    # Or run directly:
    python -m api.app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import get_matcher, get_store
from api.routes.management import router as management_router
from api.routes.recognition import router as recognition_router
from api.schemas import HealthResponse
from core.enrollment_store import EnrollmentStore, get_enrollment_store, reset_enrollment_store
from core.errors import (
    EmptyNameError,
    FaceAccessError,
    InvalidEmbeddingError,
    StoreUnavailableError,
)
from core.matching import EuclideanMatcher


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
PROTOCOL_VERSION = 1


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Open the enrollment store and report its contents

    Runs on shutdown:
    - Close the store connection
    """
    logger.info("=" * 60)
    logger.info("Starting Face Access API")
    logger.info("=" * 60)

    matcher = get_matcher()
    logger.info(f"Matcher: euclidean, threshold={matcher.threshold}, "
                f"dim={matcher.embedding_dim}")

    logger.info("Initializing enrollment store...")
    try:
        stats = get_enrollment_store().get_stats()
        logger.info(f"Enrollment store ready: {stats['total_users']} users, "
                    f"{stats['total_records']} records enrolled")
    except StoreUnavailableError as e:
        logger.error(f"Enrollment store unavailable at startup: {e}")

    logger.info("API startup complete!")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down API...")
    reset_enrollment_store()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Face Access API",
    description="""
API for face enrollment and identification with 128-dim face descriptors.

## Features
- **Register**: Enroll a name with a face descriptor
- **Recognize**: Identify a probe descriptor (nearest neighbour, inclusive threshold)
- **User Management**: List and delete enrolled identities

A probe that matches nobody is a normal `{"allowed": false}` answer.
A store outage is a `503` with code `STORE_UNAVAILABLE`.
    """,
    version=API_VERSION,
    lifespan=lifespan,
)

# Configure CORS for the browser capture client
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allows all origins (adjust for production)
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(recognition_router)
app.include_router(management_router)


# ============================================================
# Error Handlers
# ============================================================

def _error_response(status_code: int, exc: FaceAccessError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": str(exc), "code": exc.code},
    )


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"{request.method} {request.url.path}: store unavailable: {exc}")
    return _error_response(503, exc)


@app.exception_handler(EmptyNameError)
async def empty_name_handler(request: Request, exc: EmptyNameError):
    return _error_response(422, exc)


@app.exception_handler(InvalidEmbeddingError)
async def invalid_embedding_handler(request: Request, exc: InvalidEmbeddingError):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return _error_response(422, exc)


# ============================================================
# Health Check Endpoint
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["system"])
def health_check(
    store: EnrollmentStore = Depends(get_store),
    matcher: EuclideanMatcher = Depends(get_matcher),
):
    """
    Check the health of the API and the enrollment store.

    Returns:
    - Store reachability
    - Number of enrolled names and records
    - Matching threshold and descriptor dimension
    """
    try:
        stats = store.get_stats()
        store_available = True
    except StoreUnavailableError as e:
        logger.warning(f"Health check: store unavailable: {e}")
        stats = {"total_users": 0, "total_records": 0}
        store_available = False

    return HealthResponse(
        status="healthy" if store_available else "unhealthy",
        store_available=store_available,
        enrolled_users=stats["total_users"],
        enrolled_records=stats["total_records"],
        threshold=matcher.threshold,
        embedding_dim=matcher.embedding_dim,
    )


@app.get("/", tags=["system"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Face Access API",
        "version": API_VERSION,
        "protocol_version": PROTOCOL_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


def main(reload: bool = False) -> None:
    """Run the API with uvicorn on the host/port from api.base_url."""
    import uvicorn

    from core.config import get_server_config

    server = get_server_config()

    logger.info(f"Starting server on {server['host']}:{server['port']}")
    uvicorn.run(
        "api.app:app",
        host=server["host"],
        port=server["port"],
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main(reload=True)
