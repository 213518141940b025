"""
Core Module for the Face Access System

This package contains the enrollment and identification logic shared by the
backend API and the capture client.

Main components:
    - config: Configuration loading and management
    - errors: Error taxonomy (capture, enroll, verify, store outage)
    - descriptor_source: Frame -> 128-dim face descriptor (face_recognition)
    - enrollment_store: SQLite persistence of enrolled descriptors
    - matching: Euclidean nearest-neighbour matcher
    - orchestrator: Client-side capture -> protocol call pipeline

Usage:
    from core.config import get_config
    from core.enrollment_store import EnrollmentStore
    from core.matching import EuclideanMatcher
"""

from core.config import (
    get_config,
    get_section,
    get_matching_config,
    get_storage_config,
    get_descriptor_config,
    get_api_config,
    get_client_config,
    get_camera_config,
    get_server_config,
)

from core.errors import (
    FaceAccessError,
    CaptureError,
    NoFaceDetectedError,
    CameraUnavailableError,
    EnrollError,
    EmptyNameError,
    VerifyError,
    StoreUnavailableError,
    InvalidEmbeddingError,
    ProtocolError,
    ActionInProgressError,
)

from core.matching import Decision, EuclideanMatcher

from core.enrollment_store import (
    EnrollmentStore,
    IdentityRecord,
    get_enrollment_store,
    generate_record_id,
)

from core.descriptor_source import (
    DescriptorSource,
    FaceRecognitionSource,
    select_best_face,
)

from core.orchestrator import ClientOrchestrator

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_matching_config",
    "get_storage_config",
    "get_descriptor_config",
    "get_api_config",
    "get_client_config",
    "get_camera_config",
    "get_server_config",
    # Errors
    "FaceAccessError",
    "CaptureError",
    "NoFaceDetectedError",
    "CameraUnavailableError",
    "EnrollError",
    "EmptyNameError",
    "VerifyError",
    "StoreUnavailableError",
    "InvalidEmbeddingError",
    "ProtocolError",
    "ActionInProgressError",
    # Matching
    "Decision",
    "EuclideanMatcher",
    # Enrollment Store
    "EnrollmentStore",
    "IdentityRecord",
    "get_enrollment_store",
    "generate_record_id",
    # Descriptor Source
    "DescriptorSource",
    "FaceRecognitionSource",
    "select_best_face",
    # Orchestrator
    "ClientOrchestrator",
]
