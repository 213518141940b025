"""
Error taxonomy for the face access system.

Capture, enrollment and verification failures are exceptions. A probe that
matches nobody is not: it comes back as a Decision with allowed=False.

StoreUnavailableError derives from both EnrollError and VerifyError so a
caller handling either operation's errors also sees a store outage, and can
tell it apart from "face not recognized".
"""


class FaceAccessError(Exception):
    """Base class for all face access errors."""

    code = "FACE_ACCESS_ERROR"


# ============================================================
# Capture
# ============================================================

class CaptureError(FaceAccessError):
    """Producing a descriptor from the camera failed."""

    code = "CAPTURE_ERROR"


class NoFaceDetectedError(CaptureError):
    """The descriptor source found no face in the frame."""

    code = "NO_FACE_DETECTED"

    def __init__(self, message: str = "No face detected in frame"):
        super().__init__(message)


class CameraUnavailableError(CaptureError):
    """The camera could not be opened or returned no frame."""

    code = "CAMERA_UNAVAILABLE"


# ============================================================
# Enrollment / verification
# ============================================================

class EnrollError(FaceAccessError):
    code = "ENROLL_ERROR"


class EmptyNameError(EnrollError):
    """Enrollment name is empty or whitespace only."""

    code = "EMPTY_NAME"

    def __init__(self, message: str = "Name must not be empty"):
        super().__init__(message)


class VerifyError(FaceAccessError):
    code = "VERIFY_ERROR"


class StoreUnavailableError(EnrollError, VerifyError):
    """The enrollment store could not be read or written."""

    code = "STORE_UNAVAILABLE"


# ============================================================
# Boundaries
# ============================================================

class InvalidEmbeddingError(FaceAccessError, ValueError):
    """Embedding has the wrong length or contains non-finite values."""

    code = "INVALID_EMBEDDING"


class ProtocolError(FaceAccessError):
    """The backend answered with an unexpected status or body."""

    code = "PROTOCOL_ERROR"

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ActionInProgressError(FaceAccessError):
    """Another enroll/verify action is still running on this client."""

    code = "ACTION_IN_PROGRESS"
