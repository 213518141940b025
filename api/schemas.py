"""
Pydantic Schemas for API Request/Response Models

This module defines the data models used for communication between the
capture client and the backend.

These schemas provide:
- Type validation
- Automatic documentation in OpenAPI/Swagger
- Clear interface contracts

Descriptor length is checked against the configured dimension when the
request reaches the store or matcher, not here, so a single schema serves
any embedding_dim.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


# ============================================================
# Protocol Schemas
# ============================================================

class RegisterRequest(BaseModel):
    """Request to enroll a face descriptor under a name."""
    name: str = Field(..., description="Display name of the person being enrolled")
    embedding: List[float] = Field(
        ...,
        description="Face descriptor (embedding_dim floats, 128 by default)"
    )


class RegisterResponse(BaseModel):
    """Acknowledgement of a successful enrollment."""
    success: bool = Field(True, description="Always true for a 200 response")
    record_id: str = Field(..., description="Identifier of the stored record")
    name: str = Field(..., description="Name the record was stored under")
    records_for_name: int = Field(..., description="Records now enrolled under this name")


class RecognizeRequest(BaseModel):
    """Request to identify a probe descriptor."""
    embedding: List[float] = Field(..., description="Probe face descriptor")


class RecognizeResponse(BaseModel):
    """Access decision for a probe."""
    allowed: bool = Field(..., description="Whether the probe matched an enrolled identity")
    name: Optional[str] = Field(None, description="Matched name (only when allowed)")
    distance: Optional[float] = Field(
        None,
        description="Distance to the nearest enrolled record (null if the store is empty)"
    )


class ErrorResponse(BaseModel):
    """Body of every non-validation error response."""
    error: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code, e.g. STORE_UNAVAILABLE")


# ============================================================
# User Management Schemas
# ============================================================

class UserInfo(BaseModel):
    """Summary of one enrolled name."""
    name: str = Field(..., description="Display name")
    n_records: int = Field(..., description="Number of enrolled descriptors")
    last_enrolled_at: Optional[str] = Field(None, description="ISO timestamp of latest enrollment")


class UserListResponse(BaseModel):
    """Response containing list of enrolled users."""
    users: List[UserInfo] = Field(default_factory=list)
    total: int = Field(0, description="Total number of enrolled names")


class DeleteUserResponse(BaseModel):
    """Response from deleting every record of a name."""
    success: bool = Field(..., description="Whether deletion was successful")
    name: str = Field(..., description="Name that was deleted")
    deleted_records: int = Field(..., description="Number of records removed")
    message: str = Field(..., description="Status message")


class DeleteRecordResponse(BaseModel):
    """Response from deleting a single record."""
    success: bool = Field(..., description="Whether deletion was successful")
    record_id: str = Field(..., description="ID of deleted record")
    message: str = Field(..., description="Status message")


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    """System health check response."""
    status: str = Field(..., description="Overall status: 'healthy' or 'unhealthy'")
    store_available: bool = Field(..., description="Whether the enrollment store is reachable")
    enrolled_users: int = Field(0, description="Number of enrolled names")
    enrolled_records: int = Field(0, description="Number of enrolled descriptors")
    threshold: float = Field(..., description="Distance threshold used for acceptance")
    embedding_dim: int = Field(..., description="Expected descriptor length")
