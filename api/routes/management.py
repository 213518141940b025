"""
User Management API Routes

This module provides REST endpoints for administering enrolled identities:
- GET /users: List enrolled names with record counts
- DELETE /users/{name}: Delete every record of a name
- DELETE /records/{record_id}: Delete one enrollment sample
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_store
from api.schemas import (
    UserInfo,
    UserListResponse,
    DeleteUserResponse,
    DeleteRecordResponse,
)
from core.enrollment_store import EnrollmentStore

# Create router
router = APIRouter(tags=["users"])


@router.get("/users", response_model=UserListResponse)
def list_users(store: EnrollmentStore = Depends(get_store)):
    """
    List all enrolled names.

    Returns each name with its number of enrolled descriptors and the
    time of the latest enrollment.
    """
    users = store.list_users()

    return UserListResponse(
        users=[
            UserInfo(
                name=u["name"],
                n_records=u["n_records"],
                last_enrolled_at=u["last_enrolled_at"],
            )
            for u in users
        ],
        total=len(users),
    )


@router.delete("/users/{name}", response_model=DeleteUserResponse)
def delete_user(name: str, store: EnrollmentStore = Depends(get_store)):
    """
    Delete every record enrolled under a name.

    Raises:
        404: If no records exist for the name.
    """
    deleted = store.delete_user(name)

    if deleted == 0:
        raise HTTPException(status_code=404, detail=f"User {name} not found")

    return DeleteUserResponse(
        success=True,
        name=name,
        deleted_records=deleted,
        message=f"Deleted {deleted} record(s) for {name}",
    )


@router.delete("/records/{record_id}", response_model=DeleteRecordResponse)
def delete_record(record_id: str, store: EnrollmentStore = Depends(get_store)):
    """
    Delete a single enrolled descriptor.

    Raises:
        404: If the record is not found.
    """
    if not store.delete_record(record_id):
        raise HTTPException(status_code=404, detail=f"Record {record_id} not found")

    return DeleteRecordResponse(
        success=True,
        record_id=record_id,
        message=f"Record {record_id} deleted successfully",
    )
