"""
Privileged user-administration endpoints. Every response is a JSON envelope
{"success": bool, ...}; failures carry an "error" message instead of a bare detail.
"""
from dataclasses import asdict
from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.security import http_bearer, metadata_role, user_from_token
from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, RefreshToken, User, UserProfile, UserShift
from ..services.directory import list_users_with_shifts
from ..services.permissions import USER_SHIFTS, is_admin_role
from ..services.role_sync import (
    UserNotFound,
    apply_role_update,
    apply_shift_update,
    check_user_role_sync,
    sync_all_user_roles,
    sync_user_role,
)
from ..services.validation import validate_role, validate_shift
from ..storage.local_provider import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/functions/v1", tags=["functions"])
logger = structlog.get_logger(__name__)


class FunctionError(Exception):
    def __init__(self, status_code: int, error: str):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


def _caller(creds: Optional[HTTPAuthorizationCredentials], db: Session) -> AuthUser:
    if creds is None:
        raise FunctionError(401, "No authorization header provided")
    try:
        return user_from_token(db, creds.credentials)
    except HTTPException:
        raise FunctionError(401, "Unauthorized access")


def _require_row_admin(db: Session, caller: AuthUser, message: str) -> None:
    row = db.query(User).filter(User.id == caller.id).first()
    if row is None:
        raise FunctionError(404, "User not found")
    if not is_admin_role(row.role):
        raise FunctionError(403, message)


def _require_metadata_admin(caller: AuthUser, message: str) -> None:
    if not is_admin_role(metadata_role(caller)):
        raise FunctionError(403, message)


@router.get("/list-users")
def list_users(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    caller = _caller(creds, db)
    _require_row_admin(db, caller, "Only admin users can list all users")
    try:
        users = list_users_with_shifts(db)
    except SQLAlchemyError as e:
        logger.error("list_users_failed", error=str(e))
        raise FunctionError(500, f"Failed to fetch users: {e}")
    logger.info("list_users", caller=caller.id, count=len(users))
    return {"success": True, "users": users}


@router.post("/update-user-role")
def update_user_role(
    payload: Optional[dict] = Body(default=None),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    caller = _caller(creds, db)
    _require_metadata_admin(caller, "Only admins can update user roles")

    payload = payload or {}
    user_id, role, shift = payload.get("userId"), payload.get("role"), payload.get("shift")
    if not user_id or not role:
        raise FunctionError(400, "Missing required fields: userId and role")
    try:
        validate_role(role)
    except ValueError as e:
        raise FunctionError(400, str(e))
    if shift and shift not in USER_SHIFTS:
        raise FunctionError(400, "Invalid shift value")

    try:
        result = apply_role_update(db, user_id, role, shift)
    except UserNotFound as e:
        raise FunctionError(404, str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("update_user_role_failed", user_id=user_id, error=str(e))
        raise FunctionError(500, f"Failed to update user: {e}")
    return {"success": True, "message": "User role updated successfully", **result}


@router.post("/update-user-shift")
def update_user_shift(
    payload: Optional[dict] = Body(default=None),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    caller = _caller(creds, db)
    _require_row_admin(db, caller, "Only admin users can update shifts")

    payload = payload or {}
    user_id, shift = payload.get("userId"), payload.get("shift")
    if not user_id or not shift:
        raise FunctionError(400, "userId and shift are required")
    try:
        validate_shift(shift)
    except ValueError as e:
        raise FunctionError(400, str(e))

    try:
        apply_shift_update(db, user_id, shift)
    except UserNotFound as e:
        raise FunctionError(404, str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("update_user_shift_failed", user_id=user_id, error=str(e))
        raise FunctionError(500, f"Failed to update user shift: {e}")
    return {"success": True, "message": "User shift updated successfully", "userId": user_id, "shift": shift}


@router.post("/sync-user-role")
def sync_role(
    payload: Optional[dict] = Body(default=None),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    user_id = (payload or {}).get("userId")
    if not user_id:
        raise FunctionError(400, "Invalid request body")
    caller = _caller(creds, db)
    if caller.id != user_id and not is_admin_role(metadata_role(caller)):
        raise FunctionError(403, "Forbidden: Can only sync your own role unless you are an admin")

    try:
        outcome = sync_user_role(db, user_id)
    except UserNotFound as e:
        raise FunctionError(500, str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("sync_user_role_failed", user_id=user_id, error=str(e))
        raise FunctionError(500, f"Database error: {e}")
    return {"success": True, **asdict(outcome)}


@router.get("/user-role-sync-status")
def role_sync_status(
    userId: Optional[str] = None,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    caller = _caller(creds, db)
    if userId and caller.id != userId and not is_admin_role(metadata_role(caller)):
        raise FunctionError(403, "Forbidden: Can only check your own role unless you are an admin")
    status = check_user_role_sync(db, userId)
    return {"success": status.error is None, **asdict(status)}


@router.post("/sync-all-user-roles")
def sync_all_roles(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    caller = _caller(creds, db)
    _require_metadata_admin(caller, "Only admins can sync all user roles")
    return asdict(sync_all_user_roles(db))


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    caller = _caller(creds, db)
    _require_metadata_admin(caller, "Only admins can delete users")
    if caller.id == user_id:
        raise FunctionError(400, "Admins cannot delete their own account")

    auth_user = db.query(AuthUser).filter(AuthUser.id == user_id).first()
    row = db.query(User).filter(User.id == user_id).first()
    if auth_user is None and row is None:
        raise FunctionError(404, "User not found")

    profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
    avatar_path = profile.avatar if profile else None
    db.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete()
    for obj in (profile, db.query(UserShift).filter(UserShift.user_id == user_id).first(), row, auth_user):
        if obj is not None:
            db.delete(obj)
    db.commit()

    bucket_prefix = f"{settings.avatar_bucket}/"
    if avatar_path and avatar_path.startswith(bucket_prefix):
        storage.delete(settings.avatar_bucket, avatar_path[len(bucket_prefix):])
    logger.info("user_deleted", user_id=user_id, caller=caller.id)
    return {"success": True, "message": "User deleted successfully", "userId": user_id}
