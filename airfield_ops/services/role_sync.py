"""
Role and shift reconciliation between the auth metadata copy (auth_users.user_metadata)
and the users row copy of the same fields.

Updates that touch both copies run in one transaction. The only tolerated partial
failure is creating a missing users row during a sync, where the auth role stays
authoritative.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import AuthUser, User, UserShift
from .permissions import DEFAULT_ROLE, DEFAULT_SHIFT


logger = structlog.get_logger(__name__)


class UserNotFound(LookupError):
    pass


@dataclass
class SyncOutcome:
    role: str
    updated: bool
    message: str


@dataclass
class RoleSyncStatus:
    in_sync: bool
    db_role: Optional[str]
    auth_role: Optional[str]
    error: Optional[str] = None


@dataclass
class BulkSyncResult:
    success: bool = True
    synced: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _set_metadata(auth_user: AuthUser, **values) -> None:
    # JSON columns are not mutation-tracked; always assign a fresh dict
    merged = dict(auth_user.user_metadata or {})
    merged.update(values)
    auth_user.user_metadata = merged
    auth_user.updated_at = _now()


def local_part(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.split("@")[0]


def sync_user_role(db: Session, user_id: str) -> SyncOutcome:
    """
    Bring the two role copies into agreement.

    A users row with a role wins over auth metadata. A row without a role takes the
    auth role. A missing row is created from the auth user when it has an email.
    """
    auth_user = db.query(AuthUser).filter(AuthUser.id == user_id).first()
    if auth_user is None:
        raise UserNotFound("Failed to get user from Auth: User not found")

    auth_role = (auth_user.user_metadata or {}).get("role") or DEFAULT_ROLE
    row = db.query(User).filter(User.id == user_id).first()
    effective_role = auth_role
    updated = False

    if row is not None:
        if row.role and row.role != auth_role:
            logger.info("role_sync_push_to_auth", user_id=user_id, db_role=row.role, auth_role=auth_role)
            _set_metadata(auth_user, role=row.role)
            effective_role = row.role
            updated = True
        elif auth_role and row.role != auth_role:
            logger.info("role_sync_push_to_db", user_id=user_id, auth_role=auth_role)
            row.role = auth_role
            row.updated_at = _now()
            updated = True
        db.commit()
    elif auth_user.email:
        logger.info("role_sync_create_row", user_id=user_id)
        meta = auth_user.user_metadata or {}
        try:
            db.add(User(
                id=user_id,
                username=meta.get("username") or local_part(auth_user.email),
                name=meta.get("name") or local_part(auth_user.email),
                email=auth_user.email,
                role=auth_role,
                shift=meta.get("shift"),
            ))
            db.commit()
            updated = True
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("role_sync_create_row_failed", user_id=user_id, error=str(e), role=auth_role)

    return SyncOutcome(
        role=effective_role,
        updated=updated,
        message="Role synchronized successfully" if updated else "Role already in sync",
    )


def check_user_role_sync(db: Session, user_id: Optional[str]) -> RoleSyncStatus:
    if not user_id:
        return RoleSyncStatus(False, None, None, "Missing userId parameter")
    row = db.query(User).filter(User.id == user_id).first()
    if row is None:
        return RoleSyncStatus(False, None, None, "Database error")
    auth_user = db.query(AuthUser).filter(AuthUser.id == user_id).first()
    if auth_user is None:
        return RoleSyncStatus(False, row.role, None, "Auth metadata error")
    auth_role = (auth_user.user_metadata or {}).get("role")
    return RoleSyncStatus(row.role == auth_role, row.role, auth_role)


def sync_all_user_roles(db: Session) -> BulkSyncResult:
    """Push every users row role into auth metadata. One user's failure does not stop the rest."""
    result = BulkSyncResult()
    for row in db.query(User).order_by(User.created_at.asc()).all():
        try:
            with db.begin_nested():
                auth_user = db.query(AuthUser).filter(AuthUser.id == row.id).first()
                if auth_user is None:
                    raise UserNotFound("auth user not found")
                _set_metadata(auth_user, role=row.role or DEFAULT_ROLE)
            result.synced += 1
        except (UserNotFound, SQLAlchemyError) as e:
            result.failed += 1
            result.errors.append(f"User {row.id}: {e}")
    db.commit()
    if result.failed:
        result.success = False
    logger.info("role_sync_all", synced=result.synced, failed=result.failed)
    return result


def apply_role_update(db: Session, user_id: str, role: str, shift: Optional[str] = None) -> dict:
    auth_user = db.query(AuthUser).filter(AuthUser.id == user_id).first()
    if auth_user is None:
        raise UserNotFound("Failed to fetch user: User not found")

    existing = auth_user.user_metadata or {}
    effective_shift = shift or existing.get("shift") or DEFAULT_SHIFT
    _set_metadata(auth_user, role=role, shift=effective_shift)

    row = db.query(User).filter(User.id == user_id).first()
    if row is not None:
        row.role = role
        row.updated_at = _now()
        if shift:
            row.shift = shift
    else:
        logger.warning("role_update_row_missing", user_id=user_id)
    db.commit()
    logger.info("role_updated", user_id=user_id, role=role, shift=effective_shift)
    return {"userId": user_id, "role": role, "shift": effective_shift}


def upsert_user_shift(db: Session, user_id: str, shift: str) -> UserShift:
    record = db.query(UserShift).filter(UserShift.user_id == user_id).first()
    if record is None:
        record = UserShift(user_id=user_id, shift=shift)
        db.add(record)
    record.shift = shift
    record.updated_at = _now()
    return record


def apply_shift_update(db: Session, user_id: str, shift: str) -> None:
    auth_user = db.query(AuthUser).filter(AuthUser.id == user_id).first()
    if auth_user is None:
        raise UserNotFound("Target user not found")
    upsert_user_shift(db, user_id, shift)
    _set_metadata(auth_user, shift=shift)
    row = db.query(User).filter(User.id == user_id).first()
    if row is not None:
        row.shift = shift
        row.updated_at = _now()
    db.commit()
    logger.info("shift_updated", user_id=user_id, shift=shift)
