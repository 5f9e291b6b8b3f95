from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_admin_row, row_role
from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, User, UserShift
from ..schemas.users import UserRowPatch, UserShiftUpsert
from ..services.avatars import get_avatar_url, resolve_user_avatar, upload_avatar
from ..services.directory import list_user_rows
from ..services.permissions import ROLES, USER_SHIFTS, is_admin_role
from ..services.role_sync import upsert_user_shift
from ..storage.local_provider import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/users", tags=["users"])
storage_router = APIRouter(prefix="/storage/v1/object/public", tags=["storage"])
logger = structlog.get_logger(__name__)


def _user_to_dict(u: User, shift: Optional[str] = None) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "shift": shift or u.shift,
        "avatar": u.avatar,
        "created_at": u.created_at.isoformat() if u.created_at else None,
        "updated_at": u.updated_at.isoformat() if u.updated_at else None,
    }


def _require_self_or_admin(db: Session, caller: AuthUser, user_id: str) -> bool:
    admin = is_admin_role(row_role(db, caller.id))
    if caller.id != user_id and not admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return admin


@router.get("")
def list_users(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return list_user_rows(db)


@router.get("/user-shifts")
def list_user_shifts(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return [
        {"user_id": s.user_id, "shift": s.shift, "updated_at": s.updated_at.isoformat() if s.updated_at else None}
        for s in db.query(UserShift).order_by(UserShift.user_id.asc()).all()
    ]


@router.put("/user-shifts/{user_id}")
def put_user_shift(
    user_id: str,
    body: UserShiftUpsert,
    db: Session = Depends(get_db),
    caller: AuthUser = Depends(require_admin_row),
):
    if body.shift not in USER_SHIFTS:
        raise HTTPException(status_code=400, detail="Invalid shift value")
    record = upsert_user_shift(db, user_id, body.shift)
    db.commit()
    logger.info("user_shift_upserted", user_id=user_id, shift=body.shift, caller=caller.id)
    return {"user_id": record.user_id, "shift": record.shift}


@router.get("/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db), _=Depends(get_current_user)):
    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    shift = db.query(UserShift).filter(UserShift.user_id == user_id).first()
    return _user_to_dict(u, shift.shift if shift else None)


@router.patch("/{user_id}")
def patch_user(
    user_id: str,
    body: UserRowPatch,
    db: Session = Depends(get_db),
    caller: AuthUser = Depends(get_current_user),
):
    """Update the users row only. Auth metadata is left as is; see /functions/v1/sync-user-role."""
    admin = _require_self_or_admin(db, caller, user_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if ("role" in changes or "shift" in changes) and not admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    if "role" in changes and changes["role"] not in ROLES:
        raise HTTPException(status_code=400, detail="Invalid role value")
    if "shift" in changes and changes["shift"] not in USER_SHIFTS:
        raise HTTPException(status_code=400, detail="Invalid shift value")

    u = db.query(User).filter(User.id == user_id).first()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    for key, value in changes.items():
        setattr(u, key, value)
    u.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(u)
    logger.info("user_row_updated", user_id=user_id, fields=sorted(changes), caller=caller.id)
    return _user_to_dict(u)


@router.post("/{user_id}/avatar")
async def post_avatar(
    user_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    caller: AuthUser = Depends(get_current_user),
):
    _require_self_or_admin(db, caller, user_id)
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    try:
        path = upload_avatar(db, storage, user_id, data, file.content_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"avatar": path, "url": get_avatar_url(storage, path)}


@router.get("/{user_id}/avatar")
def get_avatar(
    user_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(get_current_user),
):
    path = resolve_user_avatar(db, user_id)
    return {"avatar": path, "url": get_avatar_url(storage, path)}


@storage_router.get("/{bucket}/{key:path}")
def public_object(bucket: str, key: str, storage: StorageProvider = Depends(get_storage)):
    if bucket != settings.avatar_bucket:
        raise HTTPException(status_code=404, detail="Bucket not found")
    try:
        data = storage.open(bucket, key)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Object not found")
    return Response(content=data, media_type="image/png")
