from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from slugify import slugify
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, RefreshToken, User, UserShift
from ..schemas.auth import AppUser, LoginRequest, RefreshRequest, SignupRequest, TokenResponse
from ..services.avatars import get_avatar_url, resolve_user_avatar
from ..services.directory import format_user
from ..services.permissions import DEFAULT_ROLE, DEFAULT_SHIFT, USER_SHIFTS
from ..services.role_sync import UserNotFound, sync_user_role
from ..storage.local_provider import get_storage
from .security import (
    create_access_token,
    create_refresh_token,
    current_permissions,
    decode_token,
    get_current_user,
    get_password_hash,
    metadata_role,
    verify_password,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def compute_username(email: str, suffix: Optional[int] = None) -> str:
    base = slugify(email.split("@")[0], lowercase=True, separator=".", regex_pattern=r"[^A-Za-z0-9.]") or "user"
    return f"{base}{suffix}" if suffix else base


def find_available_username(db: Session, email: str) -> str:
    i = 0
    while True:
        name = compute_username(email, i or None)
        if not db.query(User).filter(User.username == name).first():
            return name
        i += 1


def _derive_role(db: Session, user: AuthUser) -> str:
    try:
        return sync_user_role(db, user.id).role
    except (UserNotFound, SQLAlchemyError) as e:
        db.rollback()
        logger.warning("role_sync_failed", user_id=user.id, error=str(e))
        return metadata_role(user) or DEFAULT_ROLE


def _app_user(db: Session, user: AuthUser, role: str) -> AppUser:
    row = db.query(User).filter(User.id == user.id).first()
    shift_row = db.query(UserShift).filter(UserShift.user_id == user.id).first()
    meta = user.user_metadata or {}
    formatted = format_user({
        "id": user.id,
        "email": user.email,
        "name": (row.name if row else None) or meta.get("name"),
        "role": role,
        "shift": (shift_row.shift if shift_row else None) or (row.shift if row else None) or meta.get("shift"),
    })
    formatted["username"] = (row.username if row else None) or formatted["username"]
    formatted["avatar"] = get_avatar_url(get_storage(), resolve_user_avatar(db, user.id))
    formatted["permissions"] = current_permissions(db, user)
    return AppUser(**formatted)


def _issue_tokens(db: Session, user: AuthUser, role: str) -> TokenResponse:
    access = create_access_token(user.id, role=role)
    refresh, payload = create_refresh_token(user.id)
    db.add(RefreshToken(
        user_id=user.id,
        jti=payload["jti"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    ))
    db.commit()
    return TokenResponse(access_token=access, refresh_token=refresh, expires_in=settings.jwt_ttl_seconds)


@router.post("/signup", response_model=TokenResponse)
def signup(req: SignupRequest, db: Session = Depends(get_db)):
    email = req.email.lower()
    if db.query(AuthUser).filter(func.lower(AuthUser.email) == email).first():
        raise HTTPException(status_code=409, detail="User already registered")
    if req.shift and req.shift not in USER_SHIFTS:
        raise HTTPException(status_code=400, detail="Invalid shift value")

    username = req.username or find_available_username(db, email)
    if req.username and db.query(User).filter(User.username == req.username).first():
        raise HTTPException(status_code=409, detail="Username already taken")
    shift = req.shift or DEFAULT_SHIFT
    name = req.name or email.split("@")[0]

    user = AuthUser(
        email=email,
        password_hash=get_password_hash(req.password),
        user_metadata={"role": DEFAULT_ROLE, "shift": shift, "name": name, "username": username},
        last_sign_in_at=datetime.now(timezone.utc),
    )
    db.add(user)
    db.flush()
    db.add(User(id=user.id, username=username, name=name, email=email, role=DEFAULT_ROLE, shift=shift))
    db.commit()
    logger.info("user_signed_up", user_id=user.id)

    tokens = _issue_tokens(db, user, DEFAULT_ROLE)
    tokens.user = _app_user(db, user, DEFAULT_ROLE)
    return tokens


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    ident = req.identifier.strip()
    user = db.query(AuthUser).filter(func.lower(AuthUser.email) == ident.lower()).first()
    if user is None:
        row = db.query(User).filter(User.username == ident).first()
        if row is not None:
            user = db.query(AuthUser).filter(AuthUser.id == row.id).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid login credentials")

    user.last_sign_in_at = datetime.now(timezone.utc)
    db.commit()
    role = _derive_role(db, user)
    logger.info("user_signed_in", user_id=user.id, role=role)

    tokens = _issue_tokens(db, user, role)
    tokens.user = _app_user(db, user, role)
    return tokens


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    stored = db.query(RefreshToken).filter(RefreshToken.jti == payload.get("jti")).first()
    if stored is None:
        raise HTTPException(status_code=401, detail="Refresh token revoked")
    user = db.query(AuthUser).filter(AuthUser.id == str(payload["sub"])).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized access")
    # rotate: the presented token is single-use
    db.delete(stored)
    db.commit()
    role = _derive_role(db, user)
    return _issue_tokens(db, user, role)


@router.post("/logout")
def logout(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = db.query(RefreshToken).filter(RefreshToken.user_id == user.id).delete()
    db.commit()
    logger.info("user_signed_out", user_id=user.id, revoked=removed)
    return {"status": "signed_out"}


@router.get("/me", response_model=AppUser)
def me(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return _app_user(db, user, _derive_role(db, user))
