import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import AuthUser, User, Permission
from ..services.permissions import DEFAULT_ROLE, effective_permissions, has_permission, is_admin_role


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> tuple[str, dict]:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, payload


def create_access_token(user_id: str, role: Optional[str] = None) -> str:
    token, _ = _create_token(user_id, settings.jwt_ttl_seconds, extra={"role": role or DEFAULT_ROLE})
    return token


def create_refresh_token(user_id: str) -> tuple[str, dict]:
    return _create_token(user_id, settings.refresh_ttl_seconds, extra={"type": "refresh"})


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def user_from_token(db: Session, token: str) -> AuthUser:
    payload = decode_token(token)
    if payload.get("type") == "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = db.query(AuthUser).filter(AuthUser.id == str(payload.get("sub"))).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access")
    return user


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> AuthUser:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_from_token(db, creds.credentials)


def metadata_role(user: AuthUser) -> Optional[str]:
    return (user.user_metadata or {}).get("role")


def row_role(db: Session, user_id: str) -> Optional[str]:
    row = db.query(User).filter(User.id == user_id).first()
    return row.role if row else None


def current_permissions(db: Session, user: AuthUser) -> list[str]:
    """Role from the users row, else auth metadata, else viewer; plus explicit grants."""
    role = row_role(db, user.id) or metadata_role(user) or DEFAULT_ROLE
    grants = [p.permission for p in db.query(Permission).filter(Permission.user_id == user.id).all()]
    return effective_permissions(role, grants)


def require_admin_metadata(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not is_admin_role(metadata_role(user)):
        raise HTTPException(status_code=403, detail="Only admins can perform this action")
    return user


def require_admin_row(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)) -> AuthUser:
    row = db.query(User).filter(User.id == user.id).first()
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not is_admin_role(row.role):
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def require_permissions(*required_permissions: str):
    """
    Require at least one of the specified permissions (OR logic).
    Admins ("all") pass every check.
    """
    def _dep(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)) -> AuthUser:
        perms = current_permissions(db, user)
        if not any(has_permission(perms, p) for p in required_permissions):
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return _dep
