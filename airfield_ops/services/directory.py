from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models.models import AuthUser, User, UserShift
from .permissions import DEFAULT_ROLE, DEFAULT_SHIFT, permissions_for_role
from .role_sync import local_part


def format_user(record: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a user record from any source into the application user."""
    email = record.get("email")
    role = record.get("role") or DEFAULT_ROLE
    return {
        "id": record.get("id"),
        "username": local_part(email) or record.get("username") or "unknown",
        "name": record.get("name") or local_part(email) or "unknown",
        "email": email or "unknown",
        "role": role,
        "shift": record.get("shift") or DEFAULT_SHIFT,
        "avatar": record.get("avatar"),
        "permissions": permissions_for_role(role),
    }


def format_user_list(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [format_user(r) for r in records]


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def list_users_with_shifts(db: Session) -> List[Dict[str, Any]]:
    """
    Merge auth users with their users rows and shift assignments.
    Precedence: shift = user_shifts, row, Regular; role = metadata, row, viewer.
    """
    rows = {u.id: u for u in db.query(User).all()}
    shifts = {s.user_id: s.shift for s in db.query(UserShift).all()}

    merged = []
    for auth_user in db.query(AuthUser).order_by(AuthUser.created_at.desc()).all():
        meta = auth_user.user_metadata or {}
        row = rows.get(auth_user.id)
        merged.append({
            "id": auth_user.id,
            "email": auth_user.email,
            "name": meta.get("name") or (row.name if row else None) or local_part(auth_user.email) or "Unknown",
            "role": meta.get("role") or (row.role if row else None) or DEFAULT_ROLE,
            "shift": shifts.get(auth_user.id) or (row.shift if row else None) or DEFAULT_SHIFT,
            "avatar": row.avatar if row else None,
            "created_at": _iso(auth_user.created_at),
            "updated_at": _iso(auth_user.updated_at) or (_iso(row.updated_at) if row else None),
        })
    return merged


def list_user_rows(db: Session) -> List[Dict[str, Any]]:
    """Users rows only, shift assignments applied. Used when the auth side is unavailable."""
    shifts = {s.user_id: s.shift for s in db.query(UserShift).all()}
    return [
        {
            "id": u.id,
            "username": u.username,
            "name": u.name,
            "email": u.email,
            "role": u.role,
            "shift": shifts.get(u.id) or u.shift,
            "avatar": u.avatar,
        }
        for u in db.query(User).order_by(User.created_at.desc()).all()
    ]
