import io
from datetime import datetime, timezone
from typing import Optional

import structlog
from PIL import Image as PILImage, UnidentifiedImageError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import User, UserProfile
from ..storage.provider import StorageProvider


logger = structlog.get_logger(__name__)

ALLOWED_CONTENT_TYPES = ("image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp")


def normalize_avatar(data: bytes, max_px: Optional[int] = None) -> bytes:
    """Decode, shrink to fit max_px on the longer side, and re-encode as PNG."""
    max_px = max_px or settings.avatar_max_px
    try:
        im = PILImage.open(io.BytesIO(data))
        im.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError("Invalid image file") from e
    try:
        if im.mode not in ("RGB", "RGBA"):
            im = im.convert("RGBA")
        im.thumbnail((max_px, max_px), PILImage.Resampling.LANCZOS)
        out = io.BytesIO()
        im.save(out, format="PNG", optimize=True)
        return out.getvalue()
    finally:
        im.close()


def avatar_key(user_id: str) -> str:
    return f"{user_id}.png"


def upload_avatar(db: Session, storage: StorageProvider, user_id: str, data: bytes, content_type: Optional[str]) -> str:
    """Store the avatar and point the user's profile at it. Returns the stored path (avatars/<id>.png)."""
    if content_type and content_type.lower() not in ALLOWED_CONTENT_TYPES:
        raise ValueError("Unsupported image type")
    png = normalize_avatar(data)

    bucket = settings.avatar_bucket
    storage.ensure_bucket(bucket)
    key = avatar_key(user_id)
    storage.put(bucket, key, png, content_type="image/png")
    path = f"{bucket}/{key}"

    now = datetime.now(timezone.utc)
    profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
    if profile is None:
        profile = UserProfile(id=user_id)
        db.add(profile)
    profile.avatar = path
    profile.avatar_updated_at = now
    profile.updated_at = now
    db.commit()
    logger.info("avatar_uploaded", user_id=user_id, bytes=len(png))
    return path


def get_avatar_url(storage: StorageProvider, avatar_path: Optional[str]) -> Optional[str]:
    if not avatar_path:
        return None
    if avatar_path.startswith("http"):
        return avatar_path
    bucket = settings.avatar_bucket
    key = avatar_path.replace(f"{bucket}/", "", 1)
    return storage.get_public_url(bucket, key)


def resolve_user_avatar(db: Session, user_id: Optional[str]) -> Optional[str]:
    """Profile avatar first, then the users row."""
    if not user_id:
        return None
    profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
    if profile and profile.avatar:
        return profile.avatar
    row = db.query(User).filter(User.id == user_id).first()
    if row and row.avatar:
        return row.avatar
    return None
