import re
from typing import Dict, Optional, Any

from .permissions import ROLES, USER_SHIFTS


EMAIL_RE = re.compile(r"\S+@\S+\.\S+")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def _text(data: Dict[str, Any], key: str) -> str:
    return str(data.get(key) or "")


def validate_user_form(data: Dict[str, Any], editing: bool = False) -> Dict[str, str]:
    """
    Validate the add/edit user form.

    Returns a mapping of field name -> message; an empty mapping means valid.
    Password rules only apply when creating a user.
    """
    errors: Dict[str, str] = {}

    username = _text(data, "username")
    if not username.strip():
        errors["username"] = "Username is required"
    elif len(username) < MIN_USERNAME_LENGTH:
        errors["username"] = f"Username must be at least {MIN_USERNAME_LENGTH} characters"

    if not _text(data, "name").strip():
        errors["name"] = "Name is required"

    email = _text(data, "email")
    if not email.strip():
        errors["email"] = "Email is required"
    elif not EMAIL_RE.search(email):
        errors["email"] = "Email is invalid"

    if not editing:
        password = _text(data, "password")
        if not password.strip():
            errors["password"] = "Password is required"
        elif len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        if password != _text(data, "confirm_password"):
            errors["confirm_password"] = "Passwords do not match"

    role = data.get("role")
    if role not in ROLES:
        errors["role"] = "Invalid role value"

    shift = data.get("shift")
    if shift and shift not in USER_SHIFTS:
        errors["shift"] = "Invalid shift value"

    return errors


def validate_daily_report(report: Dict[str, Any]) -> Optional[str]:
    """Area and location are required; corrective work needs at least one fitting."""
    if not report.get("area") or not report.get("location"):
        return "Please fill all required fields. Description is optional."
    if report.get("maintenance_type", "corrective") == "corrective" and not report.get("fittings"):
        return "Please fill all required fields. Description is optional."
    return None


def validate_role(role: Optional[str]) -> str:
    if role not in ROLES:
        raise ValueError("Invalid role value")
    return role


def validate_shift(shift: Optional[str]) -> str:
    if shift not in USER_SHIFTS:
        raise ValueError(f"Invalid shift. Valid shifts are: {', '.join(USER_SHIFTS)}")
    return shift
