"""
Role and shift vocabulary, and the role -> permission mapping.
"""
from typing import Iterable, List, Optional


ROLES = ("admin", "shift_leader", "engineer", "technician", "viewer")
USER_SHIFTS = ("A", "B", "C", "D", "Regular")
DEFAULT_ROLE = "viewer"
DEFAULT_SHIFT = "Regular"

ALL = "all"

ROLE_PERMISSIONS = {
    "admin": [ALL],
    "shift_leader": ["view_tasks", "create_tasks", "assign_tasks", "generate_reports", "view_maps"],
    "engineer": ["view_tasks", "create_tasks", "edit_tasks", "view_maps", "generate_reports"],
    "technician": ["view_tasks", "update_task_status", "view_maps"],
}


def permissions_for_role(role: Optional[str]) -> List[str]:
    """Permissions a role grants. Unknown roles get the viewer set."""
    return list(ROLE_PERMISSIONS.get(role or "", ["view_tasks"]))


def effective_permissions(role: Optional[str], grants: Iterable[str] = ()) -> List[str]:
    perms = permissions_for_role(role)
    if ALL in perms:
        return perms
    for g in grants:
        if g and g not in perms:
            perms.append(g)
    return perms


def has_permission(perms: Iterable[str], perm: str) -> bool:
    perms = list(perms or [])
    return ALL in perms or perm in perms


def is_admin_role(role: Optional[str]) -> bool:
    return (role or "").lower() == "admin"
