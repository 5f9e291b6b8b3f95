"""
Local admin override. Only changes how the signed-in user is presented on this
machine; the server never sees it and keeps enforcing the real role.
"""
from typing import Optional

from .storage import LocalStorage


OVERRIDE_KEY = "admin_override"


def has_admin_override(store: LocalStorage) -> bool:
    return store.get_item(OVERRIDE_KEY) == "true"


def enable_admin_override(store: LocalStorage) -> None:
    store.set_item(OVERRIDE_KEY, "true")


def remove_admin_override(store: LocalStorage) -> None:
    store.remove_item(OVERRIDE_KEY)


def force_admin_rights(user: Optional[dict]) -> Optional[dict]:
    if not user:
        return None
    return {**user, "role": "admin", "permissions": ["all"]}


def ensure_admin_rights(user: Optional[dict], store: LocalStorage) -> Optional[dict]:
    if has_admin_override(store):
        return force_admin_rights(user)
    return user
