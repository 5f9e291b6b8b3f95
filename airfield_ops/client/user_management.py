"""
User administration helpers built on AirfieldClient.

Each helper tries the privileged function endpoint first and falls back to the
row-level routes where that is still meaningful. Failures are reported through
OperationResult instead of raising, except for get_all_users.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..services.directory import format_user_list
from ..services.permissions import DEFAULT_SHIFT
from .api import AirfieldClient, APIError


logger = structlog.get_logger(__name__)

PARTIAL_ROLE_SYNC = "Role was updated in database but not in Auth metadata. Full admin rights may not be applied."


@dataclass
class OperationResult:
    success: bool
    error: Optional[str] = None


def update_user_role(client: AirfieldClient, user_id: str, role: str, shift: Optional[str] = None) -> OperationResult:
    """Update role (and shift) through the function endpoint; a follow-up shift write failure is only logged."""
    if not client.access_token:
        return OperationResult(False, "Authentication required")
    payload = {"userId": user_id, "role": role}
    if shift:
        payload["shift"] = shift
    try:
        client.call_function("update-user-role", payload=payload)
    except APIError as e:
        return OperationResult(False, e.message or "Failed to update user role")
    except httpx.HTTPError as e:
        return OperationResult(False, str(e) or "Unknown error occurred")

    if shift:
        shift_result = update_user_shift(client, user_id, shift)
        if not shift_result.success:
            logger.warning("shift_followup_failed", user_id=user_id, error=shift_result.error)
    return OperationResult(True)


def update_user_shift(client: AirfieldClient, user_id: str, shift: str) -> OperationResult:
    if not client.access_token:
        return OperationResult(False, "Authentication required")
    try:
        client.call_function("update-user-shift", payload={"userId": user_id, "shift": shift})
        return OperationResult(True)
    except (APIError, httpx.HTTPError) as e:
        logger.warning("update_shift_function_failed", user_id=user_id, error=str(e))

    try:
        client.upsert_user_shift(user_id, shift)
    except APIError as e:
        return OperationResult(False, e.message or "Failed to update user shift in database")
    except httpx.HTTPError as e:
        return OperationResult(False, str(e) or "Unknown error occurred")
    return OperationResult(True)


def _merge_shifts(rows: List[Dict[str, Any]], shifts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    shift_map = {s["user_id"]: s["shift"] for s in shifts}
    return [{**r, "shift": shift_map.get(r["id"]) or r.get("shift") or DEFAULT_SHIFT} for r in rows]


def get_all_users(client: AirfieldClient, bypass_function: bool = False) -> List[Dict[str, Any]]:
    """
    All users in application shape.

    Order of attempts: row listing merged with shift assignments (only when
    bypass_function is set), the list-users function, then the plain row listing.
    Raises APIError when every source fails.
    """
    if not client.access_token:
        raise APIError(401, "Authentication required")

    if bypass_function:
        try:
            rows = client.list_user_rows()
            if rows:
                try:
                    shifts = client.list_user_shifts()
                except APIError as e:
                    logger.warning("user_shifts_unavailable", error=e.message)
                    return format_user_list(rows)
                return format_user_list(_merge_shifts(rows, shifts))
        except (APIError, httpx.HTTPError) as e:
            logger.warning("direct_user_listing_failed", error=str(e))

    try:
        result = client.call_function("list-users", method="GET")
        return format_user_list(result.get("users") or [])
    except (APIError, httpx.HTTPError) as e:
        logger.warning("list_users_function_failed", error=str(e))

    try:
        rows = client.list_user_rows()
    except (APIError, httpx.HTTPError) as e:
        logger.error("user_listing_failed", error=str(e))
        raise APIError(503, "Failed to fetch users. Please try again later.")
    return format_user_list(rows)


def sync_user_role(client: AirfieldClient, user_id: str, role: str) -> OperationResult:
    """
    Write the role to the users row, then push it to auth metadata through the
    function endpoint. If the second step cannot be reached the row change stands
    and the result is a partial success.
    """
    if not user_id or not role:
        return OperationResult(False, "Missing required parameters")
    try:
        client.update_user_row(user_id, role=role)
    except APIError as e:
        return OperationResult(False, e.message or "Unknown error occurred")
    except httpx.HTTPError as e:
        return OperationResult(False, str(e) or "Unknown error occurred")

    try:
        if not client.access_token:
            raise APIError(401, "No active session found")
        client.call_function("update-user-role", payload={"userId": user_id, "role": role})
    except APIError as e:
        if e.status == 401 and e.message == "No active session found":
            return OperationResult(True, PARTIAL_ROLE_SYNC)
        return OperationResult(False, e.message or "Failed to update role via function")
    except httpx.HTTPError as e:
        logger.warning("role_metadata_push_failed", user_id=user_id, error=str(e))
        return OperationResult(True, PARTIAL_ROLE_SYNC)
    return OperationResult(True)


def check_user_role_sync(client: AirfieldClient, user_id: Optional[str]) -> Dict[str, Any]:
    if not user_id:
        return {"in_sync": False, "db_role": None, "auth_role": None, "error": "Missing userId parameter"}
    try:
        result = client.get_role_sync_status(user_id)
    except (APIError, httpx.HTTPError) as e:
        return {"in_sync": False, "db_role": None, "auth_role": None, "error": str(e)}
    result.pop("success", None)
    return result


def sync_all_user_roles(client: AirfieldClient) -> Dict[str, Any]:
    try:
        return client.sync_all_roles()
    except (APIError, httpx.HTTPError) as e:
        return {"success": False, "synced": 0, "failed": 0, "errors": [str(e) or "Unknown error"]}
