"""
HTTP client for the Airfield Ops API.
Keeps the session in LocalStorage and sends its access token as a bearer token.
"""
import json
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from .admin_override import ensure_admin_rights
from .storage import LocalStorage


logger = structlog.get_logger(__name__)

SESSION_KEY = "airfield_ops.session"


class APIError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail") or body.get("message")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return json.dumps(detail)
    return f"HTTP {response.status_code}"


class AirfieldClient:
    """Client for the Airfield Ops API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        store: Optional[LocalStorage] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.store = store or LocalStorage()
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout or settings.client_timeout_s,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # Session

    def get_session(self) -> Optional[Dict[str, Any]]:
        raw = self.store.get_item(SESSION_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("session_unreadable")
            self.store.remove_item(SESSION_KEY)
            return None

    def _save_session(self, tokens: Dict[str, Any]) -> None:
        self.store.set_item(SESSION_KEY, json.dumps(tokens))

    @property
    def access_token(self) -> Optional[str]:
        session = self.get_session()
        return session.get("access_token") if session else None

    def _request(self, method: str, path: str, auth: bool = True, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if auth:
            token = self.access_token
            if not token:
                raise APIError(401, "Authentication required")
            headers["Authorization"] = f"Bearer {token}"
        response = self._http.request(method, path, headers=headers, **kwargs)
        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("api_error", method=method, path=path, status=response.status_code, error=message)
            raise APIError(response.status_code, message)

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            return response.json()
        if content_type.startswith("text/"):
            return response.text
        return response.content

    def sign_in(self, identifier: str, password: str) -> Optional[Dict[str, Any]]:
        tokens = self._request("POST", "/auth/login", auth=False, json={"identifier": identifier, "password": password})
        self._save_session(tokens)
        logger.info("signed_in", user_id=(tokens.get("user") or {}).get("id"))
        return ensure_admin_rights(tokens.get("user"), self.store)

    def sign_up(self, email: str, password: str, name: Optional[str] = None, shift: Optional[str] = None) -> Optional[Dict[str, Any]]:
        payload = {"email": email, "password": password, "name": name, "shift": shift}
        tokens = self._request("POST", "/auth/signup", auth=False, json=payload)
        self._save_session(tokens)
        return ensure_admin_rights(tokens.get("user"), self.store)

    def refresh_session(self) -> Dict[str, Any]:
        session = self.get_session()
        if not session or not session.get("refresh_token"):
            raise APIError(401, "Authentication required")
        tokens = self._request("POST", "/auth/refresh", auth=False, json={"refresh_token": session["refresh_token"]})
        tokens.setdefault("user", session.get("user"))
        self._save_session(tokens)
        return tokens

    def sign_out(self) -> None:
        try:
            if self.access_token:
                self._request("POST", "/auth/logout")
        finally:
            self.store.remove_item(SESSION_KEY)

    def current_user(self) -> Optional[Dict[str, Any]]:
        """The signed-in user as the server sees it, with the local admin override applied."""
        if not self.access_token:
            return None
        return ensure_admin_rights(self._request("GET", "/auth/me"), self.store)

    def check_connection(self) -> Dict[str, Any]:
        try:
            return self._request("GET", "/healthz", auth=False)
        except (APIError, httpx.HTTPError) as e:
            return {"connected": False, "message": f"Connection failed: {e}"}

    # Maintenance tasks

    def get_maintenance_tasks(
        self,
        status: Optional[str] = None,
        area: Optional[str] = None,
        assigned_to: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {k: v for k, v in {"status": status, "area": area, "assigned_to": assigned_to, "limit": limit}.items() if v}
        return self._request("GET", "/maintenance-tasks", params=params)

    def get_maintenance_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/maintenance-tasks/{task_id}")

    def create_maintenance_task(self, task: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/maintenance-tasks", json=task)

    def update_maintenance_task(self, task_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/maintenance-tasks/{task_id}", json=changes)

    def delete_maintenance_task(self, task_id: str) -> None:
        self._request("DELETE", f"/maintenance-tasks/{task_id}")

    def complete_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/maintenance-tasks/{task_id}/complete")

    def submit_daily_report(self, report: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/maintenance-tasks/daily-report", json=report)

    def get_schedule(self, view: str = "week", anchor: Optional[date] = None) -> Dict[str, Any]:
        params = {"view": view}
        if anchor:
            params["anchor"] = anchor.isoformat()
        return self._request("GET", "/maintenance-tasks/schedule", params=params)

    def get_dashboard(self) -> Dict[str, Any]:
        return self._request("GET", "/dashboard")

    # Handover notes

    def get_handover_notes(self, **filters) -> List[Dict[str, Any]]:
        params = {k: (v.isoformat() if isinstance(v, date) else v) for k, v in filters.items() if v}
        return self._request("GET", "/handover-notes", params=params)

    def create_handover_note(self, note: Dict[str, Any], tasks: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        payload = dict(note)
        if isinstance(payload.get("date"), date):
            payload["date"] = payload["date"].isoformat()
        payload["tasks"] = tasks if tasks is not None else payload.get("tasks", [])
        return self._request("POST", "/handover-notes", json=payload)

    # Reference data

    def get_shifts(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/shifts")

    def get_areas(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/areas")

    def get_locations(self, area_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/areas/{area_id}/locations")

    def get_fittings(self, area_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/areas/{area_id}/fittings")

    # Reports

    def generate_report(self, report_type: str = "maintenance", date_range: str = "week", area: str = "all") -> Dict[str, Any]:
        return self._request("POST", "/reports/generate", json={"report_type": report_type, "date_range": date_range, "area": area})

    def export_report(self, fmt: str = "csv", report_type: str = "maintenance", date_range: str = "week", area: str = "all"):
        params = {"format": fmt, "report_type": report_type, "date_range": date_range, "area": area}
        return self._request("GET", "/reports/export", params=params)

    def save_report(self, report: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/reports", json=report)

    def get_reports(self, **filters) -> List[Dict[str, Any]]:
        return self._request("GET", "/reports", params={k: v for k, v in filters.items() if v})

    # Users (row-level access)

    def list_user_rows(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/users")

    def list_user_shifts(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/users/user-shifts")

    def update_user_row(self, user_id: str, **fields) -> Dict[str, Any]:
        return self._request("PATCH", f"/users/{user_id}", json=fields)

    def upsert_user_shift(self, user_id: str, shift: str) -> Dict[str, Any]:
        return self._request("PUT", f"/users/user-shifts/{user_id}", json={"shift": shift})

    def upload_avatar(self, user_id: str, data: bytes, filename: str = "avatar.png", content_type: str = "image/png") -> Dict[str, Any]:
        return self._request("POST", f"/users/{user_id}/avatar", files={"file": (filename, data, content_type)})

    def get_user_avatar(self, user_id: str) -> Optional[str]:
        return self._request("GET", f"/users/{user_id}/avatar").get("url")

    # Privileged functions

    def call_function(self, name: str, method: str = "POST", payload: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Call /functions/v1/<name>. A reply with success false raises APIError like an HTTP error."""
        if payload is not None:
            kwargs["json"] = payload
        result = self._request(method, f"/functions/v1/{name}", **kwargs)
        if isinstance(result, dict) and result.get("success") is False:
            raise APIError(400, result.get("error") or f"Function {name} failed")
        return result

    def get_role_sync_status(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", "/functions/v1/user-role-sync-status", params={"userId": user_id})

    def sync_all_roles(self) -> Dict[str, Any]:
        """Bulk sync; the reply is returned as is since success false only means some users failed."""
        return self._request("POST", "/functions/v1/sync-all-user-roles")
