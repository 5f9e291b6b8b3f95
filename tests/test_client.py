import json

import httpx
import pytest

from airfield_ops.client.admin_override import (
    enable_admin_override,
    ensure_admin_rights,
    force_admin_rights,
    has_admin_override,
    remove_admin_override,
)
from airfield_ops.client.api import SESSION_KEY, AirfieldClient, APIError
from airfield_ops.client.storage import LocalStorage
from airfield_ops.client.user_management import (
    PARTIAL_ROLE_SYNC,
    check_user_role_sync,
    get_all_users,
    sync_all_user_roles,
    sync_user_role,
    update_user_role,
    update_user_shift,
)


USER = {"id": "u1", "username": "tech", "name": "Tej", "email": "tech@airport.com", "role": "technician",
        "shift": "B", "permissions": ["view_tasks"]}


class FakeServer:
    """Routes (method, path) to a JSON body, a (status, body) pair, or an exception to raise."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, result):
        self.routes[(method, path)] = result

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, body))
        result = self.routes.get(key)
        if result is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        if isinstance(result, Exception):
            raise result
        if isinstance(result, tuple):
            status, payload = result
            return httpx.Response(status, json=payload)
        return httpx.Response(200, json=result)

    def paths(self):
        return [(m, p) for m, p, _ in self.calls]


@pytest.fixture()
def store(tmp_path):
    return LocalStorage(str(tmp_path / "state.json"))


@pytest.fixture()
def server():
    return FakeServer()


@pytest.fixture()
def api(server, store):
    c = AirfieldClient(base_url="http://api.test", store=store, transport=httpx.MockTransport(server))
    yield c
    c.close()


@pytest.fixture()
def signed_in(api, store):
    store.set_item(SESSION_KEY, json.dumps({"access_token": "tok", "refresh_token": "ref", "user": USER}))
    return api


def test_local_storage_persists_strings(tmp_path):
    path = tmp_path / "nested" / "state.json"
    s = LocalStorage(str(path))
    s.set_item("flag", True)
    s.set_item("name", "x")
    s.remove_item("name")

    reloaded = LocalStorage(str(path))
    assert reloaded.get_item("flag") == "True"
    assert "name" not in reloaded
    reloaded.clear()
    assert LocalStorage(str(path)).get_item("flag") is None


def test_local_storage_ignores_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken")
    assert LocalStorage(str(path)).get_item("anything") is None


def test_admin_override(store):
    assert ensure_admin_rights(USER, store) == USER
    enable_admin_override(store)
    assert has_admin_override(store)
    forced = ensure_admin_rights(USER, store)
    assert forced["role"] == "admin"
    assert forced["permissions"] == ["all"]
    assert USER["role"] == "technician"
    remove_admin_override(store)
    assert not has_admin_override(store)
    assert force_admin_rights(None) is None


def test_sign_in_stores_session(api, server, store):
    server.on("POST", "/auth/login", {"access_token": "tok", "refresh_token": "ref", "token_type": "bearer",
                                      "expires_in": 60, "user": USER})
    user = api.sign_in("tech", "secret123")

    assert user == USER
    assert api.access_token == "tok"
    assert json.loads(store.get_item(SESSION_KEY))["refresh_token"] == "ref"
    assert server.calls[0][2] == {"identifier": "tech", "password": "secret123"}


def test_sign_in_failure_raises(api, server):
    server.on("POST", "/auth/login", (401, {"detail": "Invalid login credentials"}))
    with pytest.raises(APIError) as exc:
        api.sign_in("tech", "bad")
    assert exc.value.status == 401
    assert exc.value.message == "Invalid login credentials"
    assert api.get_session() is None


def test_current_user_applies_override(signed_in, server, store):
    server.on("GET", "/auth/me", USER)
    enable_admin_override(store)
    assert signed_in.current_user()["role"] == "admin"


def test_requests_without_session_fail_fast(api, server):
    with pytest.raises(APIError) as exc:
        api.get_maintenance_tasks()
    assert exc.value.message == "Authentication required"
    assert server.calls == []
    assert api.current_user() is None


def test_sign_out_clears_session_even_when_server_fails(signed_in, server):
    server.on("POST", "/auth/logout", (500, {"detail": "boom"}))
    with pytest.raises(APIError):
        signed_in.sign_out()
    assert signed_in.get_session() is None


def test_check_connection_reports_transport_errors(api, server):
    server.on("GET", "/healthz", httpx.ConnectError("refused"))
    result = api.check_connection()
    assert result["connected"] is False
    assert result["message"].startswith("Connection failed")


def test_call_function_raises_on_unsuccessful_envelope(signed_in, server):
    server.on("POST", "/functions/v1/sync-user-role", {"success": False, "error": "nope"})
    with pytest.raises(APIError, match="nope"):
        signed_in.call_function("sync-user-role", payload={"userId": "u1"})


def test_update_user_role_with_shift(signed_in, server):
    server.on("POST", "/functions/v1/update-user-role", {"success": True})
    server.on("POST", "/functions/v1/update-user-shift", {"success": True})

    result = update_user_role(signed_in, "u2", "engineer", "C")

    assert result.success is True
    assert server.calls[0][2] == {"userId": "u2", "role": "engineer", "shift": "C"}
    assert server.paths()[1] == ("POST", "/functions/v1/update-user-shift")


def test_update_user_role_shift_followup_failure_is_not_fatal(signed_in, server):
    server.on("POST", "/functions/v1/update-user-role", {"success": True})
    server.on("POST", "/functions/v1/update-user-shift", (500, {"success": False, "error": "down"}))
    server.on("PUT", "/users/user-shifts/u2", (403, {"detail": "Forbidden"}))

    assert update_user_role(signed_in, "u2", "engineer", "C").success is True


def test_update_user_role_failure(signed_in, server):
    server.on("POST", "/functions/v1/update-user-role", (403, {"success": False, "error": "Only admins can update user roles"}))
    result = update_user_role(signed_in, "u2", "admin")
    assert result.success is False
    assert result.error == "Only admins can update user roles"


def test_update_user_role_requires_session(api):
    assert update_user_role(api, "u2", "admin").error == "Authentication required"


def test_update_user_shift_falls_back_to_row_upsert(signed_in, server):
    server.on("POST", "/functions/v1/update-user-shift", httpx.ConnectError("refused"))
    server.on("PUT", "/users/user-shifts/u2", {"user_id": "u2", "shift": "D"})

    result = update_user_shift(signed_in, "u2", "D")

    assert result.success is True
    assert server.calls[-1] == ("PUT", "/users/user-shifts/u2", {"shift": "D"})


def test_update_user_shift_fallback_failure(signed_in, server):
    server.on("POST", "/functions/v1/update-user-shift", (500, {"success": False, "error": "down"}))
    server.on("PUT", "/users/user-shifts/u2", (403, {"detail": "Forbidden"}))

    result = update_user_shift(signed_in, "u2", "D")

    assert result.success is False
    assert result.error == "Forbidden"


def test_get_all_users_via_function(signed_in, server):
    server.on("GET", "/functions/v1/list-users", {"success": True, "users": [
        {"id": "u1", "email": "tej.patel@airport.com", "role": "technician", "shift": "B"},
        {"id": "u2", "email": "x@airport.com"},
    ]})

    users = get_all_users(signed_in)

    assert users[0]["username"] == "tej.patel"
    assert users[0]["permissions"] == ["view_tasks", "update_task_status", "view_maps"]
    assert users[1]["role"] == "viewer"
    assert users[1]["shift"] == "Regular"


def test_get_all_users_falls_back_to_rows(signed_in, server):
    server.on("GET", "/functions/v1/list-users", (403, {"success": False, "error": "Only admin users can list all users"}))
    server.on("GET", "/users", [{"id": "u1", "email": "a@airport.com", "role": "engineer", "shift": "A"}])

    users = get_all_users(signed_in)

    assert [u["role"] for u in users] == ["engineer"]


def test_get_all_users_bypass_merges_shift_assignments(signed_in, server):
    server.on("GET", "/users", [{"id": "u1", "email": "a@airport.com", "role": "engineer", "shift": "A"}])
    server.on("GET", "/users/user-shifts", [{"user_id": "u1", "shift": "D"}])

    users = get_all_users(signed_in, bypass_function=True)

    assert users[0]["shift"] == "D"
    assert ("GET", "/functions/v1/list-users") not in server.paths()


def test_get_all_users_raises_when_every_source_fails(signed_in, server):
    server.on("GET", "/functions/v1/list-users", httpx.ConnectError("refused"))
    server.on("GET", "/users", httpx.ConnectError("refused"))

    with pytest.raises(APIError, match="Failed to fetch users. Please try again later."):
        get_all_users(signed_in)


def test_sync_user_role_success(signed_in, server):
    server.on("PATCH", "/users/u2", {"id": "u2", "role": "engineer"})
    server.on("POST", "/functions/v1/update-user-role", {"success": True})

    result = sync_user_role(signed_in, "u2", "engineer")

    assert result.success is True
    assert result.error is None
    assert server.paths() == [("PATCH", "/users/u2"), ("POST", "/functions/v1/update-user-role")]


def test_sync_user_role_partial_success_when_function_unreachable(signed_in, server):
    server.on("PATCH", "/users/u2", {"id": "u2", "role": "engineer"})
    server.on("POST", "/functions/v1/update-user-role", httpx.ConnectError("refused"))

    result = sync_user_role(signed_in, "u2", "engineer")

    assert result.success is True
    assert result.error == PARTIAL_ROLE_SYNC


def test_sync_user_role_function_error_is_failure(signed_in, server):
    server.on("PATCH", "/users/u2", {"id": "u2", "role": "engineer"})
    server.on("POST", "/functions/v1/update-user-role", (403, {"success": False, "error": "Only admins can update user roles"}))

    result = sync_user_role(signed_in, "u2", "engineer")

    assert result.success is False
    assert result.error == "Only admins can update user roles"


def test_sync_user_role_row_failure_stops(signed_in, server):
    server.on("PATCH", "/users/u2", (403, {"detail": "Forbidden"}))
    result = sync_user_role(signed_in, "u2", "engineer")
    assert result.success is False
    assert len(server.calls) == 1


def test_sync_user_role_missing_parameters(api):
    assert sync_user_role(api, "", "admin").error == "Missing required parameters"


def test_check_and_sync_all_wrappers(signed_in, server):
    server.on("GET", "/functions/v1/user-role-sync-status",
              {"success": True, "in_sync": True, "db_role": "admin", "auth_role": "admin", "error": None})
    server.on("POST", "/functions/v1/sync-all-user-roles", {"success": False, "synced": 1, "failed": 1, "errors": ["User x: gone"]})

    assert check_user_role_sync(signed_in, "u1")["in_sync"] is True
    assert check_user_role_sync(signed_in, None)["error"] == "Missing userId parameter"
    assert sync_all_user_roles(signed_in)["errors"] == ["User x: gone"]


def test_role_sync_endpoint_wrappers(signed_in, server):
    server.on("GET", "/functions/v1/user-role-sync-status",
              {"success": True, "in_sync": False, "db_role": "engineer", "auth_role": "viewer", "error": None})
    server.on("POST", "/functions/v1/sync-all-user-roles", {"success": True, "synced": 3, "failed": 0, "errors": []})

    assert signed_in.get_role_sync_status("u1")["db_role"] == "engineer"
    assert signed_in.sync_all_roles()["synced"] == 3
    assert server.paths() == [
        ("GET", "/functions/v1/user-role-sync-status"),
        ("POST", "/functions/v1/sync-all-user-roles"),
    ]


def test_check_and_sync_all_wrappers_report_transport_errors(signed_in, server):
    server.on("GET", "/functions/v1/user-role-sync-status", httpx.ConnectError("down"))
    server.on("POST", "/functions/v1/sync-all-user-roles", httpx.ConnectError("down"))

    status = check_user_role_sync(signed_in, "u1")
    assert status["in_sync"] is False
    assert status["error"] == "down"
    assert sync_all_user_roles(signed_in) == {"success": False, "synced": 0, "failed": 0, "errors": ["down"]}
