import pytest
from fastapi import HTTPException

from airfield_ops.auth.router import compute_username
from airfield_ops.auth.security import require_admin_metadata, require_admin_row
from airfield_ops.models.models import AuthUser, RefreshToken, User


def _signup(client, email="new.user@airport.com", **extra):
    return client.post("/auth/signup", json={"email": email, "password": "secret123", **extra})


def test_signup_creates_viewer_in_both_stores(client, db):
    r = _signup(client, name="New User", shift="B")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "viewer"
    assert body["user"]["shift"] == "B"
    assert body["user"]["permissions"] == ["view_tasks"]

    auth_user = db.query(AuthUser).filter(AuthUser.email == "new.user@airport.com").one()
    row = db.get(User, auth_user.id)
    assert auth_user.user_metadata["role"] == "viewer"
    assert row.role == "viewer"
    assert row.username == "new.user"


def test_signup_duplicate_email(client):
    assert _signup(client).status_code == 200
    r = _signup(client)
    assert r.status_code == 409
    assert r.json()["detail"] == "User already registered"


def test_signup_rejects_unknown_shift(client):
    assert _signup(client, shift="Night").status_code == 400


def test_login_by_email_and_username(client, technician):
    r = client.post("/auth/login", json={"identifier": "tech@airport.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "technician"

    r = client.post("/auth/login", json={"identifier": "tech", "password": "secret123"})
    assert r.status_code == 200


def test_login_bad_password(client, technician):
    r = client.post("/auth/login", json={"identifier": "tech@airport.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid login credentials"


def test_login_syncs_row_role_into_metadata(client, db, user_factory):
    user = user_factory("promoted@airport.com", role="viewer", row_role="engineer")

    r = client.post("/auth/login", json={"identifier": "promoted@airport.com", "password": "secret123"})

    assert r.status_code == 200
    assert r.json()["user"]["role"] == "engineer"
    db.expire_all()
    assert db.get(AuthUser, user.id).user_metadata["role"] == "engineer"


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401


def test_me_returns_app_user(client, admin, admin_headers):
    r = client.get("/auth/me", headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == admin.id
    assert body["role"] == "admin"
    assert body["permissions"] == ["all"]
    assert body["name"] == "Airfield Admin"


def test_refresh_rotates_token(client, technician):
    tokens = client.post("/auth/login", json={"identifier": "tech@airport.com", "password": "secret123"}).json()

    r = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["refresh_token"] != tokens["refresh_token"]

    reused = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401
    assert reused.json()["detail"] == "Refresh token revoked"


def test_access_token_is_not_a_refresh_token(client, technician):
    tokens = client.post("/auth/login", json={"identifier": "tech@airport.com", "password": "secret123"}).json()
    r = client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert r.status_code == 400


def test_logout_revokes_refresh_tokens(client, db, technician):
    tokens = client.post("/auth/login", json={"identifier": "tech@airport.com", "password": "secret123"}).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    assert client.post("/auth/logout", headers=headers).status_code == 200

    db.expire_all()
    assert db.query(RefreshToken).filter(RefreshToken.user_id == technician.id).count() == 0
    assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


def test_compute_username():
    assert compute_username("Jane.Doe@airport.com") == "jane.doe"
    assert compute_username("jane@airport.com", 2) == "jane2"


def test_admin_dependencies_read_different_role_copies(db, user_factory):
    meta_only = user_factory("meta.only@airport.com", role="admin", row_role="viewer")
    assert require_admin_metadata(meta_only) is meta_only
    with pytest.raises(HTTPException) as exc:
        require_admin_row(meta_only, db)
    assert exc.value.status_code == 403

    no_row = user_factory("no.row@airport.com", role="admin", with_row=False)
    with pytest.raises(HTTPException) as exc:
        require_admin_row(no_row, db)
    assert exc.value.status_code == 404
