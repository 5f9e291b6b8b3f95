import io

import pytest
from PIL import Image

from airfield_ops.models.models import User, UserProfile
from airfield_ops.services.avatars import get_avatar_url, normalize_avatar, upload_avatar


def _png(size=(600, 300), color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def test_list_user_rows_applies_shift_assignments(client, admin_headers, technician):
    client.put(f"/users/user-shifts/{technician.id}", json={"shift": "C"}, headers=admin_headers)
    rows = {u["id"]: u for u in client.get("/users", headers=admin_headers).json()}
    assert rows[technician.id]["shift"] == "C"

    shifts = client.get("/users/user-shifts", headers=admin_headers).json()
    assert shifts == [{"user_id": technician.id, "shift": "C", "updated_at": shifts[0]["updated_at"]}]


def test_put_user_shift_requires_row_admin(client, tech_headers, technician):
    r = client.put(f"/users/user-shifts/{technician.id}", json={"shift": "C"}, headers=tech_headers)
    assert r.status_code == 403


def test_put_user_shift_rejects_unknown_shift(client, admin_headers, technician):
    r = client.put(f"/users/user-shifts/{technician.id}", json={"shift": "Night"}, headers=admin_headers)
    assert r.status_code == 400


def test_patch_own_name(client, db, technician, tech_headers):
    r = client.patch(f"/users/{technician.id}", json={"name": "T. Patel"}, headers=tech_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "T. Patel"


def test_non_admin_cannot_change_role_or_other_users(client, technician, viewer, tech_headers):
    assert client.patch(f"/users/{technician.id}", json={"role": "admin"}, headers=tech_headers).status_code == 403
    assert client.patch(f"/users/{viewer.id}", json={"name": "x"}, headers=tech_headers).status_code == 403


def test_admin_patches_row_role_only(client, db, technician, admin_headers):
    r = client.patch(f"/users/{technician.id}", json={"role": "engineer"}, headers=admin_headers)
    assert r.status_code == 200
    db.expire_all()
    assert db.get(User, technician.id).role == "engineer"
    # metadata untouched until a sync runs
    assert technician.user_metadata["role"] == "technician"

    assert client.patch(f"/users/{technician.id}", json={"role": "boss"}, headers=admin_headers).status_code == 400


def test_get_user(client, technician, tech_headers):
    assert client.get(f"/users/{technician.id}", headers=tech_headers).json()["email"] == "tech@airport.com"
    assert client.get("/users/ghost", headers=tech_headers).status_code == 404


def test_normalize_avatar_shrinks_and_reencodes():
    out = normalize_avatar(_png(), max_px=128)
    with Image.open(io.BytesIO(out)) as im:
        assert im.format == "PNG"
        assert max(im.size) == 128


def test_normalize_avatar_rejects_garbage():
    with pytest.raises(ValueError, match="Invalid image file"):
        normalize_avatar(b"not an image")


def test_upload_avatar_service(db, storage, technician):
    path = upload_avatar(db, storage, technician.id, _png(), "image/png")

    assert path == f"avatars/{technician.id}.png"
    assert storage.exists("avatars", f"{technician.id}.png")
    assert db.get(UserProfile, technician.id).avatar == path
    assert get_avatar_url(storage, path) == f"http://testserver/storage/v1/object/public/avatars/{technician.id}.png"
    assert get_avatar_url(storage, "https://cdn.example.org/a.png") == "https://cdn.example.org/a.png"
    assert get_avatar_url(storage, None) is None


def test_upload_avatar_rejects_unsupported_type(db, storage, technician):
    with pytest.raises(ValueError, match="Unsupported image type"):
        upload_avatar(db, storage, technician.id, _png(), "application/pdf")


def test_avatar_routes(client, technician, tech_headers):
    r = client.post(
        f"/users/{technician.id}/avatar",
        files={"file": ("me.png", _png(), "image/png")},
        headers=tech_headers,
    )
    assert r.status_code == 200, r.text
    url = r.json()["url"]

    assert client.get(f"/users/{technician.id}/avatar", headers=tech_headers).json()["url"] == url

    public = client.get(f"/storage/v1/object/public/avatars/{technician.id}.png")
    assert public.status_code == 200
    assert public.headers["content-type"] == "image/png"
    assert client.get("/storage/v1/object/public/avatars/nobody.png").status_code == 404
    assert client.get(f"/storage/v1/object/public/other/{technician.id}.png").status_code == 404

    me = client.get("/auth/me", headers=tech_headers).json()
    assert me["avatar"] is not None


def test_avatar_upload_rejects_invalid_image(client, technician, tech_headers):
    r = client.post(
        f"/users/{technician.id}/avatar",
        files={"file": ("me.png", b"garbage", "image/png")},
        headers=tech_headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid image file"
