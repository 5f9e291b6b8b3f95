import pytest
from sqlalchemy.exc import SQLAlchemyError

from airfield_ops.models.models import AuthUser, User
from airfield_ops.services.directory import format_user, list_users_with_shifts
from airfield_ops.services.role_sync import (
    UserNotFound,
    apply_role_update,
    apply_shift_update,
    check_user_role_sync,
    sync_all_user_roles,
    sync_user_role,
)


def _reload(db, model, user_id):
    db.expire_all()
    return db.get(model, user_id)


def test_row_role_wins_and_is_pushed_to_metadata(db, user_factory):
    user = user_factory("eng@airport.com", role="viewer", row_role="engineer")

    outcome = sync_user_role(db, user.id)

    assert outcome.role == "engineer"
    assert outcome.updated is True
    assert outcome.message == "Role synchronized successfully"
    assert _reload(db, AuthUser, user.id).user_metadata["role"] == "engineer"


def test_empty_row_role_takes_auth_role(db, user_factory):
    user = user_factory("lead@airport.com", role="shift_leader", row_role="")

    outcome = sync_user_role(db, user.id)

    assert outcome.role == "shift_leader"
    assert _reload(db, User, user.id).role == "shift_leader"


def test_sync_reports_already_in_sync(db, user_factory):
    user = user_factory("same@airport.com", role="technician")
    outcome = sync_user_role(db, user.id)
    assert outcome.updated is False
    assert outcome.message == "Role already in sync"


def test_missing_row_is_created_from_auth_user(db, user_factory):
    user = user_factory("new.person@airport.com", role="engineer", with_row=False)

    outcome = sync_user_role(db, user.id)

    row = _reload(db, User, user.id)
    assert outcome.role == "engineer"
    assert row.role == "engineer"
    assert row.email == "new.person@airport.com"


def test_failed_row_creation_is_tolerated(db, user_factory, monkeypatch):
    user = user_factory("no.row.yet@airport.com", role="engineer", with_row=False)

    def failing_commit():
        raise SQLAlchemyError("insert failed")

    monkeypatch.setattr(db, "commit", failing_commit)
    outcome = sync_user_role(db, user.id)
    monkeypatch.undo()

    assert outcome.role == "engineer"
    assert outcome.updated is False
    assert outcome.message == "Role already in sync"
    assert db.query(User).filter(User.id == user.id).first() is None

    # session was rolled back and still works
    assert sync_user_role(db, user.id).updated is True
    assert _reload(db, User, user.id).role == "engineer"


def test_sync_unknown_user_raises(db):
    with pytest.raises(UserNotFound):
        sync_user_role(db, "does-not-exist")


def test_metadata_merge_keeps_other_keys(db, user_factory):
    user = user_factory("keep@airport.com", role="viewer", row_role="technician", shift="C", name="Keep Me")
    sync_user_role(db, user.id)
    meta = _reload(db, AuthUser, user.id).user_metadata
    assert meta["shift"] == "C"
    assert meta["name"] == "Keep Me"


def test_check_user_role_sync(db, user_factory):
    user = user_factory("check@airport.com", role="viewer", row_role="engineer")

    status = check_user_role_sync(db, user.id)
    assert status.in_sync is False
    assert status.db_role == "engineer"
    assert status.auth_role == "viewer"

    assert check_user_role_sync(db, None).error == "Missing userId parameter"
    assert check_user_role_sync(db, "ghost").error == "Database error"


def test_sync_all_user_roles_pushes_rows_and_reports_failures(db, user_factory):
    a = user_factory("a@airport.com", role="viewer", row_role="admin")
    b = user_factory("b@airport.com", role="viewer", row_role="technician")
    db.add(User(id="orphan-row", username="orphan", email="orphan@airport.com", role="viewer"))
    db.commit()

    result = sync_all_user_roles(db)

    assert result.synced == 2
    assert result.failed == 1
    assert result.success is False
    assert result.errors[0].startswith("User orphan-row:")
    assert _reload(db, AuthUser, a.id).user_metadata["role"] == "admin"
    assert _reload(db, AuthUser, b.id).user_metadata["role"] == "technician"


def test_apply_role_update_writes_both_copies(db, user_factory):
    user = user_factory("promote@airport.com", role="viewer", shift="B")

    result = apply_role_update(db, user.id, "shift_leader")

    assert result == {"userId": user.id, "role": "shift_leader", "shift": "B"}
    assert _reload(db, AuthUser, user.id).user_metadata["role"] == "shift_leader"
    assert _reload(db, User, user.id).role == "shift_leader"


def test_apply_role_update_defaults_shift_to_regular(db, user_factory):
    user = user_factory("noshift@airport.com", role="viewer")
    user.user_metadata = {"role": "viewer"}
    db.commit()
    assert apply_role_update(db, user.id, "engineer")["shift"] == "Regular"


def test_apply_role_update_unknown_user(db):
    with pytest.raises(UserNotFound, match="Failed to fetch user: User not found"):
        apply_role_update(db, "ghost", "admin")


def test_apply_shift_update(db, user_factory, shift_of):
    user = user_factory("crew@airport.com", role="technician", shift="A")

    apply_shift_update(db, user.id, "D")

    assert shift_of(user.id) == "D"
    assert _reload(db, AuthUser, user.id).user_metadata["shift"] == "D"
    assert _reload(db, User, user.id).shift == "D"
    with pytest.raises(UserNotFound, match="Target user not found"):
        apply_shift_update(db, "ghost", "A")


def test_format_user_defaults():
    formatted = format_user({"id": "u1", "email": "jane.doe@airport.com"})
    assert formatted["username"] == "jane.doe"
    assert formatted["name"] == "jane.doe"
    assert formatted["role"] == "viewer"
    assert formatted["shift"] == "Regular"
    assert formatted["permissions"] == ["view_tasks"]

    bare = format_user({"id": "u2"})
    assert bare["username"] == "unknown"
    assert bare["email"] == "unknown"


def test_list_users_with_shifts_precedence(db, user_factory):
    from airfield_ops.models.models import UserShift

    user = user_factory("prec@airport.com", role="engineer", row_role="viewer", shift="A", name="Meta Name")
    db.add(UserShift(user_id=user.id, shift="C"))
    db.commit()

    merged = {u["id"]: u for u in list_users_with_shifts(db)}[user.id]
    assert merged["role"] == "engineer"
    assert merged["shift"] == "C"
    assert merged["name"] == "Meta Name"
