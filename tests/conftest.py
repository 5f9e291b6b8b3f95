import os
import tempfile

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["SEED_REFERENCE_DATA"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="airfield-storage-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from airfield_ops.auth.security import create_access_token, get_password_hash
from airfield_ops.db import Base, get_db, init_db
from airfield_ops.main import app
from airfield_ops.models.models import AuthUser, User, UserShift
from airfield_ops.storage.local_provider import LocalStorageProvider, get_storage


PASSWORD = "secret123"


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage(tmp_path):
    return LocalStorageProvider(base_dir=str(tmp_path / "storage"), public_base_url="http://testserver")


@pytest.fixture()
def client(engine, storage):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    def _get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, email, role="viewer", shift="Regular", name=None, row_role=None, with_row=True):
    """Create an auth user plus (optionally) its users row. row_role overrides the row copy of the role."""
    username = email.split("@")[0]
    user = AuthUser(
        email=email,
        password_hash=get_password_hash(PASSWORD),
        user_metadata={"role": role, "shift": shift, "name": name or username, "username": username},
    )
    db.add(user)
    db.flush()
    if with_row:
        db.add(User(
            id=user.id,
            username=username,
            name=name or username,
            email=email,
            role=row_role if row_role is not None else role,
            shift=shift,
        ))
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, role=(user.user_metadata or {}).get('role'))}"}


@pytest.fixture()
def admin(db):
    return make_user(db, "admin@airport.com", role="admin", name="Airfield Admin")


@pytest.fixture()
def technician(db):
    return make_user(db, "tech@airport.com", role="technician", shift="B", name="Tej Patel")


@pytest.fixture()
def viewer(db):
    return make_user(db, "viewer@airport.com", role="viewer")


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture()
def tech_headers(technician):
    return auth_headers(technician)


@pytest.fixture()
def viewer_headers(viewer):
    return auth_headers(viewer)


@pytest.fixture()
def shift_of(db):
    def _shift(user_id):
        db.expire_all()
        record = db.query(UserShift).filter(UserShift.user_id == user_id).first()
        return record.shift if record else None
    return _shift


@pytest.fixture()
def user_factory(db):
    def _make(email, **kwargs):
        return make_user(db, email, **kwargs)
    return _make


@pytest.fixture()
def headers_for():
    return auth_headers
