import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_db
from app.core.security import create_access_token
from app.db.base import Base
from app.main import app
from app.models.user import User, UserRole


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session_factory):
    def _make_user(role: UserRole, *, academic_class_id: str | None = None) -> User:
        session = session_factory()
        try:
            user = User(
                name=f"{role.value.title()} User",
                email=f"{role.value}-{os.urandom(4).hex()}@example.com",
                role=role,
                academic_class_id=academic_class_id,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user
        finally:
            session.close()

    return _make_user


@pytest.fixture()
def auth_headers(make_user):
    def _auth_headers(role: UserRole, *, academic_class_id: str | None = None) -> dict[str, str]:
        user = make_user(role, academic_class_id=academic_class_id)
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers
