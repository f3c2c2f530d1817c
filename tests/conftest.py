"""
Shared pytest fixtures.

Uses a SQLite database file so no Postgres is required for tests.
DATABASE_URL is set before `aura` is imported so the app's own engine
points at the same file.
"""
import os

SQLITE_URL = "sqlite:///./test_aura.db"
os.environ["DATABASE_URL"] = SQLITE_URL

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from aura.db.base import Base, get_db  # noqa: E402
from aura.main import app  # noqa: E402
from aura.models import Aura  # noqa: E402

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def clean_db(db):
    """Start from no Auras (rules and trigger log cascade)."""
    for aura in db.query(Aura).all():
        db.delete(aura)
    db.commit()
    app.state.worker.rule_cache.clear()
    app.state.sense_provider.clear()
    yield db
