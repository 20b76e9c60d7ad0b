import os
import tempfile

# Settings and the module-level engine are built at import time.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "authkeeper-tests.log"))

import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from authkeeper.core.database import Base
from authkeeper.core.security import generate_key_pair
from authkeeper.models.user import UserAccount


@pytest.fixture(scope="session")
def key_pair():
    return generate_key_pair(2048)


@pytest.fixture(scope="session")
def other_key_pair():
    return generate_key_pair(2048)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed store so several threads get their own connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'store.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _create_user(db, username="alice", tenant_id=None):
    user = UserAccount(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        username=username,
        email=f"{username}@example.com",
        password_hash="not-a-real-hash",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user():
    return _create_user


@pytest.fixture
def user(db):
    return _create_user(db)
