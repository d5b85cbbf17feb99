# tests/conftest.py
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
position_common_path = os.path.join(project_root, 'src', 'libs', 'position-common')
for path in (project_root, position_common_path):
    if path not in sys.path:
        sys.path.insert(0, path)

from position_common.database_models import Base  # noqa: E402


@pytest.fixture(scope="function")
def db_engine():
    """
    An in-memory SQLite engine with all tables created. StaticPool keeps the
    single in-memory connection alive across sessions and worker threads.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """
    A session for direct repository tests. Each test gets fresh tables.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
