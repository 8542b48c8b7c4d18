from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  註冊所有資料表
from database import Base, get_db
from main import app
from services.agent_registry import create_agent

T0 = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def engine():
    """每個測試一個獨立的 in-memory SQLite"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_agent(db):
    """建立 agent 並 commit，返回 agent id"""
    def _make(name, rating=1200):
        agent = create_agent(db, name)
        agent.rating = rating
        db.commit()
        return agent.id
    return _make


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
