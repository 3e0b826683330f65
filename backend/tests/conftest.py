import os
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from schoolfee.infrastructure.db import models  # noqa: F401
from schoolfee.infrastructure.db.session import Base, build_engine, get_db
from schoolfee.main import app
from tests.helpers.factories import create_admin, create_school, create_super_admin

USE_POSTGRES = os.getenv("TEST_WITH_POSTGRES") == "1"


class FakeRedisClient:
    """In-memory stand-in covering the calls the lock and health code make."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def ping(self) -> bool:
        return True

    def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, _script: str, _numkeys: int, key: str, token: str) -> int:
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


def run_migrations(database_url: str) -> None:
    from schoolfee.config import settings

    os.environ["DATABASE_URL"] = database_url
    settings.database_url = database_url
    alembic_config = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    command.upgrade(alembic_config, "head")


@pytest.fixture(scope="session")
def engine():
    if not USE_POSTGRES:
        engine = build_engine("sqlite://", poolclass=StaticPool)
        Base.metadata.create_all(engine)
        try:
            yield engine
        finally:
            engine.dispose()
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16-alpine") as postgres:
        url = postgres.get_connection_url().replace("postgresql://", "postgresql+psycopg2://", 1)
        engine = build_engine(url)
        with engine.begin() as connection:
            connection.execute(text("DROP SCHEMA public CASCADE"))
            connection.execute(text("CREATE SCHEMA public"))
        run_migrations(database_url=url)
        try:
            yield engine
        finally:
            engine.dispose()


@pytest.fixture(autouse=True)
def clean_database(engine):
    with engine.begin() as connection:
        if engine.dialect.name == "postgresql":
            quoted_tables = ", ".join(f'"{table.name}"' for table in Base.metadata.sorted_tables)
            connection.execute(text(f"TRUNCATE TABLE {quoted_tables} RESTART IDENTITY CASCADE"))
        else:
            for table in reversed(Base.metadata.sorted_tables):
                connection.execute(table.delete())


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedisClient()
    monkeypatch.setattr("schoolfee.infrastructure.cache.cache_service.get_redis_client", lambda: client)
    monkeypatch.setattr("schoolfee.interfaces.api.v1.routes.ping.get_redis_client", lambda: client)
    return client


@pytest.fixture
def db_session(engine, fake_redis):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_tenants(db_session):
    north_school = create_school(db_session, "North High")
    south_school = create_school(db_session, "South High")
    north_admin = create_admin(db_session, "north@example.com", north_school, password="north123")
    south_admin = create_admin(db_session, "south@example.com", south_school, password="south123")
    super_admin = create_super_admin(db_session, "root@example.com", password="root1234")
    return {
        "north_school": north_school,
        "south_school": south_school,
        "north_admin": north_admin,
        "south_admin": south_admin,
        "super_admin": super_admin,
    }
