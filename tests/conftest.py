"""
Pytest configuration and fixtures.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from user_service import create_application
from user_service.core.config import Settings
from user_service.core.database import Base, init_db
from user_service.core.exceptions import ConstraintViolation
from user_service.core.security import PasswordHasher
from user_service.dependencies import get_user_service
from user_service.repositories.user import SqlAlchemyUserGateway
from user_service.schemas.user import UserInDB
from user_service.services.gateway import UserGateway
from user_service.services.user import UserService

VALID_USER_DATA = {
    "email": "test@example.com",
    "username": "testuser",
    "password": "testpass123",
    "firstName": "Test",
    "lastName": "User",
}


class FakePasswordHasher(PasswordHasher):
    """Fast, salted stand-in for the argon2 hasher."""

    def __init__(self):
        self._salts = itertools.count(1)

    def hash(self, password: str) -> str:
        return f"fake${next(self._salts)}${password[::-1]}"

    def verify(self, password: str, hashed_password: str) -> bool:
        parts = hashed_password.split("$")
        return len(parts) == 3 and parts[0] == "fake" and parts[2] == password[::-1]


class InMemoryUserGateway(UserGateway):
    """Dictionary-backed gateway enforcing the same unique keys as the database."""

    def __init__(self):
        self.rows: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self.available = True

    def _check_unique(self, values: Dict[str, Any], user_id: Optional[int] = None) -> None:
        for field in ("email", "username"):
            if field not in values:
                continue
            for other_id, row in self.rows.items():
                if other_id != user_id and row[field] == values[field]:
                    raise ConstraintViolation(field)

    def insert(self, values: Dict[str, Any]) -> UserInDB:
        self._check_unique(values)
        user_id = next(self._ids)
        row = {"first_name": None, "last_name": None, **values, "id": user_id}
        self.rows[user_id] = row
        return UserInDB.model_validate(row)

    def find_by_id(self, user_id: int) -> Optional[UserInDB]:
        row = self.rows.get(user_id)
        return UserInDB.model_validate(row) if row else None

    def _find(self, field: str, value: str) -> Optional[UserInDB]:
        for row in self.rows.values():
            if row[field] == value:
                return UserInDB.model_validate(row)
        return None

    def find_by_email(self, email: str) -> Optional[UserInDB]:
        return self._find("email", email)

    def find_by_username(self, username: str) -> Optional[UserInDB]:
        return self._find("username", username)

    def update(self, user_id: int, changes: Dict[str, Any]) -> Optional[UserInDB]:
        if user_id not in self.rows:
            return None
        self._check_unique(changes, user_id)
        self.rows[user_id].update(changes)
        return UserInDB.model_validate(self.rows[user_id])

    def delete(self, user_id: int) -> bool:
        return self.rows.pop(user_id, None) is not None

    def list(self, active: Optional[bool] = None, newest_first: bool = True) -> List[UserInDB]:
        rows = [row for row in self.rows.values() if active is None or row["is_active"] == active]
        rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=newest_first)
        return [UserInDB.model_validate(row) for row in rows]

    def ping(self) -> bool:
        return self.available


class TickingClock:
    """Clock advancing one second per reading."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def hasher() -> FakePasswordHasher:
    return FakePasswordHasher()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def gateway() -> InMemoryUserGateway:
    return InMemoryUserGateway()


@pytest.fixture
def service(gateway, hasher, clock) -> UserService:
    """Service over the in-memory gateway."""
    return UserService(gateway, hasher, clock=clock)


@pytest.fixture
def db_engine() -> Generator:
    """
    In-memory SQLite engine shared by every connection of one test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},  # Required for SQLite
        poolclass=StaticPool
    )
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator:
    """Session bound to the test engine, closed after the test."""
    session = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=db_engine,
        expire_on_commit=False
    )()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db_service(db_session, hasher, clock) -> UserService:
    """Service over the SQLAlchemy gateway and the test database."""
    return UserService(SqlAlchemyUserGateway(db_session), hasher, clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(TCP_ENABLED=False, DB_AUTO_CREATE=False, CACHE_ENABLED=False)


@pytest.fixture
def app(test_settings, db_service):
    """Application whose user service runs against the test database."""
    application = create_application(test_settings)
    application.dependency_overrides[get_user_service] = lambda: db_service
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """
    Test client for the HTTP API.

    The lifespan is not entered, so no TCP listener is started.
    """
    return TestClient(app)
