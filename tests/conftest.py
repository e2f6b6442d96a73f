"""Pytest configuration and fixtures for the access core tests.

Every test gets a fresh in-memory SQLite database and its own cache, audit
trail, evaluator and role store, wired together the same way the module
singletons are. Time is driven by fake clocks so expiry can be tested
without sleeping.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import authcore.models  # noqa: F401
from authcore.api.deps import get_audit_trail, get_permission_evaluator, get_role_store
from authcore.core.audit_policy import AuditPolicy
from authcore.core.permissions import dump_permission_list
from authcore.db.base import Base
from authcore.db.seeds.seed_roles import seed_roles
from authcore.db.session import get_db
from authcore.main import app
from authcore.models.user import User
from authcore.services.audit_service import AuditTrail
from authcore.services.credential_service import CredentialService
from authcore.services.permission_cache import InMemoryCacheBackend, PermissionCache
from authcore.services.permission_service import PermissionEvaluator
from authcore.services.role_assignment import RoleAssignmentWorkflow
from authcore.services.role_service import RoleStore


# ── Clocks ───────────────────────────────────────────────────────

class FakeClock:
    """Monotonic-seconds clock for the permission cache."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateTimeClock:
    """UTC wall clock for audit entries and role history."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit_clock() -> FakeDateTimeClock:
    return FakeDateTimeClock()


# ── Database ─────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_roles(db_session):
    """Built-in roles stored as system roles."""
    seed_roles(db_session)
    return db_session


@pytest.fixture
def make_user(db_session):
    """Factory creating users with a role name and an optional snapshot."""
    counter = {"n": 0}

    def _make(role: str = "customer", permissions=None, email: str = None) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@store.test",
            full_name=f"User {counter['n']}",
            role=role,
            permissions_json=dump_permission_list(permissions or []),
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


# ── Services ─────────────────────────────────────────────────────

@pytest.fixture
def cache(clock) -> PermissionCache:
    return PermissionCache(
        backend=InMemoryCacheBackend(clock=clock),
        ttl_seconds=300,
        sweep_interval_seconds=60,
    )


@pytest.fixture
def policy() -> AuditPolicy:
    return AuditPolicy.from_settings()


@pytest.fixture
def audit(policy, audit_clock) -> AuditTrail:
    return AuditTrail(policy=policy, clock=audit_clock)


@pytest.fixture
def evaluator(cache, audit) -> PermissionEvaluator:
    return PermissionEvaluator(cache=cache, audit=audit)


@pytest.fixture
def workflow(cache, audit, audit_clock) -> RoleAssignmentWorkflow:
    return RoleAssignmentWorkflow(cache=cache, audit=audit, clock=audit_clock)


@pytest.fixture
def store(workflow, audit) -> RoleStore:
    return RoleStore(workflow=workflow, audit=audit)


@pytest.fixture
def credentials() -> Generator[CredentialService, None, None]:
    """Low bcrypt cost keeps the suite fast."""
    service = CredentialService(rounds=4, min_length=6, workers=2)
    yield service
    service.shutdown()


# ── HTTP ─────────────────────────────────────────────────────────

@pytest.fixture
def client(db_session, evaluator, store, audit) -> Generator[TestClient, None, None]:
    """TestClient wired to the per-test session and services."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_permission_evaluator] = lambda: evaluator
    app.dependency_overrides[get_role_store] = lambda: store
    app.dependency_overrides[get_audit_trail] = lambda: audit

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def as_user():
    """Headers carrying an upstream-resolved identity for a user."""

    def _headers(user: User) -> dict:
        return {"X-User-Id": str(user.id)}

    return _headers
