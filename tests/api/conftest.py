"""Shared fixtures for the HTTP adapter tests."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from laudato.api.main import create_app
from laudato.core.config import Settings
from laudato.core.datastore import InMemoryDatastore
from laudato.core.redemption_token import RedemptionTokenAuthority
from laudato.middleware.auth import create_session_token
from laudato.schemas.records import RedemptionRecord, RewardRecord, UserRecord


T0 = 1_767_225_600_000


class FakeClock:
    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


USERS = [
    ("u-student", "student@campus.edu", "Sam Student", "student", 120),
    ("u-canteen", "canteen@campus.edu", "Cora Canteen", "canteen_admin", 0),
    ("u-finance", "finance@campus.edu", "Fin Ance", "finance_admin", 0),
    ("u-sa", "sa@campus.edu", "Sasha SA", "sa_admin", 0),
    ("u-sa2", "sa2@campus.edu", "Sky SA", "sa_admin", 0),
    ("u-super", "super@campus.edu", "Sol Super", "super_admin", 0),
    ("u-legacy", "legacy@campus.edu", "Lee Legacy", "admin", 0),
    ("u-typo", "typo@campus.edu", "Tai Typo", "studnet", 10),
]


@pytest.fixture
def settings():
    return Settings(
        ENV="test",
        SESSION_SECRET_KEY="session-secret-do-not-use-in-prod",
        QR_SECRET="test-qr-secret-do-not-use-in-prod",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def datastore():
    store = InMemoryDatastore()
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for offset, (user_id, email, name, role, points) in enumerate(USERS):
        store.add_user(UserRecord(
            id=user_id,
            email=email,
            name=name,
            role=role,
            total_points=points,
            created_at=base + timedelta(minutes=offset),
        ))
    store.add_reward(RewardRecord(id="r1", name="Reusable Tumbler", cost=100))
    store.add_redemption(RedemptionRecord(
        id="d1", redemption_code="ABC123", user_id="u-student", reward_id="r1",
    ))
    return store


@pytest.fixture
def tokens(settings, clock):
    return RedemptionTokenAuthority(secret=settings.QR_SECRET, clock=clock)


@pytest.fixture
def client(settings, datastore, tokens):
    app = create_app(settings=settings, datastore=datastore, token_authority=tokens)
    return TestClient(app)


@pytest.fixture
def auth(settings):
    """Authorization header for an email"""
    def _auth(email: str) -> dict:
        return {"Authorization": f"Bearer {create_session_token(email, settings)}"}
    return _auth
