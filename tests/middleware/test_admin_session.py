"""
Admin session validation tests
Session tokens carry identity only; the role always comes from the datastore
"""
import jwt
import pytest

from laudato.api.exceptions import UnauthorizedException
from laudato.core.config import Settings
from laudato.core.datastore import InMemoryDatastore
from laudato.core.permissions import PermissionAuthority
from laudato.middleware.auth import (
    create_session_token,
    decode_session_token,
    validate_admin_session,
)
from laudato.schemas.records import UserRecord


@pytest.fixture
def settings():
    return Settings(SESSION_SECRET_KEY="session-secret-do-not-use-in-prod")


@pytest.fixture
def datastore():
    store = InMemoryDatastore()
    store.add_user(UserRecord(id="u1", email="student@campus.edu", role="student"))
    store.add_user(UserRecord(id="u2", email="canteen@campus.edu", role="canteen_admin"))
    store.add_user(UserRecord(id="u3", email="banned@campus.edu", role="sa_admin", is_banned=True))
    store.add_user(UserRecord(id="u4", email="legacy@campus.edu", role="admin"))
    return store


@pytest.fixture
def permissions():
    return PermissionAuthority()


class TestSessionTokens:

    def test_round_trip(self, settings):
        token = create_session_token("canteen@campus.edu", settings)
        assert decode_session_token(token, settings) == "canteen@campus.edu"

    def test_expired(self, settings):
        token = create_session_token("canteen@campus.edu", settings, expires_minutes=-1)
        with pytest.raises(UnauthorizedException) as exc_info:
            decode_session_token(token, settings)
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Session expired"

    def test_wrong_secret(self, settings):
        token = jwt.encode({"sub": "canteen@campus.edu"}, "another-secret", algorithm="HS256")
        with pytest.raises(UnauthorizedException):
            decode_session_token(token, settings)

    def test_role_claim_ignored(self, settings):
        """A forged role claim does not survive decoding"""
        token = jwt.encode(
            {"sub": "student@campus.edu", "role": "super_admin"},
            settings.SESSION_SECRET_KEY,
            algorithm="HS256",
        )
        assert decode_session_token(token, settings) == "student@campus.edu"

    def test_missing_subject(self, settings):
        token = jwt.encode({"role": "admin"}, settings.SESSION_SECRET_KEY, algorithm="HS256")
        with pytest.raises(UnauthorizedException):
            decode_session_token(token, settings)


class TestValidateAdminSession:

    @pytest.mark.parametrize("email, error", [
        (None, "Not authenticated"),
        ("", "Not authenticated"),
        ("ghost@campus.edu", "User not found"),
        ("banned@campus.edu", "Account is suspended"),
        ("student@campus.edu", "Admin access required"),
    ])
    def test_rejections(self, datastore, permissions, email, error):
        session = validate_admin_session(email, datastore, permissions)
        assert session.is_valid is False
        assert session.error == error
        assert session.user is None

    def test_canteen_admin_valid(self, datastore, permissions):
        session = validate_admin_session("canteen@campus.edu", datastore, permissions)
        assert session.is_valid is True
        assert session.user.id == "u2"

    def test_legacy_admin_alias_valid(self, datastore, permissions):
        assert validate_admin_session("legacy@campus.edu", datastore, permissions).is_valid
