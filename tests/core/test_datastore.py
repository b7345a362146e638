"""
In-memory datastore tests
Atomic points adjustment and alias-aware role filtering
"""
import threading

import pytest

from laudato.core.datastore import InMemoryDatastore
from laudato.schemas.records import UserRecord


@pytest.fixture
def datastore():
    store = InMemoryDatastore()
    store.add_user(UserRecord(id="u1", email="student@campus.edu", role="student", total_points=50))
    store.add_user(UserRecord(id="u2", email="super@campus.edu", role="super_admin"))
    store.add_user(UserRecord(id="u3", email="legacy@campus.edu", role="admin"))
    store.add_user(UserRecord(id="u4", email="typo@campus.edu", role="studnet"))
    return store


class TestAdjustUserPoints:

    def test_returns_old_and_new_totals(self, datastore):
        assert datastore.adjust_user_points("u1", 25) == (50, 75)
        assert datastore.get_user("u1").total_points == 75

    def test_floor(self, datastore):
        assert datastore.adjust_user_points("u1", -80) == (50, 0)
        assert datastore.adjust_user_points("u1", -5, floor=-10) == (0, -5)

    def test_missing_user(self, datastore):
        with pytest.raises(KeyError):
            datastore.adjust_user_points("nobody", 10)

    def test_concurrent_adjustments_are_not_lost(self, datastore):
        """Every increment lands even when many threads race on one user"""
        workers = 8
        per_worker = 250
        start = threading.Barrier(workers)

        def bump():
            start.wait()
            for _ in range(per_worker):
                datastore.adjust_user_points("u1", 1)

        threads = [threading.Thread(target=bump) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert datastore.get_user("u1").total_points == 50 + workers * per_worker

    def test_other_fields_untouched(self, datastore):
        datastore.adjust_user_points("u1", 1)
        user = datastore.get_user("u1")
        assert user.role == "student"
        assert user.email == "student@campus.edu"


class TestListUsersRoleFilter:

    @pytest.mark.parametrize("role", ["super_admin", "admin"])
    def test_alias_matches_both_spellings(self, datastore, role):
        users, total = datastore.list_users(role=role)
        assert {u.id for u in users} == {"u2", "u3"}
        assert total == 2

    def test_unrecognized_role_matched_verbatim(self, datastore):
        users, _ = datastore.list_users(role="studnet")
        assert [u.id for u in users] == ["u4"]

    def test_no_filter(self, datastore):
        _, total = datastore.list_users()
        assert total == 4
