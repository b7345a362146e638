"""
Datastore collaborator

The production deployment persists to a managed relational database with
row-level security. The adapter only depends on the Datastore interface below;
InMemoryDatastore backs tests and local development.
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from laudato.core.roles import normalize_role
from laudato.schemas.records import (
    AuditLogEntry,
    PointTransaction,
    RedemptionRecord,
    RedemptionStatus,
    RewardRecord,
    UserRecord,
)


class Datastore(ABC):
    """Persistence operations used by the admin adapter"""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    def list_users(
        self,
        search: str = "",
        role: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[UserRecord], int]:
        """
        Newest first; search matches name or email, case-insensitive

        The role filter matches aliases, so super_admin also returns legacy
        "admin" accounts. An unrecognized role is matched verbatim.
        """

    @abstractmethod
    def update_user(self, user_id: str, **changes) -> UserRecord:
        ...

    @abstractmethod
    def adjust_user_points(self, user_id: str, delta: int, floor: int = 0) -> Tuple[int, int]:
        """
        Atomically add delta to a user's total, never going below floor

        Returns:
            (old_total, new_total) as read and written under the same lock or
            transaction

        Raises:
            KeyError: user does not exist
        """

    @abstractmethod
    def get_reward(self, reward_id: str) -> Optional[RewardRecord]:
        ...

    @abstractmethod
    def get_redemption(self, redemption_id: str) -> Optional[RedemptionRecord]:
        ...

    @abstractmethod
    def complete_redemption(
        self,
        redemption_id: str,
        verified_by: str,
        claimed_at: datetime,
    ) -> Optional[RedemptionRecord]:
        """
        Atomically move a pending redemption to completed

        Returns:
            Updated record, or None if it was not pending
        """

    @abstractmethod
    def insert_point_transaction(self, transaction: PointTransaction) -> None:
        ...

    @abstractmethod
    def insert_audit_log(self, entry: AuditLogEntry) -> None:
        ...

    @abstractmethod
    def query_audit_logs(
        self,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        actor_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[AuditLogEntry], int]:
        """Newest first, with the total count before pagination"""


class InMemoryDatastore(Datastore):
    """Thread-safe dict-backed datastore"""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, UserRecord] = {}
        self._rewards: Dict[str, RewardRecord] = {}
        self._redemptions: Dict[str, RedemptionRecord] = {}
        self._transactions: List[PointTransaction] = []
        self._audit_logs: List[AuditLogEntry] = []

    # Seeding

    def add_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            self._users[user.id] = user
        return user

    def add_reward(self, reward: RewardRecord) -> RewardRecord:
        with self._lock:
            self._rewards[reward.id] = reward
        return reward

    def add_redemption(self, redemption: RedemptionRecord) -> RedemptionRecord:
        with self._lock:
            self._redemptions[redemption.id] = redemption
        return redemption

    # Users

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user
        return None

    def list_users(
        self,
        search: str = "",
        role: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[UserRecord], int]:
        needle = search.lower()
        with self._lock:
            users = list(self._users.values())

        if needle:
            users = [
                u for u in users
                if needle in u.email.lower() or (u.name and needle in u.name.lower())
            ]
        if role:
            wanted = normalize_role(role)
            if wanted is None:
                users = [u for u in users if u.role == role]
            else:
                users = [u for u in users if normalize_role(u.role) is wanted]

        users.sort(key=lambda u: u.created_at, reverse=True)
        return users[offset:offset + limit], len(users)

    def update_user(self, user_id: str, **changes) -> UserRecord:
        with self._lock:
            if user_id not in self._users:
                raise KeyError(user_id)
            updated = self._users[user_id].model_copy(update=changes)
            self._users[user_id] = updated
        return updated

    def adjust_user_points(self, user_id: str, delta: int, floor: int = 0) -> Tuple[int, int]:
        with self._lock:
            if user_id not in self._users:
                raise KeyError(user_id)
            current = self._users[user_id]
            new_total = max(floor, current.total_points + delta)
            self._users[user_id] = current.model_copy(update={"total_points": new_total})
        return current.total_points, new_total

    # Rewards & redemptions

    def get_reward(self, reward_id: str) -> Optional[RewardRecord]:
        with self._lock:
            return self._rewards.get(reward_id)

    def get_redemption(self, redemption_id: str) -> Optional[RedemptionRecord]:
        with self._lock:
            return self._redemptions.get(redemption_id)

    def complete_redemption(
        self,
        redemption_id: str,
        verified_by: str,
        claimed_at: datetime,
    ) -> Optional[RedemptionRecord]:
        with self._lock:
            current = self._redemptions.get(redemption_id)
            if current is None or current.status is not RedemptionStatus.PENDING:
                return None
            updated = current.model_copy(update={
                "status": RedemptionStatus.COMPLETED,
                "claimed_at": claimed_at,
                "verified_by": verified_by,
            })
            self._redemptions[redemption_id] = updated
        return updated

    # Ledgers

    def insert_point_transaction(self, transaction: PointTransaction) -> None:
        with self._lock:
            self._transactions.append(transaction)

    def point_transactions(self, user_id: str) -> List[PointTransaction]:
        with self._lock:
            return [t for t in self._transactions if t.user_id == user_id]

    def insert_audit_log(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self._audit_logs.append(entry)

    def query_audit_logs(
        self,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        actor_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[AuditLogEntry], int]:
        with self._lock:
            entries = list(self._audit_logs)

        if action:
            entries = [e for e in entries if e.action == action]
        if entity_type:
            entries = [e for e in entries if e.entity_type == entity_type]
        if actor_id:
            entries = [e for e in entries if e.actor_id == actor_id]
        if start:
            entries = [e for e in entries if e.created_at >= start]
        if end:
            entries = [e for e in entries if e.created_at <= end]

        # Stable sort keeps insertion order reversed for equal timestamps
        entries.reverse()
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[offset:offset + limit], len(entries)
