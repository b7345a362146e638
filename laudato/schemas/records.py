"""
Datastore record schemas
Mirrors the rows the admin adapter reads and writes
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedemptionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRecord(BaseModel):
    """
    User account row

    role is kept as the raw stored string; unknown values must survive a
    round trip so the permission authority can deny them.
    """
    id: str
    email: str
    name: Optional[str] = None
    role: str = Field(default="student", description="Raw role value")
    is_banned: bool = False
    ban_reason: Optional[str] = None
    banned_by: Optional[str] = None
    banned_at: Optional[datetime] = None
    total_points: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class RewardRecord(BaseModel):
    id: str
    name: str
    cost: int = Field(..., ge=0, description="Points cost")


class RedemptionRecord(BaseModel):
    id: str
    redemption_code: str
    user_id: str
    reward_id: str
    status: RedemptionStatus = RedemptionStatus.PENDING
    expires_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    verified_by: Optional[str] = None

    @field_validator("expires_at", "claimed_at")
    @classmethod
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class PointTransaction(BaseModel):
    user_id: str
    amount: int
    transaction_type: str
    description: str
    admin_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class AuditLogEntry(BaseModel):
    """
    Admin action audit row

    CONTRACT: written after the mutation succeeds, never before
    """
    id: str
    actor_id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
