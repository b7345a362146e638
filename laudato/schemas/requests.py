"""
API request bodies
Field names follow the web client's payloads
"""
from typing import Any, Optional

from pydantic import BaseModel, Field


class QRCodeRequest(BaseModel):
    redemptionId: str = Field(..., description="Redemption to encode")


class QRVerifyRequest(BaseModel):
    qrData: str = Field(..., description="Scanned QR payload")


class QRRefreshRequest(BaseModel):
    qrData: str = Field(..., description="QR payload currently displayed")


class UserActionRequest(BaseModel):
    """
    Admin mutation on a user account

    action: update_role | toggle_ban | adjust_points
    value: new role, or signed points delta
    """
    user_id: str
    action: str
    value: Optional[Any] = None
    reason: Optional[str] = None
