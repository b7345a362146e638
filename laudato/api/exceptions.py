"""
Error types raised by the Laudato admin and rewards endpoints

Every subclass maps to one JSON error body:
    {"success": false, "error": <error_code>, "message": ..., "details": {...}}
"""

from typing import Any, Dict, Optional
from fastapi import status

from laudato.schemas.records import RedemptionRecord


class LaudatoException(Exception):
    """Base for errors surfaced to admin panel and wallet clients"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(LaudatoException):
    """A user or redemption referenced by the request does not exist"""

    def __init__(self, message: str, entity: Optional[str] = None, entity_id: Optional[str] = None):
        details = {}
        if entity:
            details["entity"] = entity
            details["id"] = entity_id
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="not_found",
            details=details,
        )


class ValidationException(LaudatoException):
    """Request payload or admin action value rejected before any write"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="validation_error",
            details={"field": field} if field else None,
        )


class UnauthorizedException(LaudatoException):
    """No usable session: missing, expired, or signed with another key"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="unauthorized",
        )


class ForbiddenException(LaudatoException):
    """
    Authenticated caller may not do this

    Raised for non-admin or suspended accounts, for a module the caller's role
    does not grant, and for manager/target role violations.
    """

    def __init__(self, message: str, module: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="forbidden",
            details={"module": module} if module else None,
        )


class RedemptionClaimedException(LaudatoException):
    """A verified QR code whose redemption is no longer pending"""

    def __init__(self, redemption: RedemptionRecord):
        super().__init__(
            message="This reward has already been claimed",
            status_code=status.HTTP_409_CONFLICT,
            error_code="already_claimed",
            details={
                "redemption_id": redemption.id,
                "status": redemption.status.value,
                "claimed_at": redemption.claimed_at.isoformat() if redemption.claimed_at else None,
            },
        )


class TokenRejectedException(LaudatoException):
    """Redemption QR code failed verification"""

    def __init__(self, message: str, reason: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="token_rejected",
            details={
                "reason": reason,
                "expired": reason == "expired",
                "tampered": reason == "invalid_signature",
            },
        )
