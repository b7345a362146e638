"""
Reward redemption QR endpoints

POST /api/rewards/qr             - wallet requests a signed QR for its redemption
POST /api/rewards/qr/refresh     - wallet asks whether its QR should be regenerated
POST /api/rewards/verify         - canteen staff scan and claim a redemption
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from prometheus_client import Counter

from laudato.api.exceptions import (
    NotFoundException,
    RedemptionClaimedException,
    TokenRejectedException,
    ValidationException,
)
from laudato.core.logging import get_logger
from laudato.core.permissions import Module
from laudato.middleware.auth import get_current_user, require_module
from laudato.schemas.records import RedemptionStatus, UserRecord
from laudato.schemas.requests import QRCodeRequest, QRRefreshRequest, QRVerifyRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/rewards", tags=["Rewards"])

token_verifications = Counter(
    "laudato_redemption_token_verifications_total",
    "Redemption QR verification outcomes",
    ["result"]
)


@router.post("/qr")
def generate_qr(body: QRCodeRequest, request: Request, user: UserRecord = Depends(get_current_user)):
    """Generate a signed QR payload for one of the caller's pending redemptions"""
    datastore = request.app.state.datastore

    redemption = datastore.get_redemption(body.redemptionId)
    if redemption is None or redemption.user_id != user.id:
        raise NotFoundException("Redemption not found", entity="redemption", entity_id=body.redemptionId)

    if redemption.status is not RedemptionStatus.PENDING:
        raise ValidationException(f"Cannot generate QR code for {redemption.status.value} redemption")

    if redemption.expires_at and redemption.expires_at < datetime.now(timezone.utc):
        raise ValidationException("This redemption has expired")

    token = request.app.state.tokens.generate(
        redemption.id,
        redemption.redemption_code,
        redemption.user_id,
        redemption.reward_id,
    )

    return {
        "success": True,
        "qrData": token.to_wire(),
        "redemptionCode": redemption.redemption_code,
        "refreshAfterMs": request.app.state.tokens.refresh_ms,
    }


@router.post("/qr/refresh")
def check_qr_refresh(body: QRRefreshRequest, request: Request, user: UserRecord = Depends(get_current_user)):
    return {"needsRefresh": request.app.state.tokens.needs_refresh(body.qrData)}


@router.post("/verify")
def verify_qr(
    body: QRVerifyRequest,
    request: Request,
    admin: UserRecord = Depends(require_module(Module.REDEMPTIONS)),
):
    """
    Verify a scanned QR code and mark the redemption claimed

    The token proves authenticity and freshness only. Single use comes from the
    redemption status, moved pending -> completed atomically.
    """
    if not body.qrData:
        raise ValidationException("QR data is required", field="qrData")

    datastore = request.app.state.datastore
    result = request.app.state.tokens.verify(body.qrData)

    if not result.ok:
        token_verifications.labels(result=result.kind.value).inc()
        logger.warning("Redemption QR rejected", admin_id=admin.id, reason=result.kind.value)
        raise TokenRejectedException(result.message, reason=result.kind.value)

    token = result.token
    redemption = datastore.get_redemption(token.redemption_id)
    if redemption is None:
        raise NotFoundException("Redemption not found", entity="redemption", entity_id=token.redemption_id)

    if (redemption.user_id, redemption.reward_id, redemption.redemption_code) != (
        token.user_id, token.reward_id, token.redemption_code
    ):
        token_verifications.labels(result="record_mismatch").inc()
        logger.warning("Redemption QR does not match record", admin_id=admin.id, redemption_id=redemption.id)
        raise ValidationException("QR code does not match this redemption")

    if redemption.status is RedemptionStatus.CANCELLED:
        raise ValidationException("This redemption has been cancelled")

    updated = None
    if redemption.status is RedemptionStatus.PENDING:
        updated = datastore.complete_redemption(
            redemption.id,
            verified_by=admin.id,
            claimed_at=datetime.now(timezone.utc),
        )

    if updated is None:
        token_verifications.labels(result="already_claimed").inc()
        raise RedemptionClaimedException(datastore.get_redemption(redemption.id))

    request.app.state.audit.log_admin_action(
        admin.id,
        "redemption_verified",
        "redemptions",
        updated.id,
        old_values={"status": redemption.status.value},
        new_values={"status": updated.status.value},
    )
    token_verifications.labels(result="verified").inc()

    reward = datastore.get_reward(updated.reward_id)
    owner = datastore.get_user(updated.user_id)
    logger.info("Reward claimed", redemption_id=updated.id, admin_id=admin.id)

    return {
        "success": True,
        "message": "Reward claimed successfully!",
        "redemption": {
            "id": updated.id,
            "rewardName": reward.name if reward else None,
            "pointsCost": reward.cost if reward else None,
            "userName": (owner.name or owner.email) if owner else None,
            "userEmail": owner.email if owner else None,
            "claimedAt": updated.claimed_at.isoformat(),
            "status": updated.status.value,
        },
    }
