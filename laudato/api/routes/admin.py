"""
Admin panel endpoints

GET   /api/admin/permissions  - caller's role and the modules they may open
GET   /api/admin/users        - paginated user list with search and role filter
PATCH /api/admin/users        - role change, ban toggle, points adjustment
GET   /api/admin/audit-logs   - filtered audit trail (super admin only)
"""
import math
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request

from laudato.api.exceptions import ForbiddenException, NotFoundException, ValidationException
from laudato.core.logging import get_logger
from laudato.core.permissions import ManageDecision, Module
from laudato.core.roles import normalize_role
from laudato.middleware.auth import get_admin_session, require_module
from laudato.schemas.records import PointTransaction, UserRecord
from laudato.schemas.requests import UserActionRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _total_pages(total: int, limit: int) -> int:
    return -(-total // limit) if limit else 0


@router.get("/permissions")
def my_permissions(request: Request, admin: UserRecord = Depends(get_admin_session)):
    permissions = request.app.state.permissions
    return {
        "success": True,
        "role": admin.role,
        "isAdmin": permissions.is_admin(admin.role),
        "modules": permissions.accessible_modules(admin.role),
    }


@router.get("/users")
def list_users(
    request: Request,
    search: str = "",
    role: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    admin: UserRecord = Depends(require_module(Module.USERS)),
):
    limit = min(limit, request.app.state.settings.USERS_PAGE_LIMIT_MAX)
    users, total = request.app.state.datastore.list_users(
        search=search,
        role=role,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "success": True,
        "users": [u.model_dump(mode="json") for u in users],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": _total_pages(total, limit),
        },
    }


def _parse_points(value: Any) -> int:
    """Whole number of points from a JSON number or numeric string"""
    if isinstance(value, bool):
        raise ValidationException("Invalid points value", field="value")
    if isinstance(value, float) and not (math.isfinite(value) and value.is_integer()):
        raise ValidationException("Invalid points value", field="value")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationException("Invalid points value", field="value")


def _ensure_manageable(decision: ManageDecision, denied_message: str) -> None:
    if decision is ManageDecision.UNKNOWN_ROLE:
        raise ForbiddenException("Account role is not recognized")
    if decision is not ManageDecision.ALLOWED:
        raise ForbiddenException(denied_message)


@router.patch("/users")
def update_user(
    body: UserActionRequest,
    request: Request,
    admin: UserRecord = Depends(require_module(Module.USERS)),
):
    """
    Apply one admin action to a user account

    The manager/target check runs against the target's current role before any
    write. update_role additionally checks the role being assigned.
    """
    datastore = request.app.state.datastore
    permissions = request.app.state.permissions

    if not body.user_id or not body.action:
        raise ValidationException("User ID and action are required")

    target = datastore.get_user(body.user_id)
    if target is None:
        raise NotFoundException("User not found", entity="user", entity_id=body.user_id)

    _ensure_manageable(
        permissions.check_manage_role(admin.role, target.role),
        "Cannot manage users with equal or higher role",
    )

    if body.action == "update_role":
        new_role = normalize_role(body.value) if isinstance(body.value, str) else None
        if new_role is None:
            raise ValidationException("Invalid role", field="value")
        _ensure_manageable(permissions.check_manage_role(admin.role, new_role), "Cannot assign this role")
        changes = {"role": new_role.value}
        audit_action = "user_role_updated"
        old_values = {"role": target.role}
        new_values = {"role": new_role.value}

    elif body.action == "toggle_ban":
        banning = not target.is_banned
        changes = {
            "is_banned": banning,
            "ban_reason": (body.reason or "No reason provided") if banning else None,
            "banned_by": admin.id if banning else None,
            "banned_at": datetime.now(timezone.utc) if banning else None,
        }
        audit_action = "user_banned" if banning else "user_unbanned"
        old_values = {"is_banned": target.is_banned}
        new_values = {"is_banned": banning, "reason": body.reason}

    elif body.action == "adjust_points":
        points_change = _parse_points(body.value)
        audit_action = "user_points_adjusted"
        changes = None
        # Read-modify-write happens inside the datastore; ledger and audit follow it
        try:
            old_total, new_total = datastore.adjust_user_points(target.id, points_change)
        except KeyError:
            raise NotFoundException("User not found", entity="user", entity_id=target.id)
        old_values = {"total_points": old_total}
        new_values = {"total_points": new_total, "change": points_change, "reason": body.reason}
        datastore.insert_point_transaction(PointTransaction(
            user_id=target.id,
            amount=points_change,
            transaction_type="admin_adjustment",
            description=body.reason or "Admin adjustment",
            admin_id=admin.id,
        ))

    else:
        raise ValidationException("Invalid action", field="action")

    if changes is not None:
        datastore.update_user(target.id, **changes)
    request.app.state.audit.log_admin_action(
        admin.id,
        audit_action,
        "users",
        target.id,
        old_values,
        new_values,
    )
    logger.info("Admin updated user", admin_id=admin.id, user_id=target.id, action=audit_action)

    return {
        "success": True,
        "message": f"User {body.action.replace('_', ' ')} successful",
    }


@router.get("/audit-logs")
def list_audit_logs(
    request: Request,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    actor_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1),
    admin: UserRecord = Depends(require_module(Module.AUDIT_LOGS)),
):
    limit = min(limit, request.app.state.settings.AUDIT_LOG_PAGE_LIMIT_MAX)
    result = request.app.state.audit.query(
        action=action,
        entity_type=entity_type,
        actor_id=actor_id,
        start=_as_utc(start_date),
        end=_as_utc(end_date),
        page=page,
        limit=limit,
    )

    datastore = request.app.state.datastore
    actors = {}
    for entry in result.entries:
        if entry.actor_id not in actors:
            actors[entry.actor_id] = datastore.get_user(entry.actor_id)

    logs = []
    for entry in result.entries:
        actor = actors.get(entry.actor_id)
        row = entry.model_dump(mode="json")
        row["admin_email"] = actor.email if actor else None
        row["admin"] = (
            {"id": actor.id, "name": actor.name, "email": actor.email, "role": actor.role}
            if actor else None
        )
        logs.append(row)

    return {
        "success": True,
        "logs": logs,
        "total": result.total,
        "totalPages": result.total_pages,
    }
