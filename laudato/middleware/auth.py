"""
Admin Session Middleware
Resolves the caller, gates admin modules and counts denials

Order per request:
1. Decode the session token (identity only, never the role)
2. Load the caller from the datastore
3. Reject missing, banned or non-admin accounts
4. Check the module permission
Mutations happen only after these steps pass.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import Counter

from laudato.api.exceptions import ForbiddenException, UnauthorizedException
from laudato.core.config import Settings
from laudato.core.datastore import Datastore
from laudato.core.logging import get_logger
from laudato.core.permissions import Module, PermissionAuthority
from laudato.schemas.records import UserRecord

logger = get_logger(__name__)

# Metrics
admin_access_denied = Counter(
    "laudato_admin_access_denied_total",
    "Admin requests denied before any mutation",
    ["module", "reason"]
)

security = HTTPBearer(auto_error=False)


@dataclass
class AdminSession:
    """Result of validating an admin caller"""
    is_valid: bool
    user: Optional[UserRecord] = None
    error: Optional[str] = None


def create_session_token(email: str, settings: Settings, expires_minutes: Optional[int] = None) -> str:
    """
    Issue a session token for an authenticated email

    The OAuth sign-in flow calls this after the provider confirms the email.
    """
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.SESSION_EXPIRE_MINUTES
    payload = {
        "sub": email,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.SESSION_SECRET_KEY, algorithm=settings.SESSION_ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> str:
    """
    Validate a session token and return the caller's email

    Raises:
        UnauthorizedException: expired, tampered or subject-less token
    """
    try:
        payload = jwt.decode(
            token,
            settings.SESSION_SECRET_KEY,
            algorithms=[settings.SESSION_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Session expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid session token", error=str(e))
        raise UnauthorizedException("Invalid session")

    email = payload.get("sub")
    if not email:
        raise UnauthorizedException("Invalid session")
    return email


def validate_admin_session(
    email: Optional[str],
    datastore: Datastore,
    permissions: PermissionAuthority,
) -> AdminSession:
    """
    Validate that an email belongs to an active admin

    Returns:
        AdminSession with is_valid False and a reason when the caller is not
        authenticated, unknown, suspended or below canteen_admin
    """
    if not email:
        return AdminSession(is_valid=False, error="Not authenticated")

    user = datastore.get_user_by_email(email)
    if user is None:
        return AdminSession(is_valid=False, error="User not found")

    if user.is_banned:
        return AdminSession(is_valid=False, error="Account is suspended")

    if not permissions.is_admin(user.role):
        return AdminSession(is_valid=False, error="Admin access required")

    return AdminSession(is_valid=True, user=user)


def get_caller_email(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """FastAPI dependency: authenticated caller email"""
    if credentials is None:
        raise UnauthorizedException("Authentication required")
    return decode_session_token(credentials.credentials, request.app.state.settings)


def get_current_user(request: Request, email: str = Depends(get_caller_email)) -> UserRecord:
    """FastAPI dependency: active account of the caller, any role"""
    user = request.app.state.datastore.get_user_by_email(email)
    if user is None:
        raise UnauthorizedException("User not found")
    if user.is_banned:
        raise ForbiddenException("Account is suspended")
    return user


def get_admin_session(request: Request, email: str = Depends(get_caller_email)) -> UserRecord:
    """FastAPI dependency: caller must be an active admin of any tier"""
    session = validate_admin_session(
        email,
        request.app.state.datastore,
        request.app.state.permissions,
    )
    if not session.is_valid:
        admin_access_denied.labels(module="*", reason=session.error).inc()
        logger.warning("Admin session rejected", email=email, reason=session.error)
        raise ForbiddenException(session.error)
    return session.user


def require_module(module: Module) -> Callable[..., UserRecord]:
    """
    FastAPI dependency factory for module-gated endpoints

    Usage:
        @router.get("/audit-logs")
        def list_logs(admin: UserRecord = Depends(require_module(Module.AUDIT_LOGS))):
            ...
    """
    def module_checker(request: Request, admin: UserRecord = Depends(get_admin_session)) -> UserRecord:
        if not request.app.state.permissions.has_permission(admin.role, module):
            admin_access_denied.labels(module=module.value, reason="insufficient_permissions").inc()
            logger.warning(
                "Module access denied",
                user_id=admin.id,
                role=admin.role,
                module=module.value,
            )
            raise ForbiddenException("Insufficient permissions", module=module.value)
        return admin

    return module_checker
