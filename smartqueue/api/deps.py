from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, verify_token, AuthenticationError,
    AuthorizationError, UserRole, TokenPayload
)
from ..models.appointment import Appointment
from ..models.user import User, RefreshToken
from ..services.appointment_service import AppointmentService

async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload

def resolve_session_user(token_payload: TokenPayload, db: Session) -> User:
    """User behind an access token, provided their session is still open.

    A session stays open while the user holds an unrevoked, unexpired refresh
    token; signing out revokes it.
    """
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    if not has_open_session(user, db):
        raise AuthenticationError("Session has ended, please sign in again")

    return user

def has_open_session(user: User, db: Session) -> bool:
    return db.query(RefreshToken).filter(
        RefreshToken.user_id == user.id,
        RefreshToken.is_revoked == False,  # noqa: E712
        RefreshToken.expires_at > datetime.utcnow()
    ).first() is not None

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    return resolve_session_user(token_payload, db)

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker

async def get_patient_user(
    current_user: User = Depends(require_role([UserRole.PATIENT, UserRole.ADMIN]))
) -> User:
    """Require patient or admin role."""
    return current_user

@dataclass
class PatientContext:
    """Signed-in patient and their active appointment for one request."""
    user: User
    active_appointment: Optional[Appointment] = None

def build_patient_context(user: User, db: Session) -> PatientContext:
    return PatientContext(
        user=user,
        active_appointment=AppointmentService(db).get_active(user),
    )

async def get_patient_context(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
) -> PatientContext:
    return build_patient_context(current_user, db)

def authenticate_websocket(token: Optional[str], db: Session) -> Optional[PatientContext]:
    """Patient context for a WebSocket access token, or None if it is refused."""
    token_payload = verify_token(token) if token else None
    if not token_payload or token_payload.token_type != "access":
        return None
    try:
        user = resolve_session_user(token_payload, db)
    except AuthenticationError:
        return None
    if user.role not in (UserRole.PATIENT, UserRole.ADMIN):
        return None
    return build_patient_context(user, db)

def reload_patient_context(context: PatientContext, db: Session) -> Optional[PatientContext]:
    """Re-read a long-lived connection's context from the database.

    Returns None once the user has signed out or been deactivated.
    """
    db.expire_all()
    if not context.user.is_active or not has_open_session(context.user, db):
        return None
    return build_patient_context(context.user, db)

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Basic per-client rate limiting for sign-up."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, settings.RATE_LIMIT_WINDOW_SECONDS, 1)
    else:
        if int(current_requests) >= settings.RATE_LIMIT_REQUESTS:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
