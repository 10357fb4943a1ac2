from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime, timedelta
import hashlib
import logging

from ..models.user import User, RefreshToken, Profile
from ..core.config import settings
from ..core.security import (
    verify_password, get_password_hash, create_token_pair, verify_token
)
from ..schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse
)

logger = logging.getLogger(__name__)

def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()

class AuthService:
    """Credential sign-up, sign-in and session (refresh token) bookkeeping."""

    def __init__(self, db: Session):
        self.db = db

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new user together with their profile."""
        existing_user = self.db.query(User).filter(
            User.email == user_data.email
        ).first()

        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        new_user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role,
            is_active=True,
        )
        new_user.profile = Profile(
            full_name=user_data.full_name,
            phone=user_data.phone,
        )

        self.db.add(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        logger.info(f"Registered user {new_user.id} with role {new_user.role.value}")
        return new_user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and open a session."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        # Check account lockout
        if user.locked_until and user.locked_until > datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is temporarily locked"
            )

        if not verify_password(login_data.password, user.password_hash):
            self._handle_failed_login(user)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated"
            )

        # Reset failed login attempts
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()

        tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, tokens.refresh_token)

        self.db.commit()
        self.db.refresh(user)

        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=UserResponse.model_validate(user)
        )

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Rotate a refresh token into a new token pair."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != "refresh":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == _hash_token(refresh_token),
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token"
            )

        user = self.db.query(User).filter(
            User.id == token_payload.sub
        ).first()

        if not user or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive"
            )

        new_tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, new_tokens.refresh_token)

        self.db.commit()

        return TokenResponse(
            access_token=new_tokens.access_token,
            refresh_token=new_tokens.refresh_token,
            token_type=new_tokens.token_type,
            expires_in=new_tokens.expires_in,
            user=UserResponse.model_validate(user)
        )

    def logout_user(self, refresh_token: str) -> bool:
        """Close the session by revoking its refresh token."""
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == _hash_token(refresh_token)
        ).first()

        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.db.commit()
        logger.info(f"User {stored_token.user_id} signed out")
        return True

    def _handle_failed_login(self, user: User):
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES)
            logger.warning(f"Locked user {user.id} after {user.failed_login_attempts} failed logins")

        self.db.commit()

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        """Store the new refresh token, revoking the user's previous ones."""
        token_payload = verify_token(refresh_token)
        if token_payload and token_payload.exp:
            expires_at = datetime.utcfromtimestamp(token_payload.exp)
        else:
            expires_at = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=_hash_token(refresh_token),
            expires_at=expires_at
        ))
