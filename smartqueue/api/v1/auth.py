from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user, rate_limit_check
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse, RefreshTokenRequest
)
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/register", response_model=UserResponse)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Sign up with credentials and profile details."""
    user = AuthService(db).register_user(user_data)
    return UserResponse.model_validate(user)

@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
):
    """Sign in and open a session."""
    return AuthService(db).authenticate_user(login_data)

@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Refresh access token using refresh token."""
    return AuthService(db).refresh_access_token(refresh_data.refresh_token)

@router.post("/logout")
async def logout(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Sign out by revoking the session's refresh token."""
    success = AuthService(db).logout_user(refresh_data.refresh_token)
    return {"message": "Successfully logged out" if success else "Logout completed"}

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Current session's user and profile."""
    return UserResponse.model_validate(current_user)
