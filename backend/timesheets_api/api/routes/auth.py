"""
Authentication API routes.

Provides endpoints for login and for reading the authenticated user.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...database.connection import get_db
from ...database.models import User
from ...schemas.auth import UserLoginRequest, AuthResponse, UserInfo
from ...auth.dependencies import get_current_user
from ...auth.jwt_handler import JWTHandler, PasswordHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _user_info(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role.value,
        active=user.active,
        timezone=user.timezone,
        hourly_rate=user.hourly_rate,
    )


# PUBLIC_INTERFACE
@router.post("/login", response_model=AuthResponse,
             summary="User login",
             description="Authenticate user with username and password, returning a bearer access token.")
async def login_user(
    request: UserLoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return an access token.

    Validates user credentials and returns a JWT token along with
    user information.
    """
    user = db.query(User).filter(User.username == request.username, User.active == True).first()
    if not user or not PasswordHandler.verify_password(request.password, user.password_hash):
        logger.info(f"Failed login for '{request.username}'")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    access_token = JWTHandler.create_user_token(user.id, user.username, user.role.value)
    logger.info(f"User {user.id} logged in")

    return AuthResponse(access_token=access_token, user=_user_info(user))


# PUBLIC_INTERFACE
@router.get("/me", response_model=UserInfo,
            summary="Get current user",
            description="Get information about the currently authenticated user.")
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return _user_info(current_user)
