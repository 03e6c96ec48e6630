from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.deps import get_current_user
from app.db.dependencies import get_db
from app.models.user.user_model import User
from app.schemas.user_schema import LoginRequest, TokenResponse, UserResponse
from app.services.auth.auth_service import AuthService


settings = get_settings()

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Login and receive an access token

    - **Validates**: email and password
    - **Returns**: Bearer token (valid for ACCESS_TOKEN_EXPIRE_MINUTES) and user info
    """
    user, access_token = await AuthService.authenticate_user(db, login_data)

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.access_token_expire_seconds,
        user=UserResponse.model_validate(user)
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """
    Get the authenticated user

    **Returns**: Profile of the token's owner, including role
    """
    return current_user
