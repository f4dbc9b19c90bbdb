# routers/auth.py — Cookie session endpoints: signup/login, whoami, profile, logout
import logging
from typing import Optional, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, CurrentUser, get_current_user, token_service, user_projection,
    set_session_cookie, clear_session_cookie,
)
from config import MIN_PASSWORD_LENGTH
from database import get_db_session
from errors import AuthenticationError, ValidationError
from models import User

logger = logging.getLogger("pr-board.auth")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# ============================================================
# SCHEMAS
# ============================================================

class AuthRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    name: Optional[str] = Field(None, max_length=50)


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    theme: Optional[Literal["light", "dark", "system"]] = None
    email_notifications: Optional[bool] = Field(None, alias="emailNotifications")
    calendar_integration: Optional[bool] = Field(None, alias="calendarIntegration")


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    avatar: Optional[str] = None
    preferences: Optional[PreferencesUpdate] = None


def _session_response(user: User, message: str, status_code: int = 200) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content={"success": True, "message": message, "user": user_projection(user)},
    )
    set_session_cookie(response, token_service.issue(user.id, user.email))
    return response


# ============================================================
# ENDPOINTS
# ============================================================

@router.post("")
async def login_or_signup(
    body: AuthRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Log in or sign up depending on ``action``; both set the session cookie."""
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")

    email = str(body.email).strip().lower()

    if body.action == "signup":
        name = (body.name or "").strip()
        if not name:
            raise ValidationError("Name is required for signup")
        if len(body.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        user = await AuthService.register_user(db, email, body.password, name)
        return _session_response(user, "Account created successfully", status_code=201)

    if body.action == "login":
        user = await AuthService.authenticate_user(db, email, body.password)
        if user is None:
            raise AuthenticationError("Invalid email or password", code="PRB-AUTH-002")
        logger.info("User logged in: %s", user.id)
        return _session_response(user, "Login successful")

    raise ValidationError('Invalid action. Use "login" or "signup"')


@router.get("")
async def whoami(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    user = await db.get(User, current_user.id)
    return {"success": True, "user": user_projection(user)}


@router.patch("")
async def update_profile(
    body: ProfileUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update name, avatar, or a subset of preferences."""
    user = await db.get(User, current_user.id)
    if body.name is not None:
        user.name = body.name.strip()
    if body.avatar is not None:
        user.avatar = body.avatar
    if body.preferences is not None:
        changes = body.preferences.model_dump(exclude_none=True, by_alias=True)
        user.preferences = {**(user.preferences or {}), **changes}
    await db.commit()
    await db.refresh(user)
    return {"success": True, "user": user_projection(user)}


@router.delete("")
async def logout():
    response = JSONResponse(content={"success": True, "message": "Logged out successfully"})
    clear_session_cookie(response)
    return response
