# auth.py — Session authentication for the PR Board
# Features:
# - HS256 JWT session tokens carried in an HTTP-only cookie
# - bcrypt password hashing
# - Outward user projection that never includes the password hash

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends, Request, Response
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import (
    JWT_SECRET_KEY, JWT_ALGORITHM, SESSION_COOKIE_NAME, SESSION_DAYS,
    BCRYPT_ROUNDS, IS_PRODUCTION,
)
from database import get_db_session
from errors import AuthenticationError, ConflictError
from logging_system import get_current_context
from models import User, DEFAULT_PREFERENCES, utcnow

logger = logging.getLogger("pr-board.auth")

TOKEN_TYPE = "session"


# ============================================================
# TOKEN SERVICE
# ============================================================

class TokenError(Exception):
    pass


class InvalidToken(TokenError):
    """Malformed, wrongly signed, or missing required claims."""


class ExpiredToken(TokenError):
    """Correctly signed but past its expiry."""


@dataclass
class TokenClaims:
    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    def __init__(
        self,
        secret_key: str = JWT_SECRET_KEY,
        algorithm: str = JWT_ALGORITHM,
        lifetime: timedelta = timedelta(days=SESSION_DAYS),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = lifetime

    def issue(self, user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self.lifetime),
            "type": TOKEN_TYPE,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredToken("Token expired")
        except JWTError:
            raise InvalidToken("Invalid token")

        if payload.get("type") != TOKEN_TYPE or not payload.get("sub"):
            raise InvalidToken("Invalid token")

        return TokenClaims(
            user_id=payload["sub"],
            email=payload.get("email", ""),
            issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


token_service = TokenService()


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class CurrentUser(BaseModel):
    id: str
    email: str
    name: str
    avatar: Optional[str] = None
    preferences: Dict[str, Any] = {}


def _ts(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def user_projection(user: User) -> Dict[str, Any]:
    """Public view of a user row. Built field by field; the hash is never copied."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "avatar": user.avatar,
        "preferences": {**DEFAULT_PREFERENCES, **(user.preferences or {})},
        "lastLogin": _ts(user.last_login_at),
    }


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    async def register_user(db: AsyncSession, email: str, password: str, name: str) -> User:
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            raise ConflictError("User already exists with this email")

        new_user = User(
            email=email,
            name=name,
            password_hash=AuthService.hash_password(password),
            is_verified=True,
            preferences=dict(DEFAULT_PREFERENCES),
            last_login_at=utcnow(),
        )
        db.add(new_user)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same address
            await db.rollback()
            raise ConflictError("User already exists with this email")
        await db.refresh(new_user)
        logger.info("User registered: %s", new_user.id)
        return new_user

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            return None

        user.last_login_at = utcnow()
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


# ============================================================
# SESSION COOKIE
# ============================================================

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=SESSION_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="strict",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="strict",
        path="/",
    )


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        raise AuthenticationError("No authentication token found")

    try:
        claims = token_service.verify(token)
    except TokenError as e:
        logger.info("Session rejected: %s", e.__class__.__name__)
        raise AuthenticationError("Invalid or expired token")

    user = await db.get(User, claims.user_id)
    if user is None:
        raise AuthenticationError("User not found")

    context = get_current_context()
    if context is not None:
        context.user_id = user.id

    return CurrentUser(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar=user.avatar,
        preferences={**DEFAULT_PREFERENCES, **(user.preferences or {})},
    )
