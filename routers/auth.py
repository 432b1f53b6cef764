"""
Authentication routes for signup, login, logout and the current user.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AuthenticationException, BadRequestException
from core.logging import get_logger
from core.rate_limiting import check_rate_limit
from core.security import (
    close_session,
    get_optional_user,
    get_password_hash,
    open_session,
    security,
    verify_password,
)
from db_config import get_async_db
from models.models import SubscriptionLevelEnum, User, utcnow
from schemas.auth import LoginRequest, SignupRequest
from schemas.user import public_user
from services.promo_service import PromoCodeService

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

# Initialize logger for auth operations
logger = get_logger("auth")


@router.post("/signup")
async def signup(payload: SignupRequest, request: Request, db: AsyncSession = Depends(get_async_db)):
    """
    Create an account and start a session.

    - **username**: at least 3 characters, unique
    - **email**: optional, unique when given
    - **password**: at least 6 characters
    - **promoCode**: optional; redeemed together with the account or not at all
    """
    check_rate_limit(request, "auth")
    logger.info("User signup attempt", username=payload.username)

    existing = await db.execute(select(User.id).where(User.username == payload.username))
    if existing.first():
        logger.warning("Signup failed - username already exists", username=payload.username)
        raise BadRequestException("Username already exists")

    if payload.email:
        existing = await db.execute(select(User.id).where(User.email == payload.email))
        if existing.first():
            logger.warning("Signup failed - email already in use")
            raise BadRequestException("Email already in use")

    promo_service = PromoCodeService(db)
    promo = None
    if payload.promo_code:
        # Validated before the user exists so a bad code creates nothing
        promo = await promo_service.validate_for_user(payload.promo_code, None)

    user = User(
        username=payload.username,
        email=payload.email,
        password_hash=get_password_hash(payload.password),
        subscription_level=SubscriptionLevelEnum.Free,
        last_login_at=utcnow(),
    )
    db.add(user)
    await db.flush()

    if promo is not None:
        await promo_service.apply_code(promo, user)

    token = open_session(db, user)
    await db.commit()
    await db.refresh(user)

    logger.info("User registered", user_id=user.id, level=user.subscription_level.value)
    return {
        "ok": True,
        "user": public_user(user),
        "subscriptionLevel": user.subscription_level.value,
        "token": token,
    }


@router.post("/login")
async def login(payload: LoginRequest, request: Request, db: AsyncSession = Depends(get_async_db)):
    check_rate_limit(request, "auth")
    username = payload.username.strip()
    if not username or not payload.password:
        raise BadRequestException("Invalid input")

    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.warning("Login failed - invalid credentials", username=username)
        raise AuthenticationException("Invalid credentials")

    user.last_login_at = utcnow()
    token = open_session(db, user)
    await db.commit()
    await db.refresh(user)

    logger.info("User logged in", user_id=user.id)
    return {"ok": True, "user": public_user(user), "token": token}


@router.post("/logout")
async def logout(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_db),
):
    """End the session for the bearer token; a no-op for anonymous callers."""
    if token is not None:
        removed = await close_session(db, token.credentials)
        await db.commit()
        logger.info("User logged out", sessions_removed=removed)
    return {"ok": True}


@router.get("/me")
async def me(
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    if current_user is None:
        return {"ok": True, "user": None}

    # last_login_at doubles as "last seen"
    current_user.last_login_at = utcnow()
    await db.commit()
    await db.refresh(current_user)
    return {"ok": True, "user": public_user(current_user)}
