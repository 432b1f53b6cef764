"""
Security utilities for password hashing, JWT sessions and access dependencies.
"""
import secrets
from datetime import timedelta
from typing import Optional
from passlib.context import CryptContext
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from core.config import settings
from core.exceptions import AuthenticationException, AuthorizationException, PremiumRequiredException
from core.logging import security_logger
from db_config import get_async_db
from models.models import User, UserRoleEnum, UserSession, SubscriptionLevelEnum, utcnow

logger = security_logger

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer scheme; auto_error off so anonymous callers reach get_optional_user
security = HTTPBearer(auto_error=False)

PREMIUM_LEVELS = {SubscriptionLevelEnum.Paid, SubscriptionLevelEnum.Tester}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against its hash.

    Args:
        plain_password: The plain text password
        hashed_password: The hashed password to verify against

    Returns:
        bool: True if password matches, False otherwise
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error("Password verification error", error=str(e))
        return False


def get_password_hash(password: str) -> str:
    """Hash a plain password."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: The claims to encode; ``sub`` carries the username
        expires_delta: Optional custom lifetime, defaults to the session lifetime

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(days=settings.session_expire_days))
    # jti keeps tokens unique when one user logs in twice within a second
    to_encode.update({"exp": expire, "iat": utcnow(), "jti": secrets.token_hex(8)})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    logger.info("Access token created", username=data.get("sub"), expires_at=expire.isoformat())
    return encoded_jwt


def verify_token(token: str) -> Optional[dict]:
    """Decode a JWT, returning None when it is invalid or expired."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning("Token verification failed", error=str(e))
        return None


def open_session(db: AsyncSession, user: User) -> str:
    """Issue a token for ``user`` and persist the matching session row."""
    lifetime = timedelta(days=settings.session_expire_days)
    token = create_access_token({"sub": user.username}, expires_delta=lifetime)
    db.add(UserSession(user_id=user.id, session_token=token, expires_at=utcnow() + lifetime))
    return token


async def close_session(db: AsyncSession, token: str) -> int:
    result = await db.execute(delete(UserSession).where(UserSession.session_token == token))
    return result.rowcount or 0


async def _resolve_user(token: str, db: AsyncSession) -> Optional[User]:
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None

    stmt = (
        select(User)
        .join(UserSession, UserSession.user_id == User.id)
        .where(
            User.username == payload["sub"],
            UserSession.session_token == token,
            UserSession.expires_at > utcnow(),
        )
    )
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("No valid session found", username=payload.get("sub"))
    return user


async def get_optional_user(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_db),
) -> Optional[User]:
    """Return the caller if a valid session token was sent, else None."""
    if token is None:
        return None
    return await _resolve_user(token.credentials, db)


async def get_current_user(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_db),
) -> User:
    """
    Get the current user from the bearer token.

    The token must decode, and a non-expired ``UserSession`` row must still
    hold it; logging out deletes that row.
    """
    if token is None:
        raise AuthenticationException("Unauthorized")
    user = await _resolve_user(token.credentials, db)
    if user is None:
        raise AuthenticationException("Session expired or invalidated. Please log in again.")
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        logger.warning("Inactive user attempted access", username=current_user.username, user_id=current_user.id)
        raise AuthorizationException("Inactive user")
    return current_user


async def get_current_admin_user(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.role != UserRoleEnum.admin:
        logger.warning("Non-admin user attempted admin action", username=current_user.username, user_id=current_user.id)
        raise AuthorizationException("Admin privileges required")
    return current_user


def has_premium_access(level: Optional[SubscriptionLevelEnum]) -> bool:
    return level in PREMIUM_LEVELS


async def require_premium_user(current_user: User = Depends(get_current_active_user)) -> User:
    """Paid and Tester users only."""
    if not has_premium_access(current_user.subscription_level):
        raise PremiumRequiredException()
    return current_user


async def require_tester_user(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.subscription_level != SubscriptionLevelEnum.Tester:
        raise AuthorizationException("Tester access required")
    return current_user
