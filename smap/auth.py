"""
Authentication utilities for JWT tokens and password hashing.

The authenticated user is the owner of every scheduled post, platform
connection and analytics snapshot a request touches.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models.user import User
from .config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

OAUTH_STATE_MINUTES = 10


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(user_id: int, token_type: str, lifetime: timedelta) -> str:
    payload = {
        "sub": str(user_id),  # JWT sub claim must be a string
        "type": token_type,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token for a user."""
    return _encode(user_id, "access", expires_delta or timedelta(minutes=settings.access_token_expire_minutes))


def create_tokens(user_id: int) -> Tuple[str, str]:
    """Create both access and refresh tokens for a user."""
    access_token = create_access_token(user_id)
    refresh_token = _encode(user_id, "refresh", timedelta(days=settings.refresh_token_expire_days))
    return access_token, refresh_token


def create_state_token(user_id: int) -> str:
    """Short-lived token carried through an OAuth redirect to identify the user."""
    return _encode(user_id, "oauth_state", timedelta(minutes=OAUTH_STATE_MINUTES))


def decode_user_id(token: str, expected_type: str = "access") -> Optional[int]:
    """Return the user id carried by a valid token of the expected type."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if payload.get("type", "access") != expected_type:
        return None

    try:
        return int(payload.get("sub"))
    except (ValueError, TypeError):
        return None


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Get the current user from the JWT token (optional auth)."""
    if not token:
        return None

    user_id = decode_user_id(token, "access")
    if user_id is None:
        return None

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_required_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """Get the current user, raising 401 if not authenticated."""
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


def refresh_access_token(refresh_token: str, db: Session) -> Optional[Tuple[str, str]]:
    """Use a refresh token to get new access and refresh tokens."""
    user_id = decode_user_id(refresh_token, "refresh")
    if user_id is None:
        return None

    user = db.get(User, user_id)
    if not user or not user.is_active:
        return None

    return create_tokens(user_id)
