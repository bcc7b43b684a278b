"""Authentication utilities."""
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session
import logging

from config import (
    BCRYPT_ROUNDS,
    GUEST_TOKEN_EXPIRES_DAYS,
    JWT_ALGORITHM,
    JWT_EXPIRES_DAYS,
    JWT_SECRET,
)
from database import get_db
from models import User, UserRole
from monitoring import auth_failures_counter, auth_attempts_counter

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Issue a signed session token for a user.

    Args:
        user_id: User identifier
        expires_delta: Override for the default lifetime

    Returns:
        Encoded JWT
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=JWT_EXPIRES_DAYS))
    return jwt.encode({"id": user_id, "exp": expire}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_guest_access_token(order_id: int) -> str:
    """Issue a token that lets a guest follow a single order."""
    expire = datetime.now(timezone.utc) + timedelta(days=GUEST_TOKEN_EXPIRES_DAYS)
    return jwt.encode(
        {"orderId": order_id, "type": "guest", "exp": expire},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM
    )


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify a JWT.

    Raises:
        JWTError: If the signature is invalid or the token expired
    """
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


def rate_limit_key_from_token(token: str) -> str:
    """Stable, non-reversible identifier for a bearer token."""
    return f"user_{hashlib.sha256(token.encode()).hexdigest()[:16]}"


def verify_token(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """
    Verify authentication token.

    Args:
        authorization: Authorization header value

    Returns:
        Decoded token payload

    Raises:
        HTTPException: If token is invalid or missing
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Not authorized to access this route. No token provided.")

    # Extract token (Bearer <token>)
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = parts[1]
    try:
        payload = decode_token(token)
    except JWTError:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise HTTPException(status_code=401, detail="Not authorized to access this route. Invalid token.")

    if payload.get("id") is None:
        auth_failures_counter.add(1, {"reason": "not_a_session_token"})
        logger.warning("Authentication failed: Token carries no user id")
        raise HTTPException(status_code=401, detail="Not authorized to access this route. Invalid token.")

    return payload


def get_current_user(
    payload: Dict[str, Any] = Depends(verify_token),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the authenticated, active user for the request.

    Raises:
        HTTPException: If the user no longer exists or is deactivated
    """
    user = db.get(User, payload["id"])
    if user is None:
        auth_failures_counter.add(1, {"reason": "unknown_user"})
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        auth_failures_counter.add(1, {"reason": "deactivated"})
        logger.warning("Authentication failed: Deactivated account", extra={"user_id": user.id})
        raise HTTPException(status_code=401, detail="User account is deactivated")

    logger.debug("Authentication successful", extra={"user_id": user.id})
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow only admin accounts."""
    if user.role != UserRole.ADMIN:
        logger.warning("Authorization failed: Admin role required", extra={
            "user_id": user.id,
            "role": user.role.value
        })
        raise HTTPException(
            status_code=403,
            detail=f"User role {user.role.value} is not authorized to access this route"
        )
    return user
