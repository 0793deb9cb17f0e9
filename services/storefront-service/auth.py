"""Authentication utilities."""
from typing import Optional
from fastapi import Depends, Header, HTTPException
import logging

from domain import Caller
from monitoring import auth_failures_counter, auth_attempts_counter
from security import decode_access_token

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from a "Bearer <token>" header value, if well-formed."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def get_current_caller(authorization: Optional[str] = Header(None)) -> Caller:
    """
    Verify the bearer token and identify the caller.

    Args:
        authorization: Authorization header value

    Returns:
        Caller with user id and admin flag from the token

    Raises:
        HTTPException: If token is invalid or missing
    """
    # Record authentication attempt
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="No token provided. Please log in.")

    token = extract_bearer_token(authorization)
    if token is None:
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    payload = decode_access_token(token)
    if payload is None or "sub" not in payload:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..."
        })
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    caller = Caller(
        user_id=int(payload["sub"]),
        is_admin=payload.get("role") == "admin",
        email=payload.get("email")
    )
    logger.debug("Authentication successful", extra={"user_id": caller.user_id})
    return caller


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Allow only callers holding the admin role."""
    if not caller.is_admin:
        logger.warning("Admin access denied", extra={"user_id": caller.user_id})
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return caller
