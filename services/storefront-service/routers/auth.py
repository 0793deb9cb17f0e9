"""Authentication API router."""
from fastapi import APIRouter, Depends, HTTPException
import logging

from auth import get_current_caller
from dependencies import get_store
from domain import Caller, User, utcnow
from errors import ConflictError, NotFoundError
from monitoring import auth_attempts_counter, auth_failures_counter
from repositories import Store
from schemas import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(request: RegisterRequest, store: Store = Depends(get_store)):
    """Create a shopper account and return a token for it."""
    email = request.email.strip().lower()

    with store.transaction():
        if store.users.get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists")
        user = store.users.insert(User(
            email=email,
            password_hash=hash_password(request.password),
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            role="user",
            created_at=utcnow(),
        ))

    logger.info("User registered", extra={"user_id": user.id})
    return {"token": create_access_token(user), "user": user}


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, store: Store = Depends(get_store)):
    """Authenticate with email and password and return a token."""
    auth_attempts_counter.add(1, {"type": "login"})

    user = store.users.get_by_email(request.email.strip().lower())
    if user is None:
        auth_failures_counter.add(1, {"reason": "unknown_email"})
        logger.warning("Login failed: Unknown email")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not verify_password(request.password, user.password_hash):
        auth_failures_counter.add(1, {"reason": "invalid_password"})
        logger.warning("Login failed: Invalid password", extra={"user_id": user.id})
        raise HTTPException(status_code=401, detail="Invalid email or password")

    logger.info("User logged in successfully", extra={
        "user_id": user.id,
        "role": user.role
    })
    return {"token": create_access_token(user), "user": user}


@router.get("/me", response_model=UserResponse)
def me(caller: Caller = Depends(get_current_caller), store: Store = Depends(get_store)):
    """Return the authenticated user's profile."""
    user = store.users.get(caller.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
