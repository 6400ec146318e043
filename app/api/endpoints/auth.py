import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import timedelta

from app.core.exceptions import NotFound, Unauthorized, ValidationFailed, envelope
from app.core.security import (
    Identity,
    create_access_token,
    get_current_identity,
    get_password_hash,
    verify_password,
)
from app.db import crud
from app.db.session import get_db_session
from app.models.user import LoginRequest, UserCreate, serialize_user
from config.settings import settings

logger = logging.getLogger("tasktrack.auth")

router = APIRouter()

def _set_session_cookie(response: JSONResponse, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Creates an account. The password is stored as a bcrypt hash only.
    """
    if await crud.get_user_by_email(db, email=user_in.email):
        raise ValidationFailed("Email already registered")

    try:
        user = await crud.create_user(
            db,
            name=user_in.name,
            email=user_in.email,
            hashed_password=get_password_hash(user_in.password),
        )
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        await db.rollback()
        raise ValidationFailed("Email already registered")

    logger.info(f"Registered user {user.id}")
    return envelope(
        status.HTTP_201_CREATED,
        success=True,
        message="User registered successfully",
        data={"user": serialize_user(user)},
    )

@router.post("/login")
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Verifies email and password, returns a JWT and also sets it as the
    session cookie so browser clients need not handle it.
    """
    user = await crud.get_user_by_email(db, email=credentials.email)

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.info("Login failed: incorrect email or password")
        raise Unauthorized("Invalid email or password")

    access_token = create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

    response = envelope(
        status.HTTP_200_OK,
        success=True,
        message="Login successful",
        data={"user": serialize_user(user), "token": access_token},
    )
    _set_session_cookie(response, access_token)
    return response

@router.post("/logout")
async def logout() -> JSONResponse:
    """
    Stateless acknowledgement. Tokens stay valid until they expire;
    the cookie is cleared for browser clients.
    """
    response = envelope(status.HTTP_200_OK, success=True, message="Logout successful")
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response

@router.get("/me")
async def read_current_user(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    user = await crud.get_user(db, user_id=identity.user_id)
    if user is None:
        raise NotFound("User not found")
    return envelope(status.HTTP_200_OK, success=True, data={"user": serialize_user(user)})
