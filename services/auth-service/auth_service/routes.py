import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import Unauthenticated, ValidationError
from shared.responses import ApiResponse
from shared.security import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    Actor,
    create_token,
    decode_token,
    make_current_actor,
)

from .config import (
    ACCESS_TOKEN_MINUTES,
    JWT_ALGORITHM,
    JWT_SECRET,
    REFRESH_TOKEN_DAYS,
)
from .db import get_db
from .models import AuthUser
from .schemas import Login, RefreshRequest, Register, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

get_current_actor = make_current_actor(JWT_SECRET, JWT_ALGORITHM)


def issue_tokens(user: AuthUser) -> dict:
    return {
        "accessToken": create_token(
            user.email,
            user.roles,
            ACCESS_TOKEN,
            timedelta(minutes=ACCESS_TOKEN_MINUTES),
            JWT_SECRET,
            JWT_ALGORITHM,
        ),
        "refreshToken": create_token(
            user.email,
            user.roles,
            REFRESH_TOKEN,
            timedelta(days=REFRESH_TOKEN_DAYS),
            JWT_SECRET,
            JWT_ALGORITHM,
        ),
    }


def serialize_user(user: AuthUser) -> dict:
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        roles=user.roles,
        is_active=user.is_active,
    ).model_dump(by_alias=True)


async def find_user(db: AsyncSession, email: str) -> AuthUser | None:
    result = await db.execute(select(AuthUser).where(AuthUser.email == email))
    return result.scalar_one_or_none()


@router.post("/register")
async def register(data: Register, db: AsyncSession = Depends(get_db)):
    if await find_user(db, data.email):
        raise ValidationError("Email already exists")

    user = AuthUser(
        email=data.email,
        password=pwd_context.hash(data.password),
        full_name=data.full_name,
        phone=data.phone,
        roles=[data.role],
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Email already exists")

    logger.info(f"Registered {user.email} as {data.role}")
    return ApiResponse.created(
        data={"user": serialize_user(user), **issue_tokens(user)},
        message="User registered successfully",
    )


@router.post("/login")
async def login(data: Login, db: AsyncSession = Depends(get_db)):
    user = await find_user(db, data.email)

    if not user or not pwd_context.verify(data.password, user.password):
        logger.warning(f"Failed login for {data.email}")
        raise Unauthenticated("Invalid credentials")

    if not user.is_active:
        raise Unauthenticated("Account is deactivated")

    return ApiResponse.success(
        data={"user": serialize_user(user), **issue_tokens(user)},
        message="Login successful",
    )


@router.post("/refresh")
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    payload = decode_token(data.refresh_token, JWT_SECRET, JWT_ALGORITHM, expected_type=REFRESH_TOKEN)

    user = await find_user(db, payload["sub"])
    if not user or not user.is_active:
        raise Unauthenticated("Account not found or deactivated")

    return ApiResponse.success(data=issue_tokens(user), message="Token refreshed")


@router.get("/me")
async def me(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    user = await find_user(db, actor.subject)
    if not user or not user.is_active:
        raise Unauthenticated("Account not found or deactivated")

    return ApiResponse.success(data={"user": serialize_user(user)}, message="Profile fetched")
