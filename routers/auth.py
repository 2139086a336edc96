import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

import models
from config import Settings
from context import get_settings
from database import get_async_session
from responses import ok
from schemas import ApiResponse, AuthResult, ChangePasswordRequest, LoginRequest, MeResult, RegisterRequest
from security import TokenData, create_access_token, get_current_user, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _auth_result(user: models.User, settings: Settings) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "access_token": create_access_token(user.id, user.role, settings),
    }


@router.post("/register", response_model=ApiResponse[AuthResult], status_code=201)
async def register(user_in: RegisterRequest,
                   db: AsyncSession = Depends(get_async_session),
                   settings: Settings = Depends(get_settings)):
    """
    Create a new account.
    - **email**: Must be unique.
    - Shop owners get an empty shop profile to fill in later.
    """
    result = await db.execute(select(models.User).where(models.User.email == user_in.email))
    if result.scalars().first():
        raise HTTPException(status_code=409, detail="User already exists with this email")

    db_user = models.User(
        name=user_in.name,
        email=user_in.email,
        password=get_password_hash(user_in.password),
        phone=user_in.phone,
        role=user_in.role,
    )
    db.add(db_user)
    if user_in.role == models.UserRole.OWNER:
        db.add(models.ShopProfile(user=db_user, shop_name=f"{user_in.name}'s Shop", shop_description=""))
    await db.commit()

    logger.info(f"User registered: {db_user.email} (ID: {db_user.id}, role: {db_user.role.value})")
    return ok(_auth_result(db_user, settings), "User registered successfully")


@router.post("/login", response_model=ApiResponse[AuthResult])
async def login(credentials: LoginRequest,
                db: AsyncSession = Depends(get_async_session),
                settings: Settings = Depends(get_settings)):
    result = await db.execute(select(models.User).where(models.User.email == credentials.email))
    db_user = result.scalars().first()
    if db_user is None or not verify_password(credentials.password, db_user.password):
        logger.warning(f"Failed login attempt for {credentials.email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return ok(_auth_result(db_user, settings), "Login successful")


@router.get("/me", response_model=ApiResponse[MeResult])
async def me(token: TokenData = Depends(get_current_user), db: AsyncSession = Depends(get_async_session)):
    """The authenticated user, with the shop profile for owners."""
    result = await db.execute(
        select(models.User).where(models.User.id == token.id).options(selectinload(models.User.shop_profile))
    )
    db_user = result.scalars().first()
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return ok(db_user, "User profile retrieved successfully")


@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(body: ChangePasswordRequest,
                          token: TokenData = Depends(get_current_user),
                          db: AsyncSession = Depends(get_async_session)):
    db_user = await db.get(models.User, token.id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_password(body.current_password, db_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    db_user.password = get_password_hash(body.new_password)
    await db.commit()
    logger.info(f"Password changed for user {db_user.id}")
    return ok(None, "Password changed successfully")
