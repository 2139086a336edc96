import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

import models
from database import get_async_session
from responses import ok
from schemas import ApiResponse, User, UserUpdate
from security import TokenData, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.put("/profile", response_model=ApiResponse[User])
async def update_profile(user_in: UserUpdate,
                         token: TokenData = Depends(get_current_user),
                         db: AsyncSession = Depends(get_async_session)):
    """
    Update the authenticated user's name or phone.
    Allows partial updates.
    """
    db_user = await db.get(models.User, token.id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")

    update_data = user_in.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if value is not None:
            setattr(db_user, key, value)

    await db.commit()
    logger.info(f"User updated: {db_user.email} (ID: {db_user.id})")
    return ok(db_user, "Profile updated successfully")


@router.get("/{user_id}", response_model=ApiResponse[User])
async def read_user(user_id: str,
                    token: TokenData = Depends(get_current_user),
                    db: AsyncSession = Depends(get_async_session)):
    db_user = await db.get(models.User, user_id)
    if db_user is None:
        logger.warning(f"User with ID {user_id} not found.")
        raise HTTPException(status_code=404, detail="User not found")
    return ok(db_user, "User retrieved successfully")


@router.delete("", response_model=ApiResponse[None])
async def delete_account(token: TokenData = Depends(get_current_user),
                         db: AsyncSession = Depends(get_async_session)):
    """Deletes the authenticated user with their addresses, reviews and shop."""
    db_user = await db.get(models.User, token.id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")

    await db.delete(db_user)
    await db.commit()
    logger.info(f"User deleted: ID {token.id}")
    return ok(None, "Account deleted successfully")
