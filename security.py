import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

import models
from config import Settings
from database import get_async_session

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


class TokenData(BaseModel):
    id: str
    role: models.UserRole


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, role: str, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    role_value = role.value if isinstance(role, models.UserRole) else role
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(seconds=settings.jwt_expires_seconds))
    to_encode = {"id": user_id, "role": role_value, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> TokenData:
    """
    Verifies a token and returns its payload.
    Raises 401 when the token is malformed, tampered with or expired.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized! Token is invalid or expired.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        logger.info("Rejected expired token.")
        raise credentials_exception
    except JWTError:
        logger.info("Rejected invalid token.")
        raise credentials_exception

    user_id = payload.get("id")
    role = payload.get("role")
    if user_id is None or role not in {r.value for r in models.UserRole}:
        raise credentials_exception
    return TokenData(id=user_id, role=role)


def extract_token(request: Request) -> Optional[str]:
    """Reads the token from `x-access-token` or `Authorization`, with or without the Bearer prefix."""
    token = request.headers.get("x-access-token") or request.headers.get("authorization")
    if not token:
        return None
    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    return token.strip() or None


# --- Dependencies ---
async def get_current_user(request: Request) -> TokenData:
    token = extract_token(request)
    if token is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No token provided.")
    return decode_access_token(token, request.app.state.context.settings)


async def _require_role(
    role: models.UserRole, message: str, token: TokenData, db: AsyncSession
) -> models.User:
    # Role is read from the database, not trusted from the token
    user = await db.get(models.User, token.id)
    if user is None or user.role != role:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)
    return user


async def require_buyer(
    token: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> models.User:
    return await _require_role(models.UserRole.BUYER, "Requires Buyer Role!", token, db)


async def require_owner(
    token: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> models.User:
    return await _require_role(models.UserRole.OWNER, "Requires Shop Owner Role!", token, db)
