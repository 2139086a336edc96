import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import func

import models
from config import Settings
from context import get_geocoder, get_settings
from database import get_async_session
from geo import Geocoder, Location, filter_nearby_shops
from responses import ok, page_meta
from schemas import ApiResponse, NearbyShop, ShopPage, ShopProfile, ShopProfileUpdate, ShopProfileWithOwner
from security import require_owner
from uploads import remove_image, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shops", tags=["Shops"])

SHOP_ADDRESS_FIELDS = ("shop_address", "shop_city", "shop_state", "shop_zip_code")


async def _owner_shop(db: AsyncSession, user_id: str, with_owner: bool = False) -> models.ShopProfile:
    query = select(models.ShopProfile).where(models.ShopProfile.user_id == user_id)
    if with_owner:
        query = query.options(selectinload(models.ShopProfile.user))
    result = await db.execute(query)
    shop = result.scalars().first()
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop profile not found for this user")
    return shop


@router.get("/nearby", response_model=ApiResponse[List[NearbyShop]])
async def nearby_shops(
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius: Optional[float] = Query(None, gt=0, description="Upper bound on distance in km"),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Shops that deliver to the given point, nearest first.
    A shop is included only when the point lies inside its own delivery radius.
    """
    if latitude is None or longitude is None:
        raise HTTPException(status_code=400, detail="Latitude and longitude are required")

    result = await db.execute(
        select(models.ShopProfile)
        .where(models.ShopProfile.latitude.is_not(None), models.ShopProfile.longitude.is_not(None))
        .options(selectinload(models.ShopProfile.user))
    )
    matches = filter_nearby_shops(Location(latitude, longitude), result.scalars().all(), max_radius=radius)

    shops = [
        {**ShopProfileWithOwner.model_validate(m.shop).model_dump(), "distance": round(m.distance, 2)}
        for m in matches
    ]
    return ok(shops, "Nearby shops retrieved successfully")


@router.get("/all", response_model=ApiResponse[ShopPage])
async def all_shops(
    search: Optional[str] = Query(None, description="Matches shop name or description"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    conditions = []
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            models.ShopProfile.shop_name.ilike(pattern),
            models.ShopProfile.shop_description.ilike(pattern),
        ))

    query = (
        select(models.ShopProfile)
        .where(*conditions)
        .options(selectinload(models.ShopProfile.user))
        .order_by(models.ShopProfile.rating.desc())
    )
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    shops = (await db.execute(query)).scalars().all()
    total = await db.scalar(select(func.count(models.ShopProfile.id)).where(*conditions))

    return ok(
        {"shops": shops, "total_shops": total, **page_meta(total, limit, offset)},
        "Shops retrieved successfully",
    )


@router.get("/profile", response_model=ApiResponse[ShopProfileWithOwner])
async def get_profile(owner: models.User = Depends(require_owner), db: AsyncSession = Depends(get_async_session)):
    shop = await _owner_shop(db, owner.id, with_owner=True)
    return ok(shop, "Shop profile retrieved successfully")


@router.put("/profile", response_model=ApiResponse[ShopProfile])
async def update_profile(
    shop_in: ShopProfileUpdate,
    owner: models.User = Depends(require_owner),
    db: AsyncSession = Depends(get_async_session),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """
    Partial update of the owner's shop.
    When the address changes and no coordinates are sent, the shop is
    re-geocoded; on failure the previous coordinates are kept.
    """
    shop = await _owner_shop(db, owner.id)
    update_data = shop_in.model_dump(exclude_unset=True)

    address_changed = any(
        update_data.get(f) and update_data[f] != getattr(shop, f) for f in SHOP_ADDRESS_FIELDS
    )
    explicit_location = update_data.get("latitude") is not None and update_data.get("longitude") is not None
    if address_changed and not explicit_location:
        full_address = ", ".join(update_data.get(f) or getattr(shop, f) for f in SHOP_ADDRESS_FIELDS)
        location = await geocoder.try_geocode(full_address)
        if location is not None:
            update_data["latitude"], update_data["longitude"] = location.latitude, location.longitude

    for key, value in update_data.items():
        if value is None and key != "shop_description":
            continue
        setattr(shop, key, value)

    await db.commit()
    logger.info(f"Shop profile updated: {shop.shop_name} (ID: {shop.id})")
    return ok(shop, "Shop profile updated successfully")


@router.put("/profile/image", response_model=ApiResponse[ShopProfile])
async def update_profile_image(
    image: UploadFile = File(...),
    owner: models.User = Depends(require_owner),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
):
    shop = await _owner_shop(db, owner.id)
    new_path = await save_image(image, "shops", settings)
    old_path, shop.shop_image = shop.shop_image, new_path
    await db.commit()
    remove_image(old_path, settings)
    return ok(shop, "Shop image updated successfully")


@router.get("/{shop_id}/public", response_model=ApiResponse[ShopProfileWithOwner])
async def get_shop(shop_id: str, db: AsyncSession = Depends(get_async_session)):
    result = await db.execute(
        select(models.ShopProfile)
        .where(models.ShopProfile.id == shop_id)
        .options(selectinload(models.ShopProfile.user))
    )
    shop = result.scalars().first()
    if shop is None:
        logger.warning(f"Shop with ID {shop_id} not found.")
        raise HTTPException(status_code=404, detail="Shop profile not found")
    return ok(shop, "Shop profile retrieved successfully")
