import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import func

import models
from cache import ProductCache
from config import Settings
from context import get_cache, get_settings
from database import get_async_session
from responses import ok, page_meta
from schemas import (
    ApiResponse, Product, ProductCreate, ProductDetail, ProductPage, ProductUpdate,
    ProductWithRelations, ReviewWithUser,
)
from security import require_owner
from uploads import remove_image, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["Products"])

RECENT_REVIEWS = 5


def _with_relations():
    return (selectinload(models.Product.category), selectinload(models.Product.shop))


async def _shop_for_owner(db: AsyncSession, user_id: str) -> Optional[models.ShopProfile]:
    result = await db.execute(select(models.ShopProfile).where(models.ShopProfile.user_id == user_id))
    return result.scalars().first()


async def _owned_product(db: AsyncSession, product_id: str, user_id: str, action: str) -> models.Product:
    product = await db.get(models.Product, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    shop = await _shop_for_owner(db, user_id)
    if shop is None or shop.id != product.shop_id:
        raise HTTPException(status_code=403, detail=f"You do not have permission to {action} this product")
    return product


async def _ensure_category(db: AsyncSession, category_id: str):
    if await db.get(models.Category, category_id) is None:
        raise HTTPException(status_code=404, detail="Category not found")


@router.get("", response_model=ApiResponse[ProductPage])
async def read_products(
    category_id: Optional[str] = Query(None),
    shop_id: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0, description="Minimum price of products"),
    max_price: Optional[float] = Query(None, ge=0, description="Maximum price of products"),
    search: Optional[str] = Query(None, description="Matches product name or description"),
    in_stock: Optional[bool] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Retrieve products with filtering and pagination, newest first.
    """
    conditions = []
    if category_id:
        conditions.append(models.Product.category_id == category_id)
    if shop_id:
        conditions.append(models.Product.shop_id == shop_id)
    if in_stock is not None:
        conditions.append(models.Product.in_stock == in_stock)
    if min_price is not None:
        conditions.append(models.Product.price >= min_price)
    if max_price is not None:
        conditions.append(models.Product.price <= max_price)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(models.Product.name.ilike(pattern), models.Product.description.ilike(pattern)))

    query = (
        select(models.Product)
        .where(*conditions)
        .options(*_with_relations())
        .order_by(models.Product.created_at.desc())
    )
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    products = (await db.execute(query)).scalars().all()
    total = await db.scalar(select(func.count(models.Product.id)).where(*conditions))

    return ok(
        {"products": products, "total_products": total, **page_meta(total, limit, offset)},
        "Products retrieved successfully",
    )


@router.get("/shop/owner", response_model=ApiResponse[List[ProductWithRelations]])
async def read_shop_products(owner: models.User = Depends(require_owner), db: AsyncSession = Depends(get_async_session)):
    shop = await _shop_for_owner(db, owner.id)
    if shop is None:
        raise HTTPException(status_code=400, detail="Shop profile not found for this user")

    result = await db.execute(
        select(models.Product)
        .where(models.Product.shop_id == shop.id)
        .options(*_with_relations())
        .order_by(models.Product.created_at.desc())
    )
    return ok(result.scalars().all(), "Shop products retrieved successfully")


@router.get("/{product_id}", response_model=ApiResponse[ProductDetail])
async def read_product(product_id: str,
                       db: AsyncSession = Depends(get_async_session),
                       cache: ProductCache = Depends(get_cache)):
    """
    Get a product with its category, shop and latest reviews.
    - Checks Redis cache first. If not found, fetches from DB and caches for 10 minutes.
    """
    cached_product = await cache.get(product_id)
    if cached_product:
        logger.info(f"Product {product_id} found in Redis cache.")
        return ok(ProductDetail.model_validate_json(cached_product), "Product retrieved successfully")

    result = await db.execute(
        select(models.Product).where(models.Product.id == product_id).options(*_with_relations())
    )
    db_product = result.scalars().first()
    if db_product is None:
        logger.warning(f"Product with ID {product_id} not found.")
        raise HTTPException(status_code=404, detail="Product not found")

    reviews = await db.execute(
        select(models.ProductReview)
        .where(models.ProductReview.product_id == product_id)
        .options(selectinload(models.ProductReview.user))
        .order_by(models.ProductReview.created_at.desc())
        .limit(RECENT_REVIEWS)
    )
    detail = ProductDetail(
        **ProductWithRelations.model_validate(db_product).model_dump(),
        recent_reviews=[ReviewWithUser.model_validate(r) for r in reviews.scalars().all()],
    )

    await cache.set(product_id, detail.model_dump_json())
    return ok(detail, "Product retrieved successfully")


@router.post("", response_model=ApiResponse[Product], status_code=201)
async def create_product(product_in: ProductCreate,
                         owner: models.User = Depends(require_owner),
                         db: AsyncSession = Depends(get_async_session)):
    shop = await _shop_for_owner(db, owner.id)
    if shop is None:
        raise HTTPException(status_code=400, detail="Shop profile not found for this user")
    await _ensure_category(db, product_in.category_id)

    db_product = models.Product(**product_in.model_dump(), shop_id=shop.id)
    db.add(db_product)
    await db.commit()
    logger.info(f"Product created: {db_product.name} (ID: {db_product.id})")
    return ok(db_product, "Product created successfully")


@router.put("/{product_id}", response_model=ApiResponse[Product])
async def update_product(product_id: str, product_in: ProductUpdate,
                         owner: models.User = Depends(require_owner),
                         db: AsyncSession = Depends(get_async_session),
                         cache: ProductCache = Depends(get_cache)):
    """
    Update one of the owner's products. Allows partial updates.
    - Invalidates the product's cache in Redis.
    """
    db_product = await _owned_product(db, product_id, owner.id, "update")

    update_data = product_in.model_dump(exclude_unset=True)
    if update_data.get("category_id") and update_data["category_id"] != db_product.category_id:
        await _ensure_category(db, update_data["category_id"])

    for key, value in update_data.items():
        if value is None and key in ("name", "price", "category_id", "stock", "in_stock"):
            continue
        setattr(db_product, key, value)

    await db.commit()
    await cache.invalidate(product_id)
    logger.info(f"Product updated: {db_product.name} (ID: {db_product.id})")
    return ok(db_product, "Product updated successfully")


@router.put("/{product_id}/image", response_model=ApiResponse[Product])
async def update_product_image(product_id: str,
                               image: UploadFile = File(...),
                               owner: models.User = Depends(require_owner),
                               db: AsyncSession = Depends(get_async_session),
                               cache: ProductCache = Depends(get_cache),
                               settings: Settings = Depends(get_settings)):
    db_product = await _owned_product(db, product_id, owner.id, "update")
    new_path = await save_image(image, "products", settings)
    old_path, db_product.image = db_product.image, new_path
    await db.commit()
    remove_image(old_path, settings)
    await cache.invalidate(product_id)
    return ok(db_product, "Product image updated successfully")


@router.delete("/{product_id}", response_model=ApiResponse[None])
async def delete_product(product_id: str,
                         owner: models.User = Depends(require_owner),
                         db: AsyncSession = Depends(get_async_session),
                         cache: ProductCache = Depends(get_cache),
                         settings: Settings = Depends(get_settings)):
    db_product = await _owned_product(db, product_id, owner.id, "delete")
    image = db_product.image

    await db.delete(db_product)
    await db.commit()
    remove_image(image, settings)
    await cache.invalidate(product_id)
    logger.info(f"Product deleted: ID {product_id}")
    return ok(None, "Product deleted successfully")
