import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func

import models
from database import get_async_session
from responses import ok, page_meta
from schemas import ApiResponse, Category, CategoryCreate, CategoryUpdate, CategoryWithProducts
from security import require_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["Categories"])


async def _get_category_or_404(db: AsyncSession, category_id: str) -> models.Category:
    category = await db.get(models.Category, category_id)
    if category is None:
        logger.warning(f"Category with ID {category_id} not found.")
        raise HTTPException(status_code=404, detail="Category not found")
    return category


async def _ensure_unique_name(db: AsyncSession, name: str):
    result = await db.execute(select(models.Category.id).where(models.Category.name == name))
    if result.first() is not None:
        raise HTTPException(status_code=409, detail="Category with this name already exists")


@router.get("", response_model=ApiResponse[List[Category]])
async def read_categories(db: AsyncSession = Depends(get_async_session)):
    result = await db.execute(select(models.Category).order_by(models.Category.name.asc()))
    return ok(result.scalars().all(), "Categories retrieved successfully")


@router.get("/{category_id}", response_model=ApiResponse[CategoryWithProducts])
async def read_category(
    category_id: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    """
    A category with its in-stock products, newest first.
    """
    category = await _get_category_or_404(db, category_id)

    conditions = (models.Product.category_id == category_id, models.Product.in_stock.is_(True))
    query = select(models.Product).where(*conditions).order_by(models.Product.created_at.desc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    products = (await db.execute(query)).scalars().all()
    total = await db.scalar(select(func.count(models.Product.id)).where(*conditions))

    return ok(
        {"category": category, "products": products, "total_products": total, **page_meta(total, limit, offset)},
        "Category retrieved successfully",
    )


@router.post("", response_model=ApiResponse[Category], status_code=201)
async def create_category(category_in: CategoryCreate,
                          owner: models.User = Depends(require_owner),
                          db: AsyncSession = Depends(get_async_session)):
    await _ensure_unique_name(db, category_in.name)
    db_category = models.Category(name=category_in.name)
    db.add(db_category)
    await db.commit()
    logger.info(f"Category created: {db_category.name} (ID: {db_category.id})")
    return ok(db_category, "Category created successfully")


@router.put("/{category_id}", response_model=ApiResponse[Category])
async def update_category(category_id: str, category_in: CategoryUpdate,
                          owner: models.User = Depends(require_owner),
                          db: AsyncSession = Depends(get_async_session)):
    db_category = await _get_category_or_404(db, category_id)
    if category_in.name != db_category.name:
        await _ensure_unique_name(db, category_in.name)

    db_category.name = category_in.name
    await db.commit()
    logger.info(f"Category updated: {db_category.name} (ID: {db_category.id})")
    return ok(db_category, "Category updated successfully")


@router.delete("/{category_id}", response_model=ApiResponse[None])
async def delete_category(category_id: str,
                          owner: models.User = Depends(require_owner),
                          db: AsyncSession = Depends(get_async_session)):
    db_category = await _get_category_or_404(db, category_id)
    product_count = await db.scalar(
        select(func.count(models.Product.id)).where(models.Product.category_id == category_id)
    )
    if product_count:
        raise HTTPException(status_code=400, detail=f"Cannot delete category that contains {product_count} products")

    await db.delete(db_category)
    await db.commit()
    logger.info(f"Category deleted: ID {category_id}")
    return ok(None, "Category deleted successfully")
