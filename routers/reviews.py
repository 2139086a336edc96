import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import models
from cache import ProductCache
from context import get_cache
from database import get_async_session
from responses import ok, page_meta
from review_service import ReviewService
from schemas import ApiResponse, ReviewCreate, ReviewPage, ReviewUpdate, ReviewWithProduct, ReviewWithUser
from security import TokenData, get_current_user, require_buyer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


def get_review_service(db: AsyncSession = Depends(get_async_session)) -> ReviewService:
    return ReviewService(db)


@router.get("/product/{product_id}", response_model=ApiResponse[ReviewPage])
async def read_product_reviews(
    product_id: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    service: ReviewService = Depends(get_review_service),
):
    """
    Reviews for a product, newest first, with the reviewer's name.
    """
    reviews, total = await service.product_reviews(product_id, limit, offset)
    return ok(
        {"reviews": reviews, "total_reviews": total, **page_meta(total, limit, offset)},
        "Product reviews retrieved successfully",
    )


@router.get("/user", response_model=ApiResponse[List[ReviewWithProduct]])
async def read_user_reviews(token: TokenData = Depends(get_current_user),
                            service: ReviewService = Depends(get_review_service)):
    return ok(await service.user_reviews(token.id), "User reviews retrieved successfully")


@router.post("", response_model=ApiResponse[ReviewWithUser], status_code=201)
async def create_review(review_in: ReviewCreate,
                        buyer: models.User = Depends(require_buyer),
                        service: ReviewService = Depends(get_review_service),
                        cache: ProductCache = Depends(get_cache)):
    """
    Review a product the buyer has received.
    - One review per buyer and product.
    """
    review = await service.create_review(buyer.id, review_in.product_id, review_in.rating, review_in.comment)
    await cache.invalidate(review.product_id)
    return ok(review, "Review submitted successfully")


@router.put("/{review_id}", response_model=ApiResponse[ReviewWithUser])
async def update_review(review_id: str, review_in: ReviewUpdate,
                        buyer: models.User = Depends(require_buyer),
                        service: ReviewService = Depends(get_review_service),
                        cache: ProductCache = Depends(get_cache)):
    update_data = review_in.model_dump(exclude_unset=True)
    review = await service.update_review(
        review_id, buyer.id,
        rating=update_data.get("rating"),
        comment=update_data.get("comment"),
        comment_set="comment" in update_data,
    )
    await cache.invalidate(review.product_id)
    return ok(review, "Review updated successfully")


@router.delete("/{review_id}", response_model=ApiResponse[None])
async def delete_review(review_id: str,
                        buyer: models.User = Depends(require_buyer),
                        service: ReviewService = Depends(get_review_service),
                        cache: ProductCache = Depends(get_cache)):
    product_id = await service.delete_review(review_id, buyer.id)
    await cache.invalidate(product_id)
    return ok(None, "Review deleted successfully")
