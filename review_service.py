import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import models

logger = logging.getLogger(__name__)

RATING_STEP = Decimal("0.1")


def mean_rating(ratings) -> Decimal:
    """Mean of the ratings rounded half-up to one decimal; 0 when there are none."""
    ratings = list(ratings)
    if not ratings:
        return Decimal("0.0")
    return (Decimal(sum(ratings)) / Decimal(len(ratings))).quantize(RATING_STEP, rounding=ROUND_HALF_UP)


class ReviewService:
    """
    Product reviews. Each write recomputes the product's rating from all of its
    reviews (a full re-read, O(n) per write) inside the same transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_product_or_404(self, product_id: str) -> models.Product:
        product = await self.session.get(models.Product, product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    async def _get_own_review(self, review_id: str, user_id: str, action: str) -> models.ProductReview:
        review = await self.session.get(models.ProductReview, review_id)
        if review is None:
            raise HTTPException(status_code=404, detail="Review not found")
        if review.user_id != user_id:
            raise HTTPException(status_code=403, detail=f"You do not have permission to {action} this review")
        return review

    async def _recompute_rating(self, product: models.Product):
        await self.session.flush()
        result = await self.session.execute(
            select(models.ProductReview.rating).where(models.ProductReview.product_id == product.id)
        )
        product.rating = mean_rating(result.scalars().all())

    async def load_review(self, review_id: str) -> models.ProductReview:
        result = await self.session.execute(
            select(models.ProductReview)
            .where(models.ProductReview.id == review_id)
            .options(selectinload(models.ProductReview.user))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def has_purchased(self, user_id: str, product_id: str) -> bool:
        result = await self.session.execute(
            select(models.OrderItem.id)
            .join(models.Order, models.OrderItem.order_id == models.Order.id)
            .where(
                models.OrderItem.product_id == product_id,
                models.Order.buyer_id == user_id,
                models.Order.status == models.OrderStatus.DELIVERED,
            )
            .limit(1)
        )
        return result.first() is not None

    async def create_review(self, user_id: str, product_id: str, rating: int, comment: Optional[str] = None) -> models.ProductReview:
        product = await self._get_product_or_404(product_id)

        if not await self.has_purchased(user_id, product_id):
            raise HTTPException(status_code=400, detail="You can only review products you have purchased")

        existing = await self.session.execute(
            select(models.ProductReview.id).where(
                models.ProductReview.product_id == product_id,
                models.ProductReview.user_id == user_id,
            )
        )
        if existing.first() is not None:
            raise HTTPException(status_code=409, detail="You have already reviewed this product")

        try:
            review = models.ProductReview(product_id=product_id, user_id=user_id, rating=rating, comment=comment)
            self.session.add(review)
            product.review_count += 1
            await self._recompute_rating(product)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Review created: ID {review.id} for Product {product_id} by User {user_id}")
        return await self.load_review(review.id)

    async def update_review(self, review_id: str, user_id: str, rating: Optional[int] = None,
                            comment: Optional[str] = None, comment_set: bool = False) -> models.ProductReview:
        """`comment_set` distinguishes an explicit null comment from an omitted one."""
        review = await self._get_own_review(review_id, user_id, "update")

        try:
            rating_changed = rating is not None and rating != review.rating
            if rating is not None:
                review.rating = rating
            if comment_set:
                review.comment = comment
            if rating_changed:
                product = await self._get_product_or_404(review.product_id)
                await self._recompute_rating(product)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Review ID {review_id} updated.")
        return await self.load_review(review_id)

    async def delete_review(self, review_id: str, user_id: str) -> str:
        """Deletes the review and returns the id of the product it belonged to."""
        review = await self._get_own_review(review_id, user_id, "delete")
        product_id = review.product_id

        try:
            product = await self._get_product_or_404(product_id)
            await self.session.delete(review)
            if product.review_count > 0:
                product.review_count -= 1
                if product.review_count == 0:
                    product.rating = Decimal("0.0")
                else:
                    await self._recompute_rating(product)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Review ID {review_id} deleted.")
        return product_id

    async def product_reviews(self, product_id: str, limit: Optional[int] = None, offset: Optional[int] = None):
        await self._get_product_or_404(product_id)
        query = (
            select(models.ProductReview)
            .where(models.ProductReview.product_id == product_id)
            .options(selectinload(models.ProductReview.user))
            .order_by(models.ProductReview.created_at.desc())
        )
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        reviews = (await self.session.execute(query)).scalars().all()
        total = await self.session.scalar(
            select(func.count(models.ProductReview.id)).where(models.ProductReview.product_id == product_id)
        )
        return reviews, total

    async def user_reviews(self, user_id: str):
        result = await self.session.execute(
            select(models.ProductReview)
            .where(models.ProductReview.user_id == user_id)
            .options(selectinload(models.ProductReview.product))
            .order_by(models.ProductReview.created_at.desc())
        )
        return result.scalars().all()
