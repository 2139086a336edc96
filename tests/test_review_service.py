from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from models import OrderStatus, PaymentMethod
from order_service import OrderService
from review_service import ReviewService, mean_rating


async def deliver(session, world, product):
    service = OrderService(session)
    order = await service.place_order(world.buyer.id, world.address.id, PaymentMethod.CARD,
                                      [SimpleNamespace(product_id=product.id, quantity=1)])
    await service.accept_order(order.id, world.owner.id)
    for status in (OrderStatus.PREPARING, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED):
        await service.update_status(order.id, world.owner.id, status)
    return order


@pytest.mark.parametrize("ratings,expected", [
    ([], "0.0"),
    ([5], "5.0"),
    ([4, 5], "4.5"),
    ([5, 4, 4], "4.3"),
    ([5, 5, 4, 4, 4, 4], "4.3"),
    ([1, 2, 2, 2], "1.8"),
])
def test_mean_rating_rounds_half_up_to_one_decimal(ratings, expected):
    assert mean_rating(ratings) == Decimal(expected)


async def test_review_requires_a_delivered_purchase(session, world):
    with pytest.raises(HTTPException) as exc_info:
        await ReviewService(session).create_review(world.buyer.id, world.apples.id, 5)
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "You can only review products you have purchased"


async def test_review_updates_product_rating_and_count(session, world):
    await deliver(session, world, world.apples)
    service = ReviewService(session)

    review = await service.create_review(world.buyer.id, world.apples.id, 4, "Crisp")

    assert review.user.name == "Bruno"
    await session.refresh(world.apples)
    assert world.apples.review_count == 1
    assert Decimal(world.apples.rating) == Decimal("4.0")


async def test_second_review_by_same_buyer_conflicts(session, world):
    await deliver(session, world, world.apples)
    service = ReviewService(session)
    await service.create_review(world.buyer.id, world.apples.id, 4)

    with pytest.raises(HTTPException) as exc_info:
        await service.create_review(world.buyer.id, world.apples.id, 2)
    assert exc_info.value.status_code == 409


async def test_changing_rating_recomputes_and_delete_resets(session, world):
    await deliver(session, world, world.apples)
    service = ReviewService(session)
    review = await service.create_review(world.buyer.id, world.apples.id, 2)

    await service.update_review(review.id, world.buyer.id, rating=5)
    await session.refresh(world.apples)
    assert Decimal(world.apples.rating) == Decimal("5.0")

    product_id = await service.delete_review(review.id, world.buyer.id)
    assert product_id == world.apples.id
    await session.refresh(world.apples)
    assert world.apples.review_count == 0
    assert Decimal(world.apples.rating) == Decimal("0.0")


async def test_only_the_author_can_change_a_review(session, world):
    await deliver(session, world, world.apples)
    service = ReviewService(session)
    review = await service.create_review(world.buyer.id, world.apples.id, 3)

    with pytest.raises(HTTPException) as exc_info:
        await service.update_review(review.id, world.owner.id, rating=1)
    assert exc_info.value.status_code == 403

    with pytest.raises(HTTPException) as exc_info:
        await service.delete_review(review.id, world.owner.id)
    assert exc_info.value.status_code == 403


async def test_product_reviews_are_paginated(session, world):
    await deliver(session, world, world.apples)
    service = ReviewService(session)
    await service.create_review(world.buyer.id, world.apples.id, 3)

    reviews, total = await service.product_reviews(world.apples.id, limit=10, offset=0)
    assert total == 1
    assert reviews[0].user.name == "Bruno"

    with pytest.raises(HTTPException):
        await service.product_reviews("no-such-product")
