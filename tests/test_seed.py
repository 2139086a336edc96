from sqlalchemy import func, select

import models
from data_generator import BUYER_EMAIL, CATEGORY_NAMES, SAMPLE_PRODUCTS, generate_initial_data
from geo import calculate_distance


async def count(session, model):
    return await session.scalar(select(func.count(model.id)))


async def test_seed_is_idempotent(session_factory):
    await generate_initial_data(session_factory, count_buyers=3)
    await generate_initial_data(session_factory, count_buyers=3)

    async with session_factory() as session:
        assert await count(session, models.Category) == len(CATEGORY_NAMES)
        assert await count(session, models.Product) == len(SAMPLE_PRODUCTS)
        assert await count(session, models.ShopProfile) == 1
        # demo buyer plus the fake ones, created once
        assert await count(session, models.User) == 1 + 1 + 3


async def test_demo_buyer_lives_inside_the_demo_shop_radius(session_factory):
    await generate_initial_data(session_factory, count_buyers=0)

    async with session_factory() as session:
        shop = (await session.execute(select(models.ShopProfile))).scalars().first()
        buyer = (await session.execute(select(models.User).where(models.User.email == BUYER_EMAIL))).scalars().first()
        address = (await session.execute(
            select(models.Address).where(models.Address.user_id == buyer.id)
        )).scalars().first()

    assert address.is_default is True
    distance = calculate_distance(shop.latitude, shop.longitude, address.latitude, address.longitude)
    assert distance <= shop.delivery_radius
