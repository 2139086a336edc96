import asyncio
import logging
import random
from decimal import Decimal
from typing import Dict, List

from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select
from sqlalchemy.sql import func

import models
from security import get_password_hash

logger = logging.getLogger(__name__)

fake = Faker()
# Faker.seed(0) # Optional: for reproducible fake data

DEMO_PASSWORD = "password123"
OWNER_EMAIL = "shopowner@example.com"
BUYER_EMAIL = "buyer@example.com"

# Demo shop sits in lower Manhattan; fake buyers are scattered around it
SHOP_LOCATION = (40.7128, -74.0060)
BUYER_LOCATION = (40.7130, -74.0065)

CATEGORY_NAMES = [
    "Fruits", "Vegetables", "Dairy", "Bakery", "Meat",
    "Seafood", "Beverages", "Snacks", "Canned Goods", "Frozen Foods",
]

SAMPLE_PRODUCTS = [
    # (category, name, description, price, original_price, stock, weight, origin, shelf_life, storage)
    ("Fruits", "Organic Apples", "Fresh organic apples from local farms", "3.99", "4.99", 100,
     "1kg", "Local Farms", "2 weeks", "Refrigerated"),
    ("Vegetables", "Fresh Carrots", "Crisp and crunchy fresh carrots", "1.99", None, 150,
     "500g", "Local Farms", "1 week", "Refrigerated"),
    ("Dairy", "Whole Milk", "Fresh whole milk from grass-fed cows", "2.49", None, 50,
     "1L", "Local Dairy", "5 days", "Refrigerated"),
    ("Bakery", "Artisan Bread", "Freshly baked artisan sourdough bread", "4.99", None, 20,
     "750g", "In-house Bakery", "3 days", "Room temperature"),
    ("Meat", "Ground Beef", "Premium ground beef, 85% lean", "6.99", "7.99", 30,
     "500g", "Local Farm", "2 days", "Refrigerated/Frozen"),
    ("Seafood", "Fresh Salmon Fillet", "Wild-caught Atlantic salmon fillet", "12.99", None, 15,
     "300g", "Atlantic Ocean", "1-2 days", "Refrigerated/Frozen"),
    ("Beverages", "Organic Orange Juice", "Freshly squeezed organic orange juice, no added sugar", "3.99", None, 40,
     "1L", "California", "1 week", "Refrigerated"),
    ("Snacks", "Potato Chips", "Crunchy potato chips with sea salt", "2.99", None, 60,
     "200g", "Local Producer", "2 months", "Room temperature"),
    ("Canned Goods", "Tomato Soup", "Classic tomato soup, perfect for quick meals", "1.99", None, 80,
     "400g", "National Brand", "1 year", "Room temperature"),
    ("Frozen Foods", "Frozen Mixed Vegetables", "Mix of frozen peas, carrots, corn, and green beans", "2.49", None, 45,
     "500g", "Various", "6 months", "Frozen"),
]


# --- Helper Functions for Data Generation ---

async def _user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(models.User).where(models.User.email == email))
    return result.scalars().first()


async def seed_categories(db: AsyncSession) -> Dict[str, str]:
    """Creates the default categories if the table is empty. Returns name -> id."""
    count = await db.scalar(select(func.count(models.Category.id)))
    if not count:
        db.add_all(models.Category(name=name) for name in CATEGORY_NAMES)
        await db.commit()
        logger.info(f"{len(CATEGORY_NAMES)} categories created.")

    result = await db.execute(select(models.Category))
    return {c.name: c.id for c in result.scalars().all()}


async def seed_demo_owner(db: AsyncSession) -> models.ShopProfile:
    owner = await _user_by_email(db, OWNER_EMAIL)
    if owner is None:
        logger.info("Creating demo shop owner...")
        owner = models.User(
            name="Demo Shop Owner",
            email=OWNER_EMAIL,
            password=get_password_hash(DEMO_PASSWORD),
            phone="1234567890",
            role=models.UserRole.OWNER,
        )
        db.add(owner)
        db.add(models.ShopProfile(
            user=owner,
            shop_name="Fresh Grocery Mart",
            shop_description="Your neighborhood grocery store for fresh and quality products",
            shop_address="123 Main Street",
            shop_city="Cityville",
            shop_state="Stateville",
            shop_zip_code="12345",
            delivery_radius=10,
            minimum_order=10,
            opening_time="08:00:00",
            closing_time="20:00:00",
            latitude=SHOP_LOCATION[0],
            longitude=SHOP_LOCATION[1],
        ))
        await db.commit()
        logger.info("Demo shop owner created.")

    result = await db.execute(select(models.ShopProfile).where(models.ShopProfile.user_id == owner.id))
    return result.scalars().first()


async def seed_demo_buyer(db: AsyncSession) -> models.User:
    buyer = await _user_by_email(db, BUYER_EMAIL)
    if buyer is None:
        logger.info("Creating demo buyer...")
        buyer = models.User(
            name="Demo Buyer",
            email=BUYER_EMAIL,
            password=get_password_hash(DEMO_PASSWORD),
            phone="9876543210",
            role=models.UserRole.BUYER,
        )
        db.add(buyer)
        db.add(models.Address(
            user=buyer,
            label="Home",
            address_line1="456 Oak Avenue",
            city="Cityville",
            state="Stateville",
            zip_code="12345",
            is_default=True,
            latitude=BUYER_LOCATION[0],
            longitude=BUYER_LOCATION[1],
        ))
        await db.commit()
        logger.info("Demo buyer created.")
    return buyer


async def seed_sample_products(db: AsyncSession, shop: models.ShopProfile, categories: Dict[str, str]) -> List[models.Product]:
    """Adds the sample catalogue to the demo shop when no products exist yet."""
    if await db.scalar(select(func.count(models.Product.id))):
        return []

    products = []
    for category, name, description, price, original_price, stock, weight, origin, shelf_life, storage in SAMPLE_PRODUCTS:
        products.append(models.Product(
            name=name,
            description=description,
            price=Decimal(price),
            original_price=Decimal(original_price) if original_price else None,
            category_id=categories[category],
            shop_id=shop.id,
            stock=stock,
            in_stock=True,
            weight=weight,
            origin=origin,
            shelf_life=shelf_life,
            storage=storage,
        ))
    db.add_all(products)
    await db.commit()
    logger.info(f"{len(products)} sample products created.")
    return products


async def create_fake_buyers(db: AsyncSession, count: int = 10) -> List[models.User]:
    """Generates buyers with one default address each, a few km around the demo shop."""
    password = get_password_hash(DEMO_PASSWORD)
    buyers = []
    for _ in range(count):
        email = fake.unique.email(domain="example.com")
        if await _user_by_email(db, email):
            continue

        buyer = models.User(
            name=fake.name()[:100],
            email=email,
            password=password,
            phone=fake.numerify("##########"),
            role=models.UserRole.BUYER,
        )
        db.add(buyer)
        db.add(models.Address(
            user=buyer,
            label=random.choice(["Home", "Work", "Other"]),
            address_line1=fake.street_address(),
            city=fake.city(),
            state=fake.state(),
            zip_code=fake.zipcode(),
            is_default=True,
            latitude=round(SHOP_LOCATION[0] + random.uniform(-0.1, 0.1), 6),
            longitude=round(SHOP_LOCATION[1] + random.uniform(-0.1, 0.1), 6),
        ))
        buyers.append(buyer)
    await db.commit()
    logger.info(f"Generated and saved {len(buyers)} buyers.")
    return buyers


# --- Main Data Generation Function ---
async def generate_initial_data(session_factory: async_sessionmaker, count_buyers: int = 10):
    """
    Seeds categories, the demo shop and buyer, the sample catalogue and some
    fake buyers. Every step checks for existing rows, so reruns are safe.
    """
    logger.info("Starting initial data generation...")
    async with session_factory() as db:
        try:
            categories = await seed_categories(db)
            shop = await seed_demo_owner(db)
            await seed_demo_buyer(db)
            await seed_sample_products(db, shop, categories)

            existing_buyers = await db.scalar(
                select(func.count(models.User.id)).where(models.User.role == models.UserRole.BUYER)
            )
            if existing_buyers <= 1:
                await create_fake_buyers(db, count_buyers)
        except Exception:
            await db.rollback()
            logger.exception("An error occurred during data generation.")
            raise
    logger.info("Initial data seeding completed successfully!")


# --- Script Execution (for standalone generation) ---
if __name__ == "__main__":
    # This allows running `python data_generator.py` to populate the DB.
    from config import Settings
    from database import build_engine, build_session_factory, init_db

    async def main_standalone():
        settings = Settings.from_env()
        logging.basicConfig(level=settings.log_level)
        engine = build_engine(settings)
        try:
            await init_db(engine, force=settings.db_force_sync, alter=settings.db_alter_sync)
            await generate_initial_data(build_session_factory(engine), count_buyers=50)
        finally:
            await engine.dispose()

    asyncio.run(main_standalone())
