import logging
from typing import List

from fastapi import HTTPException
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

import models
from geo import Geocoder

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ("address_line1", "city", "state", "zip_code")


class AddressService:
    """
    Delivery addresses. Keeps exactly one default address per user:
    the first address becomes default, saving a default clears its siblings
    and removing or unsetting the default promotes another address.
    """

    def __init__(self, session: AsyncSession, geocoder: Geocoder):
        self.session = session
        self.geocoder = geocoder

    async def _count(self, user_id: str) -> int:
        return await self.session.scalar(
            select(func.count(models.Address.id)).where(models.Address.user_id == user_id)
        )

    async def _clear_sibling_defaults(self, address: models.Address):
        await self.session.execute(
            update(models.Address)
            .where(models.Address.user_id == address.user_id, models.Address.id != address.id)
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    async def _first_sibling(self, address: models.Address):
        result = await self.session.execute(
            select(models.Address)
            .where(models.Address.user_id == address.user_id, models.Address.id != address.id)
            .order_by(models.Address.created_at.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_addresses(self, user_id: str) -> List[models.Address]:
        result = await self.session.execute(
            select(models.Address)
            .where(models.Address.user_id == user_id)
            .order_by(models.Address.is_default.desc(), models.Address.created_at.desc())
        )
        return result.scalars().all()

    async def get_address(self, address_id: str, user_id: str) -> models.Address:
        result = await self.session.execute(
            select(models.Address).where(models.Address.id == address_id, models.Address.user_id == user_id)
        )
        address = result.scalars().first()
        if address is None:
            raise HTTPException(status_code=404, detail="Address not found or does not belong to user")
        return address

    async def create_address(self, user_id: str, data: dict) -> models.Address:
        data = dict(data)
        if data.get("latitude") is None or data.get("longitude") is None:
            full_address = ", ".join(str(data[f]) for f in ADDRESS_FIELDS)
            location = await self.geocoder.try_geocode(full_address)
            if location is not None:
                data["latitude"], data["longitude"] = location.latitude, location.longitude

        try:
            address = models.Address(user_id=user_id, **data)
            if await self._count(user_id) == 0:
                address.is_default = True
            self.session.add(address)
            await self.session.flush()
            if address.is_default:
                await self._clear_sibling_defaults(address)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Address created: ID {address.id} for user {user_id} (default={address.is_default})")
        return address

    async def update_address(self, address_id: str, user_id: str, changes: dict) -> models.Address:
        address = await self.get_address(address_id, user_id)
        changes = dict(changes)

        address_changed = any(
            changes.get(f) is not None and changes[f] != getattr(address, f) for f in ADDRESS_FIELDS
        )
        latitude = changes.get("latitude", address.latitude)
        longitude = changes.get("longitude", address.longitude)
        if address_changed and (latitude is None or longitude is None):
            full_address = ", ".join(str(changes.get(f) or getattr(address, f)) for f in ADDRESS_FIELDS)
            location = await self.geocoder.try_geocode(full_address)
            if location is not None:
                changes["latitude"], changes["longitude"] = location.latitude, location.longitude

        try:
            for key, value in changes.items():
                if key == "is_default" or (value is None and key != "address_line2"):
                    continue
                setattr(address, key, value)

            is_default = changes.get("is_default")
            if is_default:
                address.is_default = True
                await self.session.flush()
                await self._clear_sibling_defaults(address)
            elif is_default is False and address.is_default:
                sibling = await self._first_sibling(address)
                if sibling is not None:
                    address.is_default = False
                    sibling.is_default = True
                # the user's only address stays default
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Address updated: ID {address.id}")
        return address

    async def delete_address(self, address_id: str, user_id: str):
        address = await self.get_address(address_id, user_id)
        if await self._count(user_id) == 1:
            raise HTTPException(status_code=400, detail="Cannot delete the only address")

        try:
            if address.is_default:
                sibling = await self._first_sibling(address)
                if sibling is not None:
                    sibling.is_default = True
            await self.session.delete(address)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Address deleted: ID {address_id}")

    async def set_default(self, address_id: str, user_id: str) -> models.Address:
        address = await self.get_address(address_id, user_id)
        try:
            address.is_default = True
            await self.session.flush()
            await self._clear_sibling_defaults(address)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Address {address_id} set as default for user {user_id}")
        return address
