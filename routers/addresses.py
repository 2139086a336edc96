import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from address_service import AddressService
from context import get_geocoder
from database import get_async_session
from geo import Geocoder
from responses import ok
from schemas import Address, AddressCreate, AddressUpdate, ApiResponse
from security import TokenData, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/addresses", tags=["Addresses"])


def get_address_service(db: AsyncSession = Depends(get_async_session),
                        geocoder: Geocoder = Depends(get_geocoder)) -> AddressService:
    return AddressService(db, geocoder)


@router.get("", response_model=ApiResponse[List[Address]])
async def read_addresses(token: TokenData = Depends(get_current_user),
                         service: AddressService = Depends(get_address_service)):
    """The user's addresses, default first."""
    return ok(await service.list_addresses(token.id), "Addresses retrieved successfully")


@router.post("", response_model=ApiResponse[Address], status_code=201)
async def create_address(address_in: AddressCreate,
                         token: TokenData = Depends(get_current_user),
                         service: AddressService = Depends(get_address_service)):
    address = await service.create_address(token.id, address_in.model_dump())
    return ok(address, "Address created successfully")


@router.get("/{address_id}", response_model=ApiResponse[Address])
async def read_address(address_id: str,
                       token: TokenData = Depends(get_current_user),
                       service: AddressService = Depends(get_address_service)):
    return ok(await service.get_address(address_id, token.id), "Address retrieved successfully")


@router.put("/{address_id}", response_model=ApiResponse[Address])
async def update_address(address_id: str, address_in: AddressUpdate,
                         token: TokenData = Depends(get_current_user),
                         service: AddressService = Depends(get_address_service)):
    address = await service.update_address(address_id, token.id, address_in.model_dump(exclude_unset=True))
    return ok(address, "Address updated successfully")


@router.delete("/{address_id}", response_model=ApiResponse[None])
async def delete_address(address_id: str,
                         token: TokenData = Depends(get_current_user),
                         service: AddressService = Depends(get_address_service)):
    await service.delete_address(address_id, token.id)
    return ok(None, "Address deleted successfully")


@router.put("/{address_id}/default", response_model=ApiResponse[Address])
async def set_default_address(address_id: str,
                              token: TokenData = Depends(get_current_user),
                              service: AddressService = Depends(get_address_service)):
    address = await service.set_default(address_id, token.id)
    return ok(address, "Address set as default successfully")
