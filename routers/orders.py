import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import models
from cache import ProductCache
from context import get_cache
from database import get_async_session
from order_service import OrderService
from responses import ok, page_meta
from schemas import ApiResponse, NearbyOrder, Order, OrderCreate, OrderPage, OrderStatusUpdate, OwnerStats
from security import TokenData, get_current_user, require_buyer, require_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


def get_order_service(db: AsyncSession = Depends(get_async_session)) -> OrderService:
    return OrderService(db)


def _order_page(orders, total, limit, offset) -> dict:
    return {"orders": orders, "total_orders": total, **page_meta(total, limit, offset)}


# --- Buyer ---
@router.post("", response_model=ApiResponse[Order], status_code=201)
async def create_order(order_in: OrderCreate,
                       buyer: models.User = Depends(require_buyer),
                       service: OrderService = Depends(get_order_service),
                       cache: ProductCache = Depends(get_cache)):
    """
    Place an order.
    - Prices are snapshotted onto the order items.
    - Stock is decremented for every line, or for none if any line fails.
    """
    order = await service.place_order(
        buyer.id, order_in.address_id, order_in.payment_method, order_in.items, order_in.delivery_instructions
    )
    await cache.invalidate(*(item.product_id for item in order.items))
    return ok(order, "Order placed successfully")


@router.get("/buyer", response_model=ApiResponse[OrderPage])
async def read_buyer_orders(
    status: Optional[models.OrderStatus] = Query(None, description="Filter orders by status"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    buyer: models.User = Depends(require_buyer),
    service: OrderService = Depends(get_order_service),
):
    orders, total = await service.buyer_orders(buyer.id, status, limit, offset)
    return ok(_order_page(orders, total, limit, offset), "Orders retrieved successfully")


@router.post("/{order_id}/cancel", response_model=ApiResponse[Order])
async def cancel_order(order_id: str,
                       buyer: models.User = Depends(require_buyer),
                       service: OrderService = Depends(get_order_service),
                       cache: ProductCache = Depends(get_cache)):
    order, restored = await service.cancel_order(order_id, buyer.id)
    await cache.invalidate(*restored)
    return ok(order, "Order cancelled successfully")


# --- Shop owner ---
@router.get("/owner", response_model=ApiResponse[OrderPage])
async def read_owner_orders(
    status: Optional[models.OrderStatus] = Query(None, description="Filter orders by status"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    owner: models.User = Depends(require_owner),
    service: OrderService = Depends(get_order_service),
):
    orders, total = await service.owner_orders(owner.id, status, limit, offset)
    return ok(_order_page(orders, total, limit, offset), "Orders retrieved successfully")


@router.get("/nearby", response_model=ApiResponse[List[NearbyOrder]])
async def read_nearby_orders(owner: models.User = Depends(require_owner),
                             service: OrderService = Depends(get_order_service)):
    """
    Unclaimed orders whose delivery address lies within the shop's delivery radius.
    """
    matches = await service.nearby_orders(owner.id)
    orders = [{**Order.model_validate(m.order).model_dump(), "distance": m.distance} for m in matches]
    return ok(orders, "Nearby orders retrieved successfully")


@router.get("/stats", response_model=ApiResponse[OwnerStats])
async def read_owner_stats(owner: models.User = Depends(require_owner),
                           service: OrderService = Depends(get_order_service)):
    return ok(await service.owner_stats(owner.id), "Shop statistics retrieved successfully")


@router.post("/{order_id}/accept", response_model=ApiResponse[Order])
async def accept_order(order_id: str,
                       owner: models.User = Depends(require_owner),
                       service: OrderService = Depends(get_order_service)):
    order = await service.accept_order(order_id, owner.id)
    return ok(order, "Order accepted successfully")


@router.put("/{order_id}/status", response_model=ApiResponse[Order])
async def update_order_status(order_id: str, status_in: OrderStatusUpdate,
                              owner: models.User = Depends(require_owner),
                              service: OrderService = Depends(get_order_service),
                              cache: ProductCache = Depends(get_cache)):
    order, restored = await service.update_status(order_id, owner.id, status_in.status)
    await cache.invalidate(*restored)
    return ok(order, "Order status updated successfully")


# --- Either party ---
@router.get("/{order_id}", response_model=ApiResponse[Order])
async def read_order(order_id: str,
                     token: TokenData = Depends(get_current_user),
                     service: OrderService = Depends(get_order_service)):
    return ok(await service.get_order(order_id, token.id), "Order retrieved successfully")
