import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import models
from geo import Location, OrderMatch, find_nearby_orders
from models import OrderStatus, utcnow

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Owner-driven transitions. Placed -> Accepted goes through accept_order only.
VALID_TRANSITIONS = {
    OrderStatus.ACCEPTED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

OWNER_SETTABLE_STATUSES = {
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
}

BUYER_CANCELLABLE_STATUSES = {OrderStatus.PLACED, OrderStatus.ACCEPTED, OrderStatus.PREPARING}

STATUS_TIMESTAMP_FIELDS = {
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.PREPARING: "prepared_at",
    OrderStatus.OUT_FOR_DELIVERY: "out_for_delivery_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in VALID_TRANSITIONS.get(current, set())


def status_values(status: OrderStatus) -> dict:
    """Column values for moving an order to `status`, timestamp included."""
    values = {"status": status}
    field = STATUS_TIMESTAMP_FIELDS.get(status)
    if field:
        values[field] = utcnow()
    return values


def statuses_leading_to(status: OrderStatus) -> List[OrderStatus]:
    return [current for current, targets in VALID_TRANSITIONS.items() if status in targets]


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def order_load_options():
    return (
        selectinload(models.Order.items),
        selectinload(models.Order.address),
        selectinload(models.Order.buyer),
        selectinload(models.Order.shop),
    )


class OrderService:
    """
    Order placement and the order lifecycle.
    Every write path commits on success and rolls back the whole unit of work
    on any failure, so stock and order rows are never partially persisted.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Helpers ---
    async def shop_for_owner(self, user_id: str) -> models.ShopProfile:
        result = await self.session.execute(
            select(models.ShopProfile).where(models.ShopProfile.user_id == user_id)
        )
        shop = result.scalars().first()
        if shop is None:
            raise HTTPException(status_code=400, detail="Shop profile not found for this user")
        return shop

    async def load_order(self, order_id: str) -> Optional[models.Order]:
        result = await self.session.execute(
            select(models.Order)
            .where(models.Order.id == order_id)
            .options(*order_load_options())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _get_order_or_404(self, order_id: str) -> models.Order:
        order = await self.load_order(order_id)
        if order is None:
            logger.warning(f"Order with ID {order_id} not found.")
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    async def _lock_product(self, product_id: str) -> Optional[models.Product]:
        # Row lock on server databases; concurrent orders serialize here
        result = await self.session.execute(
            select(models.Product).where(models.Product.id == product_id).with_for_update()
        )
        return result.scalars().first()

    async def _claim_status(self, order_id: str, from_statuses: Iterable[OrderStatus], status: OrderStatus, *conditions) -> bool:
        """
        Moves the order to `status` only if it is still in one of `from_statuses`.
        Returns False when a concurrent request changed the order first.
        """
        result = await self.session.execute(
            update(models.Order)
            .where(models.Order.id == order_id, models.Order.status.in_(list(from_statuses)), *conditions)
            .values(**status_values(status))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _restore_stock(self, order: models.Order) -> List[str]:
        restored = []
        for item in order.items:
            product = await self._lock_product(item.product_id)
            if product is None:
                continue
            product.stock += item.quantity
            product.in_stock = True
            restored.append(product.id)
        return restored

    # --- Placement ---
    async def place_order(
        self,
        buyer_id: str,
        address_id: str,
        payment_method: models.PaymentMethod,
        items: Sequence,
        delivery_instructions: Optional[str] = None,
    ) -> models.Order:
        """
        Creates an order for `items` (objects with product_id and quantity).

        Stock is checked and decremented line by line; a product whose stock
        is 0 but still flagged in_stock is treated as untracked. Any failure
        rolls back every decrement and row written so far.
        """
        result = await self.session.execute(
            select(models.Address).where(
                models.Address.id == address_id, models.Address.user_id == buyer_id
            )
        )
        if result.scalars().first() is None:
            raise HTTPException(status_code=404, detail="Address not found or does not belong to user")

        try:
            total_amount = Decimal("0.00")
            order_items = []

            for line in items:
                product = await self._lock_product(line.product_id)
                if product is None:
                    raise HTTPException(status_code=404, detail=f"Product with ID {line.product_id} not found")

                if not product.in_stock or (product.stock > 0 and product.stock < line.quantity):
                    raise HTTPException(
                        status_code=400,
                        detail=f'Product "{product.name}" is out of stock or has insufficient quantity',
                    )

                price = to_money(product.price)
                item_total = to_money(price * line.quantity)
                total_amount += item_total
                order_items.append(
                    models.OrderItem(
                        product_id=product.id,
                        product_name=product.name,
                        product_price=price,
                        quantity=line.quantity,
                        item_total=item_total,
                    )
                )

                if product.stock > 0:
                    product.stock -= line.quantity
                    if product.stock <= 0:
                        product.in_stock = False

            order = models.Order(
                buyer_id=buyer_id,
                total_amount=total_amount,
                status=OrderStatus.PLACED,
                payment_method=payment_method,
                address_id=address_id,
                delivery_instructions=delivery_instructions,
                items=order_items,
            )
            self.session.add(order)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Order placed: ID {order.id} by buyer {buyer_id}, {len(order_items)} items, total {total_amount}")
        return await self.load_order(order.id)

    # --- Lifecycle ---
    async def accept_order(self, order_id: str, owner_user_id: str) -> models.Order:
        """
        Claims an unassigned Placed order for the owner's shop.
        The claim is a single conditional UPDATE; if another shop got there
        first no row matches and the request fails.
        """
        shop = await self.shop_for_owner(owner_user_id)
        order = await self.session.get(models.Order, order_id)
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.shop_id:
            raise HTTPException(status_code=400, detail="Order already accepted by another shop owner")
        if order.status != OrderStatus.PLACED:
            raise HTTPException(status_code=400, detail="Order cannot be accepted in its current state")

        result = await self.session.execute(
            update(models.Order)
            .where(
                models.Order.id == order_id,
                models.Order.shop_id.is_(None),
                models.Order.status == OrderStatus.PLACED,
            )
            .values(shop_id=shop.id, status=OrderStatus.ACCEPTED, accepted_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            logger.info(f"Shop {shop.id} lost the race to accept order {order_id}")
            raise HTTPException(status_code=400, detail="Order already accepted by another shop owner")

        await self.session.commit()
        logger.info(f"Order {order_id} accepted by shop {shop.id}")
        return await self.load_order(order_id)

    async def update_status(self, order_id: str, owner_user_id: str, status: OrderStatus) -> Tuple[models.Order, List[str]]:
        """
        Moves an accepted order along the owner-driven transition table.
        Returns the order and the ids of products whose stock was restored.
        """
        if status not in OWNER_SETTABLE_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status value")

        shop = await self.shop_for_owner(owner_user_id)
        order = await self._get_order_or_404(order_id)

        if not can_transition(order.status, status):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot transition from {order.status.value} to {status.value}",
            )
        if order.shop_id != shop.id:
            raise HTTPException(status_code=403, detail="You do not have permission to update this order")

        restored = []
        try:
            claimed = await self._claim_status(
                order_id, statuses_leading_to(status), status, models.Order.shop_id == shop.id
            )
            if not claimed:
                raise HTTPException(status_code=409, detail="Order was updated by another request")
            if status == OrderStatus.CANCELLED:
                restored = await self._restore_stock(order)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Order ID {order_id} status updated to: {status.value}")
        return await self.load_order(order_id), restored

    async def cancel_order(self, order_id: str, buyer_id: str) -> Tuple[models.Order, List[str]]:
        """Buyer cancellation; restores the stock of every item in the same transaction."""
        order = await self._get_order_or_404(order_id)
        if order.buyer_id != buyer_id:
            raise HTTPException(status_code=403, detail="You do not have permission to cancel this order")
        if order.status not in BUYER_CANCELLABLE_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Order in {order.status.value} status cannot be cancelled"
            )

        try:
            # Only the request that flips the status restores stock
            claimed = await self._claim_status(
                order_id, BUYER_CANCELLABLE_STATUSES, OrderStatus.CANCELLED, models.Order.buyer_id == buyer_id
            )
            if not claimed:
                raise HTTPException(status_code=409, detail="Order was updated by another request")
            restored = await self._restore_stock(order)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Order {order_id} cancelled by buyer {buyer_id}; stock restored for {len(restored)} products")
        return await self.load_order(order_id), restored

    # --- Queries ---
    async def get_order(self, order_id: str, user_id: str) -> models.Order:
        """Visible to its buyer and to the owner of the shop fulfilling it."""
        order = await self._get_order_or_404(order_id)
        result = await self.session.execute(
            select(models.ShopProfile).where(models.ShopProfile.user_id == user_id)
        )
        shop = result.scalars().first()
        if order.buyer_id != user_id and (shop is None or order.shop_id != shop.id):
            raise HTTPException(status_code=403, detail="You do not have permission to access this order")
        return order

    async def _list_orders(self, conditions: Iterable, limit: Optional[int], offset: Optional[int]):
        conditions = list(conditions)
        query = (
            select(models.Order)
            .where(*conditions)
            .options(*order_load_options())
            .order_by(models.Order.created_at.desc())
        )
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        orders = (await self.session.execute(query)).scalars().all()
        total = await self.session.scalar(select(func.count(models.Order.id)).where(*conditions))
        return orders, total

    async def buyer_orders(self, buyer_id: str, status: Optional[OrderStatus] = None,
                           limit: Optional[int] = None, offset: Optional[int] = None):
        conditions = [models.Order.buyer_id == buyer_id]
        if status:
            conditions.append(models.Order.status == status)
        return await self._list_orders(conditions, limit, offset)

    async def owner_orders(self, owner_user_id: str, status: Optional[OrderStatus] = None,
                           limit: Optional[int] = None, offset: Optional[int] = None):
        shop = await self.shop_for_owner(owner_user_id)
        conditions = [models.Order.shop_id == shop.id]
        if status:
            conditions.append(models.Order.status == status)
        return await self._list_orders(conditions, limit, offset)

    async def nearby_orders(self, owner_user_id: str) -> List[OrderMatch]:
        shop = await self.shop_for_owner(owner_user_id)
        shop_location = Location(shop.latitude, shop.longitude)
        if not shop_location.is_set:
            raise HTTPException(
                status_code=400,
                detail="Shop location not set. Please update your shop profile with location information.",
            )

        result = await self.session.execute(
            select(models.Order)
            .where(models.Order.shop_id.is_(None), models.Order.status == OrderStatus.PLACED)
            .options(*order_load_options())
            .order_by(models.Order.created_at.desc())
        )
        return find_nearby_orders(shop_location, shop.delivery_radius, result.scalars().all())

    async def owner_stats(self, owner_user_id: str) -> dict:
        shop = await self.shop_for_owner(owner_user_id)
        Order, OrderItem = models.Order, models.OrderItem
        for_shop = Order.shop_id == shop.id

        total_orders = await self.session.scalar(select(func.count(Order.id)).where(for_shop))

        by_status = await self.session.execute(
            select(Order.status, func.count(Order.id)).where(for_shop).group_by(Order.status)
        )

        total_revenue = await self.session.scalar(
            select(func.coalesce(func.sum(Order.total_amount), 0)).where(
                for_shop, Order.status == OrderStatus.DELIVERED
            )
        )

        since = utcnow() - timedelta(days=30)
        day = func.date(Order.created_at)
        sales_by_date = await self.session.execute(
            select(day.label("day"), func.count(Order.id), func.sum(Order.total_amount))
            .where(for_shop, Order.created_at >= since)
            .group_by(day)
            .order_by(day)
        )

        quantity_sum = func.sum(OrderItem.quantity)
        top_products = await self.session.execute(
            select(OrderItem.product_id, OrderItem.product_name, quantity_sum, func.sum(OrderItem.item_total))
            .join(Order, OrderItem.order_id == Order.id)
            .where(for_shop, Order.status == OrderStatus.DELIVERED)
            .group_by(OrderItem.product_id, OrderItem.product_name)
            .order_by(quantity_sum.desc())
            .limit(5)
        )

        return {
            "total_orders": total_orders or 0,
            "orders_by_status": [{"status": s, "count": c} for s, c in by_status.all()],
            "total_revenue": float(total_revenue or 0),
            "sales_by_date": [
                {"date": str(d), "order_count": c, "total_amount": float(a or 0)}
                for d, c, a in sales_by_date.all()
            ],
            "top_products": [
                {"product_id": pid, "product_name": name, "total_quantity": int(q or 0), "total_sales": float(s or 0)}
                for pid, name, q, s in top_products.all()
            ],
        }
