import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument, ASCENDING, DESCENDING

from tibeb.accounts import UserStore
from tibeb.catalog import CatalogStore
from tibeb.models import CartLine, OrderDB, OrderItemDB, OrderStatus
from tibeb.shared.utils import (
    ValidationException, NotFoundException, str_to_oid, to_document, from_document, to_decimal
)

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

# Per-line ceiling; also keeps quantities inside MongoDB's 64-bit ints
MAX_ITEM_QUANTITY = 10_000


class InvalidInputException(ValidationException):
    def __init__(self, detail: str = "Order must contain at least one item"):
        super().__init__(detail)

class InvalidItemException(ValidationException):
    def __init__(self, detail: str = "Invalid order item"):
        super().__init__(detail)


class OrderStore:
    def __init__(self, db: AsyncIOMotorDatabase, catalog: CatalogStore, users: UserStore):
        self.collection = db.orders
        self.catalog = catalog
        self.users = users

    async def ensure_indexes(self):
        await self.collection.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("created_at", DESCENDING)])

    async def create(self, order: OrderDB) -> dict:
        result = await self.collection.insert_one(to_document(order))
        return await self.get(str(result.inserted_id))

    async def get(self, order_id: str) -> dict:
        order = await self.collection.find_one({"_id": str_to_oid(order_id)})
        if not order:
            raise NotFoundException("Order not found")
        return from_document(order)

    async def list_by_user(self, user_id: str) -> List[dict]:
        cursor = self.collection.find({"user_id": user_id}, sort=NEWEST_FIRST)
        orders = [from_document(doc) for doc in await cursor.to_list(length=None)]
        return await self.expand(orders)

    async def list_all(self) -> List[dict]:
        cursor = self.collection.find({}, sort=NEWEST_FIRST)
        orders = [from_document(doc) for doc in await cursor.to_list(length=None)]
        return await self.expand(orders, with_users=True)

    async def update_status(self, order_id: str, status: OrderStatus) -> dict:
        # Only the status moves; lines and totals are fixed at creation
        order = await self.collection.find_one_and_update(
            {"_id": str_to_oid(order_id)},
            {"$set": {"status": OrderStatus(status).value, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if not order:
            raise NotFoundException("Order not found")
        return from_document(order)

    async def cancel(self, order_id: str, user_id: str) -> dict:
        order = await self.collection.find_one({"_id": str_to_oid(order_id), "user_id": user_id})
        if not order:
            raise NotFoundException("Order not found")
        if order["status"] != OrderStatus.PENDING.value:
            raise ValidationException("Cannot cancel order that is not pending")
        return await self.update_status(order_id, OrderStatus.CANCELLED)

    async def expand(self, orders: List[dict], with_users: bool = False) -> List[dict]:
        """Swap product (and optionally user) references for their display records."""
        product_ids = [item["product_id"] for order in orders for item in order["items"]]
        products = await self.catalog.find_by_ids(product_ids)
        users = await self.users.find_by_ids([o["user_id"] for o in orders]) if with_users else {}

        for order in orders:
            for item in order["items"]:
                item["product"] = products.get(item["product_id"], item["product_id"])
            if with_users:
                order["user"] = users.get(order["user_id"], order["user_id"])
        return orders


class OrderResolver:
    """Turns a client cart into a priced, persisted order."""

    def __init__(self, catalog: CatalogStore, orders: OrderStore):
        self.catalog = catalog
        self.orders = orders

    async def place_order(self, user_id: str, cart_lines: Optional[List[CartLine]]) -> dict:
        if not cart_lines:
            raise InvalidInputException()

        active = await self.catalog.find_active_by_ids(
            [line.product_id for line in cart_lines if line.product_id]
        )

        # Every line is checked before anything is written
        items = []
        total = Decimal(0)
        for position, line in enumerate(cart_lines, start=1):
            product = active.get(line.product_id) if line.product_id else None
            if product is None:
                raise InvalidItemException(f"Item {position}: product is unavailable")
            if line.quantity is None or line.quantity < 1:
                raise InvalidItemException(f"Item {position}: quantity must be at least 1")
            if line.quantity > MAX_ITEM_QUANTITY:
                raise InvalidItemException(f"Item {position}: quantity must be at most {MAX_ITEM_QUANTITY}")

            price = to_decimal(product["price"])
            total += price * line.quantity
            items.append(OrderItemDB(
                product_id=product["id"],
                quantity=line.quantity,
                price_at_purchase=price,
            ))

        order = await self.orders.create(OrderDB(
            user_id=user_id,
            items=items,
            total_amount=total,
            status=OrderStatus.PENDING,
        ))
        logger.info("Order placed", extra={
            "order_id": order["id"],
            "user_id": user_id,
            "total_amount": str(total),
        })
        return order
