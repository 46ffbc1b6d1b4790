import math
import re
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel
from pymongo import ReturnDocument, ASCENDING, DESCENDING
from motor.motor_asyncio import AsyncIOMotorDatabase

from tibeb.models import ProductDB
from tibeb.shared.utils import (
    NotFoundException, str_to_oid, parse_oids, to_document, from_document
)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
# Largest skip MongoDB accepts (signed 64-bit)
MAX_SKIP = 2 ** 63 - 1

# Newest first; _id breaks ties between documents created in the same millisecond
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


class ProductFilter(BaseModel):
    q: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    def to_query(self) -> dict:
        query: Dict[str, Any] = {"is_active": True}
        if self.q and self.q.strip():
            # Substring match, so the search text is never treated as a pattern
            pattern = re.escape(self.q.strip())
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        if self.category:
            query["category"] = self.category

        price_query = {}
        if self.min_price is not None:
            price_query["$gte"] = float(self.min_price)
        if self.max_price is not None:
            price_query["$lte"] = float(self.max_price)
        if price_query:
            query["price"] = price_query
        return query


class CatalogPage(BaseModel):
    items: List[dict]
    total: int
    page: int
    pages: int


def _to_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default

def normalize_paging(page: Any = None, limit: Any = None) -> Tuple[int, int]:
    """Page is floored to 1 (and capped so its skip fits in MongoDB), limit clamped into
    [1, MAX_LIMIT]; junk falls back to defaults."""
    page = max(1, _to_int(page, DEFAULT_PAGE))
    limit = min(MAX_LIMIT, max(1, _to_int(limit, DEFAULT_LIMIT)))
    page = min(page, MAX_SKIP // limit + 1)
    return page, limit


class CatalogStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.products

    async def ensure_indexes(self):
        await self.collection.create_index([("is_active", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index("category")

    async def query(self, product_filter: ProductFilter, page: Any = None, limit: Any = None) -> CatalogPage:
        page, limit = normalize_paging(page, limit)
        query = product_filter.to_query()

        total = await self.collection.count_documents(query)
        skip = (page - 1) * limit
        docs = []
        if skip < total:
            cursor = self.collection.find(query, sort=NEWEST_FIRST, skip=skip, limit=limit)
            docs = await cursor.to_list(length=limit)

        return CatalogPage(
            items=[from_document(doc) for doc in docs],
            total=total,
            page=page,
            pages=math.ceil(total / limit),
        )

    async def get_active(self, product_id: str) -> dict:
        product = await self.collection.find_one({"_id": str_to_oid(product_id), "is_active": True})
        if not product:
            raise NotFoundException("Product not found")
        return from_document(product)

    async def get(self, product_id: str) -> dict:
        product = await self.collection.find_one({"_id": str_to_oid(product_id)})
        if not product:
            raise NotFoundException("Product not found")
        return from_document(product)

    async def find_active_by_ids(self, product_ids: List[str]) -> Dict[str, dict]:
        return await self._find_by_ids(product_ids, {"is_active": True})

    async def find_by_ids(self, product_ids: List[str]) -> Dict[str, dict]:
        return await self._find_by_ids(product_ids, {})

    async def _find_by_ids(self, product_ids: List[str], extra: dict) -> Dict[str, dict]:
        oids = parse_oids(set(product_ids))
        if not oids:
            return {}
        cursor = self.collection.find({"_id": {"$in": oids}, **extra})
        docs = await cursor.to_list(length=None)
        return {doc["id"]: doc for doc in map(from_document, docs)}

    async def create(self, product: ProductDB) -> dict:
        result = await self.collection.insert_one(to_document(product))
        return await self.get(str(result.inserted_id))

    async def update(self, product_id: str, fields: dict) -> dict:
        update = {k: (float(v) if isinstance(v, Decimal) else v) for k, v in fields.items()}
        update["updated_at"] = datetime.utcnow()
        product = await self.collection.find_one_and_update(
            {"_id": str_to_oid(product_id)},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if not product:
            raise NotFoundException("Product not found")
        return from_document(product)

    async def append_images(self, product_id: str, urls: List[str]) -> dict:
        product = await self.collection.find_one_and_update(
            {"_id": str_to_oid(product_id)},
            {
                "$push": {"images": {"$each": urls}},
                "$set": {"updated_at": datetime.utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if not product:
            raise NotFoundException("Product not found")
        return from_document(product)

    async def delete(self, product_id: str):
        result = await self.collection.delete_one({"_id": str_to_oid(product_id)})
        if result.deleted_count == 0:
            raise NotFoundException("Product not found")
