from datetime import datetime
from typing import Optional, List, Dict

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument, DESCENDING
from pymongo.errors import DuplicateKeyError

from tibeb.models import UserDB, ContactMessageDB
from tibeb.shared.utils import ConflictException, parse_oids, to_document, from_document

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

# Never leaves the store
PRIVATE_FIELDS = {"password_hash": 0}


class UserStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.users

    async def ensure_indexes(self):
        await self.collection.create_index("email", unique=True)

    async def create(self, user: UserDB) -> dict:
        try:
            result = await self.collection.insert_one(to_document(user))
        except DuplicateKeyError:
            raise ConflictException("Email already in use")
        return await self.get(str(result.inserted_id))

    async def find_by_email(self, email: str) -> Optional[dict]:
        """Full record including the password hash, for credential checks."""
        return from_document(await self.collection.find_one({"email": email}))

    async def get(self, user_id: str) -> Optional[dict]:
        if not ObjectId.is_valid(user_id or ""):
            return None
        return from_document(await self.collection.find_one({"_id": ObjectId(user_id)}, PRIVATE_FIELDS))

    async def find_by_ids(self, user_ids: List[str]) -> Dict[str, dict]:
        oids = parse_oids(set(user_ids))
        if not oids:
            return {}
        cursor = self.collection.find({"_id": {"$in": oids}}, PRIVATE_FIELDS)
        docs = await cursor.to_list(length=None)
        return {doc["id"]: doc for doc in map(from_document, docs)}

    async def update(self, user_id: str, fields: dict) -> Optional[dict]:
        try:
            user = await self.collection.find_one_and_update(
                {"_id": ObjectId(user_id)},
                {"$set": {**fields, "updated_at": datetime.utcnow()}},
                projection=PRIVATE_FIELDS,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ConflictException("Email already in use")
        return from_document(user)

    async def list_all(self) -> List[dict]:
        cursor = self.collection.find({}, PRIVATE_FIELDS, sort=NEWEST_FIRST)
        return [from_document(doc) for doc in await cursor.to_list(length=None)]


class ContactStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.contact_messages

    async def ensure_indexes(self):
        await self.collection.create_index([("created_at", DESCENDING)])

    async def create(self, message: ContactMessageDB) -> str:
        result = await self.collection.insert_one(to_document(message))
        return str(result.inserted_id)

    async def list_all(self) -> List[dict]:
        cursor = self.collection.find({}, sort=NEWEST_FIRST)
        return [from_document(doc) for doc in await cursor.to_list(length=None)]
