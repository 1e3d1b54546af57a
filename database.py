"""
Database Helpers

MongoDB-backed record store for the car rental API. The client is created
once at import from DATABASE_URL / DATABASE_NAME; request handlers receive a
MongoRecordStore through the get_store dependency.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from config import Config
from errors import PersistenceError

logger = logging.getLogger(__name__)

client = None
db = None

if Config.DATABASE_URL and Config.DATABASE_NAME:
    client = MongoClient(Config.DATABASE_URL)
    db = client[Config.DATABASE_NAME]


def to_object_id(value) -> Optional[ObjectId]:
    """Return value as an ObjectId, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


@contextmanager
def _db_errors(action: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("Database error while trying to %s: %s", action, e)
        raise PersistenceError(f"Failed to {action}") from e


class MongoRecordStore:
    """Create/read/update/delete by identifier over a pymongo database."""

    def __init__(self, database):
        self.db = database

    def create(self, collection: str, data: Union[BaseModel, dict]) -> str:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        else:
            data = dict(data)
        now = datetime.now(timezone.utc)
        data["created_at"] = now
        data["updated_at"] = now
        with _db_errors(f"create {collection}"):
            result = self.db[collection].insert_one(data)
        return str(result.inserted_id)

    def get(self, collection: str, record_id) -> Optional[dict]:
        oid = to_object_id(record_id)
        if oid is None:
            return None
        with _db_errors(f"read {collection}"):
            return self.db[collection].find_one({"_id": oid})

    def find_one(self, collection: str, filter_dict: dict) -> Optional[dict]:
        with _db_errors(f"read {collection}"):
            return self.db[collection].find_one(filter_dict)

    def list(self, collection: str, filter_dict: Optional[dict] = None) -> List[dict]:
        with _db_errors(f"list {collection}"):
            return list(self.db[collection].find(filter_dict or {}))

    def update(self, collection: str, record_id, fields: dict, expected: Optional[dict] = None) -> Optional[dict]:
        """
        Set fields on one record and return it as stored afterwards.

        When expected is given the update only applies if the record still
        matches it; the match and the write are a single atomic operation.
        Returns None if no record matched.
        """
        oid = to_object_id(record_id)
        if oid is None:
            return None
        query = {"_id": oid}
        if expected:
            query.update(expected)
        changes = dict(fields)
        changes["updated_at"] = datetime.now(timezone.utc)
        with _db_errors(f"update {collection}"):
            return self.db[collection].find_one_and_update(
                query, {"$set": changes}, return_document=ReturnDocument.AFTER
            )

    def delete(self, collection: str, record_id) -> bool:
        oid = to_object_id(record_id)
        if oid is None:
            return False
        with _db_errors(f"delete {collection}"):
            return self.db[collection].delete_one({"_id": oid}).deleted_count == 1

    def delete_many(self, collection: str, filter_dict: dict) -> int:
        with _db_errors(f"delete {collection}"):
            return self.db[collection].delete_many(filter_dict).deleted_count

    def collection_names(self) -> List[str]:
        with _db_errors("list collections"):
            return self.db.list_collection_names()


def get_store() -> MongoRecordStore:
    if db is None:
        raise PersistenceError("Database not configured")
    return MongoRecordStore(db)
