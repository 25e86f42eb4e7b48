"""
MongoDB access

One collection per entity; the collection name is the lowercase of the
schema class name (User -> "user", Video -> "video", ...).
"""

import logging
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings

logger = logging.getLogger(__name__)

client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
db = client[settings.DATABASE_NAME]


def get_db() -> Database:
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a document with timestamps and return it, including its _id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    doc["_id"] = database[collection_name].insert_one(doc).inserted_id
    return doc


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("username", unique=True)
    database["user"].create_index("email", unique=True)
    database["user"].create_index("google_id", sparse=True)
    database["video"].create_index([("owner", ASCENDING), ("created_at", ASCENDING)])
    database["video"].create_index("is_published")
    database["comment"].create_index("video")
    database["post"].create_index("owner")
    # No unique pair index on likes/subscriptions: toggles check-then-write.
    for field in ("video", "comment", "post", "liked_by"):
        database["like"].create_index(field)
    database["subscription"].create_index("channel")
    database["subscription"].create_index("subscriber")
    database["playlist"].create_index("owner")
    logger.info("Indexes ensured on database %s", database.name)
