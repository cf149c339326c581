"""
MongoDB helpers.

connect() opens a client for the configured database; the remaining helpers
take the database handle explicitly so nothing here holds a process-wide
connection.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database

logger = logging.getLogger(__name__)

COUNTERS = "counters"


def connect(url: str, name: str) -> Database:
    client = MongoClient(url)
    logger.info("Using MongoDB database %r", name)
    return client[name]


def next_id(db: Database, collection_name: str) -> int:
    """Allocate the next integer id for a collection. Ids are never reused."""
    counter = db[COUNTERS].find_one_and_update(
        {"_id": collection_name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a document with a fresh id and timestamps; return it without Mongo's _id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(mode="json")
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc["id"] = next_id(db, collection_name)
    doc["created_at"] = now
    doc["updated_at"] = now
    db[collection_name].insert_one(doc)
    doc.pop("_id", None)
    return doc


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> list:
    cursor = db[collection_name].find(filter_dict or {}, {"_id": 0}).sort("id", 1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
