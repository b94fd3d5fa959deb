"""
MongoDB connection and small document helpers.

The connection string comes from DATABASE_URL (MONGO_URI is accepted as a
fallback) and the database name from DATABASE_NAME. When neither URL is set
``db`` stays ``None`` and the app refuses to start.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pymongo import ASCENDING, MongoClient
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGO_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "ecommerce")

client: Optional[MongoClient] = None
db = None

if DATABASE_URL:
    # connects lazily on first operation
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form BSON dates round-trip in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document and return its id as a string."""
    if db is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, sort=None) -> List[dict]:
    if db is None:
        raise RuntimeError("Database not configured")
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    return list(cursor)


def ensure_indexes(database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["order"].create_index([("orderDate", ASCENDING)])
    logger.info("Indexes ensured on %s", getattr(database, "name", "database"))
