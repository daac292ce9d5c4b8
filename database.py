"""
MongoDB access for the TLS API.

`db` is None when DATABASE_URL is not configured; handlers check for that
and answer 500 instead of crashing at import time.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client = None
db = None

if DATABASE_URL:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[dict]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive UTC datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def serialize(value: Any) -> Any:
    """Make a document JSON serializable (ObjectIds become strings)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def ensure_indexes(database) -> None:
    """Create the unique indexes the API relies on."""
    database["order"].create_index([("order_number", ASCENDING)], unique=True)
    database["project"].create_index([("slug", ASCENDING)], unique=True)
    database["form"].create_index([("slug", ASCENDING)], unique=True)
    database["formresponse"].create_index([("form_id", ASCENDING), ("submitted_at", ASCENDING)])
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["websitecontent"].create_index(
        [("page", ASCENDING), ("section_key", ASCENDING)], unique=True
    )
    for name in ("projectimage", "activityimage", "initiativeimage"):
        database[name].create_index([("parent_id", ASCENDING), ("sort_order", ASCENDING)])
    logger.info("Indexes ensured on %s", getattr(database, "name", "database"))
