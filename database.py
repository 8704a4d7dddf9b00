"""
Database access

A single module-level pymongo handle shared by the API. ``db`` is ``None``
when DATABASE_URL / DATABASE_NAME are not set so the app can still boot
(the solar calculator works without storage).
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Union

from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]
    logger.info("MongoDB client created for database %s", DATABASE_NAME)


def serialize_document(value: Any) -> Any:
    """Make a MongoDB document JSON-safe (ObjectId -> str, datetime -> ISO)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    return value


def get_collection(collection_name: str):
    if db is None:
        raise RuntimeError("Database not configured")
    return db[collection_name]


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = get_collection(collection_name).insert_one(doc)
    return str(result.inserted_id)

