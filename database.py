"""
MongoDB access

A single client is created at import time from DATABASE_URL / DATABASE_NAME.
`db` stays None when the environment does not configure a database.
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient

from config import get_settings
from errors import db_unavailable

_settings = get_settings()

client: Optional[MongoClient] = None
db = None

if _settings.database_url and _settings.database_name:
    client = MongoClient(
        _settings.database_url,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
    )
    db = client[_settings.database_name]


def now() -> datetime:
    return datetime.now(timezone.utc)


def get_db():
    """FastAPI dependency; tests override it with an in-memory database."""
    if db is None:
        raise db_unavailable("Database is not configured")
    return db


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    target = database if database is not None else get_db()
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = target[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, database=None):
    target = database if database is not None else get_db()
    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_str_id(doc: Any):
    """Make a Mongo document JSON friendly: `_id` becomes `id`, ObjectIds become strings."""
    if doc is None:
        return None
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, list):
        return [to_str_id(v) for v in doc]
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    d = {}
    for key, value in doc.items():
        if key == "_id":
            d["id"] = to_str_id(value)
        else:
            d[key] = to_str_id(value)
    return d
