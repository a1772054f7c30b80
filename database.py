"""
MongoDB access for the storefront.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing the module still imports and `db` stays None, so the health endpoint
can report it.
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.collection import Collection

from errors import DatabaseNotConfiguredError

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def collection(name: str) -> Collection:
    if db is None:
        raise DatabaseNotConfiguredError()
    return db[name]


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def parse_object_id(value: str) -> Optional[ObjectId]:
    """ObjectId for a path parameter, or None when it is not a valid id."""
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes() -> None:
    """Storage-level guarantees: one order per order number, one rate row per wilaya."""
    collection("order").create_index("order_number", unique=True)
    collection("shipping_rate").create_index("wilaya_id", unique=True)
