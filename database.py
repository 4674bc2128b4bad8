"""
MongoDB access helpers.

The client is created lazily; request handlers receive the database through
the ``get_db`` dependency so it can be swapped out in tests.
"""
from datetime import datetime, timezone
from typing import Optional

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient

import settings
from errors import ValidationError

_client: Optional[MongoClient] = None


def get_db():
    global _client
    if _client is None:
        _client = MongoClient(settings.DATABASE_URL)
    return _client[settings.DATABASE_NAME]


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid id format: {id_str}")


def create_document(db, collection_name: str, data) -> str:
    """Insert a document and return its id as a string.

    ``data`` may be a pydantic model or a plain dict; createdAt/updatedAt
    are stamped on the way in.
    """
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc["createdAt"] = now
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def serialize_doc(doc):
    if not doc:
        return doc
    out = {}
    for k, v in dict(doc).items():
        if k == "_id":
            out["id"] = str(v)
        elif k == "password_hash":
            continue
        else:
            out[k] = _serialize_value(v)
    return out


def _serialize_value(v):
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, dict):
        return serialize_doc(v)
    if isinstance(v, list):
        return [_serialize_value(x) for x in v]
    return v
