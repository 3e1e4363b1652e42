"""
MongoDB access helpers

Collections follow the lowercased schema name:
- Admin -> "admin"
- Product -> "product"
- Order -> "order"
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    # naive UTC, the way pymongo hands datetimes back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url:
        logger.warning("database_not_configured")
        return None
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["admin"].create_index([("email", ASCENDING)], unique=True)
    db["product"].create_index([("created_at", DESCENDING)])
    db["order"].create_index([("payment.reference", ASCENDING)], unique=True)
    db["order"].create_index([("order_date", DESCENDING)])


def create_document(db: Database, collection_name: str, data: Any) -> str:
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    inserted_id = db[collection_name].insert_one(doc).inserted_id
    return str(inserted_id)


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def to_serializable(value: Any) -> Any:
    """Make a Mongo document JSON friendly: _id -> id, ObjectIds to str, datetimes to ISO."""
    if isinstance(value, dict):
        d = {}
        for k, v in value.items():
            if k == "_id":
                d["id"] = str(v)
            else:
                d[k] = to_serializable(v)
        return d
    if isinstance(value, list):
        return [to_serializable(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def database_status(db: Optional[Database]) -> Dict[str, Any]:
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response
