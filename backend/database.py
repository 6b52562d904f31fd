from datetime import datetime, timezone
from typing import Any, Dict, Optional, List
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from config import DATABASE_URL, DATABASE_NAME

# Collections: activity, announcement, attendance
ACTIVITY = "activity"
ANNOUNCEMENT = "announcement"
ATTENDANCE = "attendance"

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def get_db() -> Database:
    """FastAPI dependency returning the process-wide database handle."""
    global _client, _db
    if _db is None:
        _client = MongoClient(DATABASE_URL)
        _db = _client[DATABASE_NAME]
    return _db


def collection(db: Database, name: str) -> Collection:
    return db[name]


def create_document(db: Database, collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    col = collection(db, collection_name)
    data = dict(data)
    data["created_at"] = datetime.now(timezone.utc)
    res = col.insert_one(data)
    doc = col.find_one({"_id": res.inserted_id})
    return serialize_document(doc)


def get_documents(db: Database, collection_name: str, filter_dict: Dict[str, Any] = None, sort: Optional[List] = None) -> List[Dict[str, Any]]:
    col = collection(db, collection_name)
    cursor = col.find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    return [serialize_document(d) for d in cursor]


def count_documents(db: Database, collection_name: str, filter_dict: Dict[str, Any] = None) -> int:
    return collection(db, collection_name).count_documents(filter_dict or {})


def sum_field(db: Database, collection_name: str, field: str) -> int:
    """Sum of a numeric field over the whole collection, 0 when it is empty."""
    rows = list(collection(db, collection_name).aggregate([
        {"$group": {"_id": None, "total": {"$sum": f"${field}"}}}
    ]))
    return rows[0]["total"] if rows else 0


def count_distinct(db: Database, collection_name: str, field: str) -> int:
    return len(collection(db, collection_name).distinct(field))


def serialize_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return doc
