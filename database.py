"""
MongoDB access helpers.

The client is created once from ``DATABASE_URL`` / ``DATABASE_NAME``. Route
handlers receive the database through the ``get_db`` dependency so tests can
swap in an in-memory store.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import settings
from errors import NotFoundError, StoreUnavailableError
from timeutils import default_time_provider

logger = logging.getLogger(__name__)

USERS = "users"
STUDY_LOGS = "studyLogs"
STUDY_LOG_ARCHIVES = "studyLogArchives"
TASKS = "tasks"
EXAM_RECORDS = "examRecords"
TARGET_SCHOOLS = "targetSchools"
MESSAGES = "messages"
MESSAGE_RECEIPTS = "messageReceipts"
STUDENT_MESSAGES = "studentMessages"
WISHLIST = "wishlist"
USER_GAME_DATA = "userGameData"
UI_PREFERENCES = "uiPreferences"

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_url and settings.database_name:
    client = MongoClient(settings.database_url)
    db = client[settings.database_name]
else:
    logger.warning("database_not_configured DATABASE_URL/DATABASE_NAME unset")


def get_db() -> Database:
    if db is None:
        raise StoreUnavailableError("Database not configured")
    return db


def to_object_id(value: Union[str, ObjectId], what: str = "Document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"{what} not found") from exc


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return a copy of ``doc`` with ``_id`` exposed as the string ``id``."""
    if doc is None:
        return None
    data = dict(doc)
    if "_id" in data:
        data["id"] = str(data.pop("_id"))
    return data


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    else:
        data = dict(data)
    now = default_time_provider.now()
    data.setdefault("created_at", now)
    data.setdefault("updated_at", now)
    result = database[collection_name].insert_one(data)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Iterable[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(doc) for doc in cursor]


def get_document(database: Database, collection_name: str, document_id: Union[str, ObjectId], what: str = "Document") -> Dict[str, Any]:
    doc = database[collection_name].find_one({"_id": to_object_id(document_id, what)})
    if doc is None:
        raise NotFoundError(f"{what} not found")
    return serialize(doc)


def update_document(
    database: Database,
    collection_name: str,
    document_id: Union[str, ObjectId],
    fields: Dict[str, Any],
    what: str = "Document",
) -> None:
    data = dict(fields)
    data["updated_at"] = default_time_provider.now()
    result = database[collection_name].update_one({"_id": to_object_id(document_id, what)}, {"$set": data})
    if result.matched_count == 0:
        raise NotFoundError(f"{what} not found")


def delete_document(database: Database, collection_name: str, document_id: Union[str, ObjectId], what: str = "Document") -> None:
    result = database[collection_name].delete_one({"_id": to_object_id(document_id, what)})
    if result.deleted_count == 0:
        raise NotFoundError(f"{what} not found")
