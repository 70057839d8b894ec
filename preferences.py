"""Per-user display state (expanded tasks, collapsed memos) kept server side."""
from typing import Any, Dict

from pymongo.database import Database

from database import UI_PREFERENCES
from schemas import UiPreference
from timeutils import default_time_provider


def get_preferences(db: Database, user_id: str) -> Dict[str, Any]:
    doc = db[UI_PREFERENCES].find_one({"user_id": user_id}, {"_id": 0})
    if not doc:
        return dict(UiPreference().model_dump(), user_id=user_id)
    return doc


def save_preferences(db: Database, user_id: str, payload: UiPreference) -> Dict[str, Any]:
    data = payload.model_dump()
    # drop duplicates, keep first-seen order
    data = {key: list(dict.fromkeys(ids)) for key, ids in data.items()}
    data["updated_at"] = default_time_provider.now()
    db[UI_PREFERENCES].update_one({"user_id": user_id}, {"$set": data}, upsert=True)
    return get_preferences(db, user_id)
