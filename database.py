"""
MongoDB access.

`db` is None when DATABASE_URL is not set; routes that need it answer 500.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ValidationError
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from catalog import LESSON_IDS
from errors import PersistenceReadFailure, PersistenceWriteFailure
from schemas import UserStats

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "linguaquest")


def connect(url: str, name: str):
    # lastLogin is written as aware UTC and must read back the same
    client = MongoClient(url, serverSelectionTimeoutMS=5000, tz_aware=True)
    return client[name]


db = connect(DATABASE_URL, DATABASE_NAME) if DATABASE_URL else None


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> str:
    """Insert one document with created/updated timestamps and return its id."""
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc["created_at"] = now
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


class UserRecordStore:
    """Per-user stats documents, keyed by user id.

    Writes replace the whole document; there is no version check, so the
    last writer wins.
    """

    collection_name = "userstats"

    def __init__(self, database):
        self.collection = database[self.collection_name]

    def read(self, user_id: str) -> Optional[UserStats]:
        try:
            doc = self.collection.find_one({"_id": user_id})
        except PyMongoError as e:
            raise PersistenceReadFailure(f"Could not read stats for {user_id}: {e}") from e
        if doc is None:
            return None
        try:
            stats = UserStats.model_validate(doc)
        except ValidationError as e:
            raise PersistenceReadFailure(f"Malformed stats for {user_id}: {e}") from e
        unknown = set(stats.level_progress) - LESSON_IDS
        if unknown:
            # levels retired from the catalog
            logger.warning(f"Dropping unknown levels {sorted(unknown)} for {user_id}")
            levels = {k: v for k, v in stats.level_progress.items() if k in LESSON_IDS}
            stats = stats.model_copy(update={"level_progress": levels})
        return stats

    def write(self, user_id: str, stats: UserStats) -> None:
        doc = stats.to_document()
        doc["_id"] = user_id
        try:
            self.collection.replace_one({"_id": user_id}, doc, upsert=True)
        except PyMongoError as e:
            raise PersistenceWriteFailure(f"Could not write stats for {user_id}: {e}") from e
