"""
MongoDB access for the AI Tutor backend.

The client is created once at import time from DATABASE_URL / DATABASE_NAME.
When either is missing `db` stays None and every helper below raises, so the
API can still boot (and report the problem on /test).
"""
import os
import logging
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.collection import Collection

load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def get_collection(collection_name: str) -> Collection:
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db[collection_name]


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True, exclude_none=True)
    else:
        data_dict = data.copy()

    result = get_collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, sort=None, limit: Optional[int] = None):
    cursor = get_collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes() -> None:
    """Create the lookups the session store relies on. No-op without a database."""
    if db is None:
        logger.warning("Skipping index creation: database not configured")
        return
    sessions = db["learningSessions"]
    sessions.create_index([("userId", 1), ("lastAccessedAt", -1)])
    sessions.create_index([("_id", 1), ("userId", 1)])
    db["session"].create_index("token")
