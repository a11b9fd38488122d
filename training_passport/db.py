from __future__ import annotations

import threading
from datetime import timezone

from flask import Flask
from pymongo import ASCENDING, DESCENDING, MongoClient

from training_passport.config import BaseConfig


_client: MongoClient | None = None
_client_lock = threading.Lock()


def _create_client(mongodb_uri: str, *, server_selection_timeout_ms: int) -> MongoClient:
    if mongodb_uri.startswith("mongomock://"):
        import mongomock  # type: ignore[import-not-found]

        return mongomock.MongoClient(tz_aware=True, tzinfo=timezone.utc)

    return MongoClient(
        mongodb_uri,
        serverSelectionTimeoutMS=server_selection_timeout_ms,
        tz_aware=True,
        tzinfo=timezone.utc,
        retryWrites=True,
    )


def get_client(cfg: BaseConfig) -> MongoClient:
    global _client
    with _client_lock:
        if _client is None:
            _client = _create_client(cfg.MONGODB_URI, server_selection_timeout_ms=cfg.MONGO_SERVER_SELECTION_TIMEOUT_MS)
    return _client


def get_db(cfg: BaseConfig):
    return get_client(cfg)[cfg.DB_NAME]


def ping_db(db) -> bool:
    try:
        db.command("ping")
        return True
    except Exception:
        try:
            # mongomock does not implement every admin command.
            _ = db.list_collection_names()
            return True
        except Exception:
            return False


def ensure_indexes(db) -> None:
    db.users.create_index([("username", ASCENDING)], unique=True, name="users_username_unique")
    db.users.create_index([("email", ASCENDING)], name="users_email")
    db.users.create_index([("name", ASCENDING)], name="users_name")
    db.trainings.create_index([("title", ASCENDING)], name="trainings_title")
    # Not unique: the (user, training) pair is deduplicated before insert.
    db.assignments.create_index(
        [("userId", ASCENDING), ("trainingId", ASCENDING)], name="assignments_userId_trainingId"
    )
    db.assignments.create_index([("trainingId", ASCENDING), ("status", ASCENDING)], name="assignments_training_status")
    db.assignments.create_index([("assignedDate", DESCENDING)], name="assignments_assignedDate_desc")
    db.assignments.create_index([("trainerName", ASCENDING)], name="assignments_trainerName")


def init_mongo(app: Flask) -> None:
    cfg = app.config["CFG"]
    db = get_db(cfg)
    app.extensions["mongo_db"] = db
    app.extensions["mongo_client"] = get_client(cfg)
    ensure_indexes(db)


def reset_client_for_tests() -> None:
    global _client
    with _client_lock:
        _client = None
