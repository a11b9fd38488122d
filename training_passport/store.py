"""Collection-scoped access to the MongoDB document store.

Documents carry opaque string ids in ``_id``. Services only talk to the
database through :class:`DocumentStore` so that writes spanning several
documents (cascading deletes, bulk assignment) go through a single
:class:`WriteBatch`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from bson import ObjectId

logger = logging.getLogger("training_passport.store")

USERS = "users"
TRAININGS = "trainings"
ASSIGNMENTS = "assignments"
SETTINGS = "settings"


def new_id() -> str:
    return str(ObjectId())


class Collection:
    def __init__(self, coll) -> None:
        self._coll = coll

    @property
    def name(self) -> str:
        return self._coll.name

    def get(self, doc_id: str) -> dict[str, Any] | None:
        if not doc_id:
            return None
        return self._coll.find_one({"_id": str(doc_id)})

    def find(self, *, sort: list[tuple[str, int]] | None = None, **equals: Any) -> list[dict[str, Any]]:
        cursor = self._coll.find(dict(equals))
        if sort:
            cursor = cursor.sort(sort)
        return list(cursor)

    def find_one(self, **equals: Any) -> dict[str, Any] | None:
        return self._coll.find_one(dict(equals))

    def find_in(self, field_name: str, values: Iterable[Any], **equals: Any) -> list[dict[str, Any]]:
        values = list(values)
        if not values:
            return []
        query = dict(equals)
        query[field_name] = {"$in": values}
        return list(self._coll.find(query))

    def all(self, *, sort: list[tuple[str, int]] | None = None) -> list[dict[str, Any]]:
        return self.find(sort=sort)

    def count(self, **equals: Any) -> int:
        return int(self._coll.count_documents(dict(equals)))

    def insert(self, doc: dict[str, Any]) -> str:
        doc = dict(doc)
        doc.setdefault("_id", new_id())
        self._coll.insert_one(doc)
        return str(doc["_id"])

    def update(self, doc_id: str, fields: dict[str, Any]) -> bool:
        res = self._coll.update_one({"_id": str(doc_id)}, {"$set": dict(fields)})
        return res.matched_count > 0

    def upsert(self, doc_id: str, fields: dict[str, Any]) -> None:
        self._coll.update_one({"_id": str(doc_id)}, {"$set": dict(fields)}, upsert=True)

    def delete(self, doc_id: str) -> bool:
        res = self._coll.delete_one({"_id": str(doc_id)})
        return res.deleted_count > 0


@dataclass
class _Op:
    kind: str
    collection: str
    doc_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


class WriteBatch:
    """Stages writes and applies them together on :meth:`commit`.

    With transactions enabled the batch runs inside one multi-document
    transaction, so either every write lands or none does. Without them
    (mongomock, standalone mongod) the staged writes are applied in order
    while an undo log records the prior state of every touched document; if
    any write fails, the applied ones are reverted in reverse order and the
    original error is re-raised. Readers may briefly observe the
    intermediate state on that path.
    """

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._ops: list[_Op] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def insert(self, collection: str, doc: dict[str, Any]) -> str:
        doc = dict(doc)
        doc_id = str(doc.setdefault("_id", new_id()))
        self._ops.append(_Op("insert", collection, doc_id, doc))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._ops.append(_Op("update", collection, str(doc_id), dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(_Op("delete", collection, str(doc_id)))

    def delete_where(self, collection: str, **equals: Any) -> None:
        self._ops.append(_Op("delete_many", collection, None, dict(equals)))

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._committed = True
        if not self._ops:
            return

        if self._store.transactions_enabled:
            with self._store.client.start_session() as session:
                with session.start_transaction():
                    for op in self._ops:
                        self._run(op, session=session)
        else:
            self._apply_with_undo()

        logger.info("batch committed ops=%d transactional=%s", len(self._ops), self._store.transactions_enabled)

    def _run(self, op: _Op, **kwargs: Any) -> None:
        coll = self._store.db[op.collection]
        if op.kind == "insert":
            coll.insert_one(op.payload, **kwargs)
        elif op.kind == "update":
            coll.update_one({"_id": op.doc_id}, {"$set": op.payload}, **kwargs)
        elif op.kind == "delete":
            coll.delete_one({"_id": op.doc_id}, **kwargs)
        elif op.kind == "delete_many":
            coll.delete_many(op.payload, **kwargs)
        else:
            raise ValueError(f"Unknown batch operation: {op.kind}")

    def _snapshot(self, op: _Op) -> list[dict[str, Any]]:
        coll = self._store.db[op.collection]
        if op.kind in ("update", "delete"):
            doc = coll.find_one({"_id": op.doc_id})
            return [doc] if doc else []
        if op.kind == "delete_many":
            return list(coll.find(op.payload))
        return []

    def _undo(self, op: _Op, before: list[dict[str, Any]]) -> None:
        coll = self._store.db[op.collection]
        if op.kind == "insert":
            coll.delete_one({"_id": op.doc_id})
        elif op.kind == "update":
            for doc in before:
                coll.replace_one({"_id": doc["_id"]}, doc)
        elif before:
            coll.insert_many(before)

    def _apply_with_undo(self) -> None:
        done: list[tuple[_Op, list[dict[str, Any]]]] = []
        try:
            for op in self._ops:
                before = self._snapshot(op)
                self._run(op)
                done.append((op, before))
        except Exception:
            logger.warning("batch failed after %d/%d ops; reverting", len(done), len(self._ops))
            for op, before in reversed(done):
                try:
                    self._undo(op, before)
                except Exception:
                    logger.exception("batch revert failed op=%s collection=%s id=%s", op.kind, op.collection, op.doc_id)
            raise


class DocumentStore:
    def __init__(self, db, *, client=None, transactions: bool = False) -> None:
        self.db = db
        self.client = client if client is not None else getattr(db, "client", None)
        self.transactions_enabled = bool(transactions and self.client is not None)

    def collection(self, name: str) -> Collection:
        return Collection(self.db[name])

    @property
    def users(self) -> Collection:
        return self.collection(USERS)

    @property
    def trainings(self) -> Collection:
        return self.collection(TRAININGS)

    @property
    def assignments(self) -> Collection:
        return self.collection(ASSIGNMENTS)

    @property
    def settings(self) -> Collection:
        return self.collection(SETTINGS)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


def store_from_app(app) -> DocumentStore:
    cfg = app.config["CFG"]
    return DocumentStore(
        app.extensions["mongo_db"],
        client=app.extensions.get("mongo_client"),
        transactions=cfg.MONGO_TRANSACTIONS and not cfg.USES_MONGOMOCK,
    )
