from __future__ import annotations

from contextlib import contextmanager

import pytest
from pymongo.errors import PyMongoError

from training_passport.store import ASSIGNMENTS, USERS, DocumentStore


def test_batch_applies_nothing_before_commit(store):
    user_id = store.users.insert({"name": "Ana", "username": "ana"})
    store.assignments.insert({"userId": user_id, "trainingId": "t1", "status": "pending"})

    batch = store.batch()
    new_id = batch.insert(USERS, {"name": "Bruno", "username": "bruno"})
    batch.delete(USERS, user_id)
    batch.delete_where(ASSIGNMENTS, userId=user_id)

    assert len(batch) == 3
    assert store.users.get(user_id) is not None
    assert store.users.get(new_id) is None

    batch.commit()

    assert store.users.get(user_id) is None
    assert store.users.get(new_id)["name"] == "Bruno"
    assert store.assignments.count() == 0


def test_batch_commits_once(store):
    batch = store.batch()
    batch.update(USERS, "missing", {"name": "x"})
    batch.commit()

    with pytest.raises(RuntimeError):
        batch.commit()


def test_upsert_settings(store):
    store.settings.upsert("lastAssignmentCheck", {"value": 1})
    store.settings.upsert("lastAssignmentCheck", {"value": 2})

    assert store.settings.get("lastAssignmentCheck")["value"] == 2
    assert store.settings.count() == 1


def test_failed_batch_reverts_applied_writes(store):
    user_id = store.users.insert({"name": "Ana", "username": "ana"})
    other_id = store.users.insert({"name": "Bruno", "username": "bruno"})
    store.assignments.insert({"userId": user_id, "trainingId": "t1", "status": "pending"})
    store.assignments.insert({"userId": user_id, "trainingId": "t2", "status": "completed"})

    batch = store.batch()
    batch.update(USERS, other_id, {"name": "Renamed"})
    batch.delete(USERS, user_id)
    batch.delete_where(ASSIGNMENTS, userId=user_id)
    new_id = batch.insert(ASSIGNMENTS, {"userId": other_id, "trainingId": "t1"})
    # Same _id as an existing user: fails after three writes landed.
    batch.insert(USERS, {"_id": other_id, "name": "Clash"})

    with pytest.raises(PyMongoError):
        batch.commit()

    assert store.users.get(user_id)["name"] == "Ana"
    assert store.users.get(other_id)["name"] == "Bruno"
    assert store.assignments.count(userId=user_id) == 2
    assert store.assignments.get(new_id) is None


class _RecordingCollection:
    def __init__(self, name: str, calls: list, fail_on: str | None) -> None:
        self.name = name
        self.calls = calls
        self.fail_on = fail_on

    def _record(self, method: str, *args, **kwargs):
        self.calls.append((self.name, method, kwargs.get("session")))
        if method == self.fail_on:
            raise PyMongoError("write conflict")

    def insert_one(self, doc, **kwargs):
        self._record("insert_one", doc, **kwargs)

    def update_one(self, query, update, **kwargs):
        self._record("update_one", query, update, **kwargs)

    def delete_one(self, query, **kwargs):
        self._record("delete_one", query, **kwargs)

    def delete_many(self, query, **kwargs):
        self._record("delete_many", query, **kwargs)


class _RecordingDb:
    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list = []
        self.fail_on = fail_on

    def __getitem__(self, name: str) -> _RecordingCollection:
        return _RecordingCollection(name, self.calls, self.fail_on)


class _Session:
    def __init__(self) -> None:
        self.committed = False
        self.aborted = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    @contextmanager
    def start_transaction(self):
        try:
            yield
        except Exception:
            self.aborted = True
            raise
        self.committed = True


class _Client:
    def __init__(self) -> None:
        self.session = _Session()

    def start_session(self) -> _Session:
        return self.session


def _stage(batch) -> None:
    batch.update(USERS, "u2", {"name": "Renamed"})
    batch.delete(USERS, "u1")
    batch.delete_where(ASSIGNMENTS, userId="u1")
    batch.insert(ASSIGNMENTS, {"userId": "u2", "trainingId": "t1"})


def test_transactional_batch_passes_session_to_every_write():
    db, client = _RecordingDb(), _Client()
    batch = DocumentStore(db, client=client, transactions=True).batch()
    _stage(batch)

    batch.commit()

    assert [c[1] for c in db.calls] == ["update_one", "delete_one", "delete_many", "insert_one"]
    assert all(c[2] is client.session for c in db.calls)
    assert client.session.committed is True


def test_transactional_batch_aborts_on_failure():
    db, client = _RecordingDb(fail_on="delete_many"), _Client()
    batch = DocumentStore(db, client=client, transactions=True).batch()
    _stage(batch)

    with pytest.raises(PyMongoError):
        batch.commit()

    assert client.session.aborted is True
    assert client.session.committed is False
    # Nothing after the failing write was attempted.
    assert [c[1] for c in db.calls] == ["update_one", "delete_one", "delete_many"]
