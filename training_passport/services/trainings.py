from __future__ import annotations

import logging
from typing import Any

from training_passport.models import Assignment, Training, User
from training_passport.store import ASSIGNMENTS, TRAININGS, DocumentStore
from training_passport.utils.errors import not_found

logger = logging.getLogger("training_passport.trainings")


def get_training(store: DocumentStore, training_id: str) -> Training:
    doc = store.trainings.get(training_id)
    if not doc:
        raise not_found("Training")
    return Training.from_doc(doc)


def list_trainings(store: DocumentStore) -> list[Training]:
    return [Training.from_doc(d) for d in store.trainings.all(sort=[("title", 1)])]


def create_training(store: DocumentStore, data: dict[str, Any]) -> Training:
    training = Training(id="", **data)
    training.id = store.trainings.insert(training.to_doc())
    logger.info("training created id=%s title=%s", training.id, training.title)
    return training


def update_training(store: DocumentStore, training_id: str, data: dict[str, Any]) -> Training:
    current = get_training(store, training_id)
    updated = Training(id=current.id, **data)
    store.trainings.update(training_id, updated.to_doc())
    logger.info("training updated id=%s", training_id)
    return updated


def delete_training(store: DocumentStore, training_id: str) -> int:
    """Delete a training and every assignment that references it, atomically."""
    get_training(store, training_id)
    removed = store.assignments.count(trainingId=training_id)
    batch = store.batch()
    batch.delete(TRAININGS, training_id)
    batch.delete_where(ASSIGNMENTS, trainingId=training_id)
    batch.commit()
    logger.info("training deleted id=%s assignments_removed=%d", training_id, removed)
    return removed


def _users_by_id(store: DocumentStore, user_ids) -> dict[str, User]:
    ids = list(dict.fromkeys(user_ids))
    return {d["_id"]: User.from_doc(d) for d in store.users.find_in("_id", ids)}


def _participant(assignment: Assignment, user: User | None) -> dict[str, Any]:
    out = assignment.to_public()
    out["user"] = user.to_public() if user is not None else None
    return out


def participants(store: DocumentStore, training_id: str) -> dict[str, Any]:
    training = get_training(store, training_id)
    assignments = [Assignment.from_doc(d) for d in store.assignments.find(trainingId=training_id)]
    users = _users_by_id(store, (a.user_id for a in assignments))
    out = training.to_public()
    out["participants"] = [_participant(a, users.get(a.user_id)) for a in assignments]
    return out


def is_trainer(store: DocumentStore, user: User) -> bool:
    return store.assignments.count(trainerName=user.name) > 0


def trainer_trainings(store: DocumentStore, trainer_name: str) -> list[dict[str, Any]]:
    """Trainings with the participants whose assignment names ``trainer_name`` as trainer."""
    assignments = [Assignment.from_doc(d) for d in store.assignments.find(trainerName=trainer_name)]
    if not assignments:
        return []

    trainings = {
        d["_id"]: Training.from_doc(d)
        for d in store.trainings.find_in("_id", list(dict.fromkeys(a.training_id for a in assignments)))
    }
    users = _users_by_id(store, (a.user_id for a in assignments))

    grouped: dict[str, dict[str, Any]] = {}
    for a in assignments:
        training = trainings.get(a.training_id)
        if training is None:
            continue
        entry = grouped.get(a.training_id)
        if entry is None:
            entry = training.to_public()
            entry["assignments"] = []
            grouped[a.training_id] = entry
        entry["assignments"].append(_participant(a, users.get(a.user_id)))

    for entry in grouped.values():
        statuses = [p["status"] for p in entry["assignments"]]
        entry["pendingCount"] = sum(1 for s in statuses if s == "pending")
        entry["completedCount"] = sum(1 for s in statuses if s == "completed")
    return list(grouped.values())
