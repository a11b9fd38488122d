"""Assignment lifecycle: reconciliation, (re)assignment, bulk assignment, status changes.

An Assignment links one user to one training. At most one assignment exists
per (userId, trainingId); the pair is looked up before every insert rather
than guarded by a unique index. Two concurrent ``assign`` calls for the same
pair can both miss the lookup and insert twice (last writer wins on later
updates). Closing that gap needs the store's transaction primitive around
the lookup, which current volumes do not justify.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from training_passport.models import STATUS_COMPLETED, STATUS_PENDING, Assignment, Training
from training_passport.store import ASSIGNMENTS, DocumentStore
from training_passport.utils.datetime import as_utc, to_iso, utc_now
from training_passport.utils.errors import not_found

logger = logging.getLogger("training_passport.assignments")


@dataclass
class ReconciledAssignment:
    training: Training
    assignment: Assignment
    effective_status: str
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        return self.assignment.status == STATUS_COMPLETED and self.effective_status == STATUS_PENDING

    def to_public(self) -> dict[str, Any]:
        out = self.training.to_public()
        out.update(self.assignment.to_public())
        # Per-assignment values win over the template's (scheduledDate, trainerName).
        if self.assignment.scheduled_date is None:
            out["scheduledDate"] = to_iso(self.training.scheduled_date)
        if self.assignment.trainer_name is None:
            out["trainerName"] = self.training.trainer_name
        out["assignmentId"] = self.assignment.id
        out["effectiveStatus"] = self.effective_status
        out["expiresAt"] = to_iso(self.expires_at)
        out["expired"] = self.is_expired
        return out


@dataclass
class BulkAssignResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.created) + len(self.updated)


def expiry_date(assignment: Assignment, training: Training) -> datetime | None:
    if not training.validity_days or assignment.completed_date is None:
        return None
    return as_utc(assignment.completed_date) + timedelta(days=training.validity_days)


def effective_status(assignment: Assignment, training: Training, now: datetime) -> str:
    if assignment.status != STATUS_COMPLETED:
        return STATUS_PENDING
    expires_at = expiry_date(assignment, training)
    if expires_at is not None and as_utc(now) > expires_at:
        return STATUS_PENDING
    return STATUS_COMPLETED


def reconcile_for_user(
    assignments: Iterable[Assignment],
    trainings_by_id: Mapping[str, Training],
    *,
    now: datetime | None = None,
) -> list[ReconciledAssignment]:
    """Merge each assignment with its training and derive the effective status.

    Assignments whose training no longer exists are dropped. Order follows the
    input. Nothing is written back: an expired completion only reads as
    pending until the user completes the training again.
    """
    now = now or utc_now()
    out: list[ReconciledAssignment] = []
    for assignment in assignments:
        training = trainings_by_id.get(assignment.training_id)
        if training is None:
            continue
        out.append(
            ReconciledAssignment(
                training=training,
                assignment=assignment,
                effective_status=effective_status(assignment, training, now),
                expires_at=expiry_date(assignment, training) if assignment.status == STATUS_COMPLETED else None,
            )
        )
    return out


def load_trainings(store: DocumentStore, training_ids: Iterable[str]) -> dict[str, Training]:
    ids = list(dict.fromkeys(training_ids))
    return {doc["_id"]: Training.from_doc(doc) for doc in store.trainings.find_in("_id", ids)}


def assignments_for_user(store: DocumentStore, user_id: str) -> list[Assignment]:
    docs = store.assignments.find(userId=user_id, sort=[("assignedDate", 1), ("_id", 1)])
    return [Assignment.from_doc(d) for d in docs]


def list_trainings_for_user(store: DocumentStore, user_id: str, *, now: datetime | None = None) -> list[ReconciledAssignment]:
    assignments = assignments_for_user(store, user_id)
    if not assignments:
        return []
    trainings = load_trainings(store, (a.training_id for a in assignments))
    return reconcile_for_user(assignments, trainings, now=now)


def get_assignment(store: DocumentStore, assignment_id: str) -> Assignment:
    doc = store.assignments.get(assignment_id)
    if not doc:
        raise not_found("Assignment")
    return Assignment.from_doc(doc)


def _reassign_fields(scheduled_date: datetime | None, trainer_name: str | None) -> dict[str, Any]:
    # A fresh assignment supersedes a stale completion; untouched fields stay as they were.
    fields: dict[str, Any] = {"status": STATUS_PENDING}
    if scheduled_date is not None:
        fields["scheduledDate"] = scheduled_date
    if trainer_name:
        fields["trainerName"] = trainer_name
    return fields


def _new_assignment_doc(
    training_id: str, user_id: str, now: datetime, scheduled_date: datetime | None, trainer_name: str | None
) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "userId": user_id,
        "trainingId": training_id,
        "status": STATUS_PENDING,
        "assignedDate": now,
        "completedDate": None,
    }
    if scheduled_date is not None:
        doc["scheduledDate"] = scheduled_date
    if trainer_name:
        doc["trainerName"] = trainer_name
    return doc


def assign(
    store: DocumentStore,
    training_id: str,
    user_id: str,
    *,
    scheduled_date: datetime | None = None,
    trainer_name: str | None = None,
    now: datetime | None = None,
) -> tuple[Assignment, bool]:
    """Assign a training to a user. Returns the assignment and whether it was newly created."""
    now = now or utc_now()
    existing = store.assignments.find_one(userId=user_id, trainingId=training_id)
    if existing:
        store.assignments.update(existing["_id"], _reassign_fields(scheduled_date, trainer_name))
        logger.info("assignment reset to pending id=%s user=%s training=%s", existing["_id"], user_id, training_id)
        return get_assignment(store, existing["_id"]), False

    assignment_id = store.assignments.insert(
        _new_assignment_doc(training_id, user_id, now, scheduled_date, trainer_name)
    )
    logger.info("assignment created id=%s user=%s training=%s", assignment_id, user_id, training_id)
    return get_assignment(store, assignment_id), True


def bulk_assign(
    store: DocumentStore,
    training_id: str,
    user_ids: Iterable[str],
    *,
    scheduled_date: datetime | None = None,
    trainer_name: str | None = None,
    now: datetime | None = None,
) -> BulkAssignResult:
    """Apply :func:`assign` semantics to many users in one atomic batch."""
    now = now or utc_now()
    wanted = [u for u in dict.fromkeys(str(u or "").strip() for u in user_ids) if u]
    result = BulkAssignResult()
    if not wanted:
        return result

    existing_by_user: dict[str, dict[str, Any]] = {}
    for doc in store.assignments.find_in("userId", wanted, trainingId=training_id):
        # Keep the first match if an earlier race left duplicates behind.
        existing_by_user.setdefault(doc["userId"], doc)

    batch = store.batch()
    update_fields = _reassign_fields(scheduled_date, trainer_name)
    for user_id in wanted:
        existing = existing_by_user.get(user_id)
        if existing is not None:
            batch.update(ASSIGNMENTS, existing["_id"], update_fields)
            result.updated.append(str(existing["_id"]))
        else:
            new_id = batch.insert(
                ASSIGNMENTS, _new_assignment_doc(training_id, user_id, now, scheduled_date, trainer_name)
            )
            result.created.append(new_id)
    batch.commit()

    logger.info(
        "bulk assignment training=%s created=%d updated=%d", training_id, len(result.created), len(result.updated)
    )
    return result


def set_assignment_status(
    store: DocumentStore, assignment_id: str, completed: bool, *, now: datetime | None = None
) -> Assignment:
    """Mark an assignment completed (stamping completedDate) or pending again.

    Reverting to pending keeps the previous completedDate as history; the next
    completion overwrites it.
    """
    assignment = get_assignment(store, assignment_id)
    if completed:
        fields: dict[str, Any] = {"status": STATUS_COMPLETED, "completedDate": now or utc_now()}
    else:
        fields = {"status": STATUS_PENDING}
    store.assignments.update(assignment.id, fields)
    logger.info("assignment status id=%s status=%s", assignment.id, fields["status"])
    return get_assignment(store, assignment.id)


def delete_assignment(store: DocumentStore, assignment_id: str) -> bool:
    deleted = store.assignments.delete(assignment_id)
    logger.info("assignment deleted id=%s found=%s", assignment_id, deleted)
    return deleted
