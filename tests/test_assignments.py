from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from training_passport.models import Assignment, Training
from training_passport.services import assignments as svc
from training_passport.utils.errors import ApiError

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def _training(store, title="Fire Safety", **extra) -> str:
    doc = {"title": title, "description": "Annual refresher", "category": "Seguridad", "urgency": "high", "duration": 60}
    doc.update(extra)
    return store.trainings.insert(doc)


def _user(store, name="Ana", **extra) -> str:
    doc = {"name": name, "username": name.lower(), "email": f"{name.lower()}@example.com", "role": "user"}
    doc.update(extra)
    return store.users.insert(doc)


def test_effective_status_expires_after_validity_days():
    training = Training(id="t1", title="Forklift", validity_days=30)
    assignment = Assignment(id="a1", user_id="u1", training_id="t1", status="completed", completed_date=T0)

    assert svc.effective_status(assignment, training, T0 + timedelta(days=29)) == "completed"
    assert svc.effective_status(assignment, training, T0 + timedelta(days=31)) == "pending"
    assert svc.expiry_date(assignment, training) == T0 + timedelta(days=30)


def test_effective_status_never_expires_without_validity():
    training = Training(id="t1", title="Forklift", validity_days=None)
    assignment = Assignment(id="a1", user_id="u1", training_id="t1", status="completed", completed_date=T0)

    assert svc.effective_status(assignment, training, T0 + timedelta(days=3650)) == "completed"
    assert svc.expiry_date(assignment, training) is None


def test_pending_assignment_ignores_stale_completed_date():
    training = Training(id="t1", title="Forklift", validity_days=365)
    assignment = Assignment(id="a1", user_id="u1", training_id="t1", status="pending", completed_date=T0)

    assert svc.effective_status(assignment, training, T0 + timedelta(days=1)) == "pending"


def test_reconcile_drops_assignments_of_missing_trainings():
    training = Training(id="t1", title="Forklift", validity_days=30)
    assignments = [
        Assignment(id="a1", user_id="u1", training_id="t1", status="completed", completed_date=T0),
        Assignment(id="a2", user_id="u1", training_id="gone"),
    ]

    out = svc.reconcile_for_user(assignments, {"t1": training}, now=T0 + timedelta(days=31))

    assert [r.assignment.id for r in out] == ["a1"]
    assert out[0].effective_status == "pending"
    assert out[0].is_expired is True
    public = out[0].to_public()
    assert public["id"] == "a1"
    assert public["title"] == "Forklift"
    assert public["status"] == "completed"
    assert public["effectiveStatus"] == "pending"
    assert public["expired"] is True


def test_reconcile_prefers_assignment_schedule_over_training():
    training = Training(id="t1", title="Forklift", trainer_name="Luis", scheduled_date=T0)
    assignment = Assignment(
        id="a1", user_id="u1", training_id="t1", scheduled_date=T0 + timedelta(days=7), trainer_name="Marta"
    )

    public = svc.reconcile_for_user([assignment], {"t1": training}, now=T0)[0].to_public()

    assert public["scheduledDate"] == "2024-01-08T09:00:00Z"
    assert public["trainerName"] == "Marta"


def test_assign_creates_then_reuses_existing(store):
    training_id = _training(store)
    user_id = _user(store)

    first, created = svc.assign(store, training_id, user_id, now=T0)
    assert created is True
    assert first.status == "pending"
    assert first.assigned_date == T0

    svc.set_assignment_status(store, first.id, True, now=T0 + timedelta(days=1))
    second, created = svc.assign(store, training_id, user_id, trainer_name="Luis", now=T0 + timedelta(days=2))

    assert created is False
    assert second.id == first.id
    assert second.status == "pending"
    assert second.trainer_name == "Luis"
    # assignedDate is kept from the first assignment.
    assert second.assigned_date == T0
    assert store.assignments.count(userId=user_id, trainingId=training_id) == 1


def test_bulk_assign_mixes_updates_and_inserts(store):
    training_id = _training(store)
    a, b, c = _user(store, "Ana"), _user(store, "Bruno"), _user(store, "Carla")
    existing, _ = svc.assign(store, training_id, b, now=T0)

    result = svc.bulk_assign(store, training_id, [a, b, c, b], trainer_name="Luis", now=T0 + timedelta(days=1))

    assert result.updated == [existing.id]
    assert len(result.created) == 2
    assert result.total == 3
    assert store.assignments.count(trainingId=training_id) == 3
    assert store.assignments.count(trainingId=training_id, status="pending") == 3
    assert store.assignments.get(existing.id)["assignedDate"].replace(tzinfo=timezone.utc) == T0


def test_bulk_assign_with_no_users_is_a_noop(store):
    training_id = _training(store)

    result = svc.bulk_assign(store, training_id, ["", "  "], now=T0)

    assert result.total == 0
    assert store.assignments.count() == 0


def test_set_status_round_trip_keeps_completed_date(store):
    training_id = _training(store)
    user_id = _user(store)
    assignment, _ = svc.assign(store, training_id, user_id, now=T0)

    done = svc.set_assignment_status(store, assignment.id, True, now=T0 + timedelta(days=3))
    assert done.status == "completed"
    assert done.completed_date == T0 + timedelta(days=3)

    undone = svc.set_assignment_status(store, assignment.id, False)
    assert undone.status == "pending"
    assert undone.completed_date == T0 + timedelta(days=3)


def test_set_status_unknown_assignment(store):
    with pytest.raises(ApiError) as exc:
        svc.set_assignment_status(store, "missing", True)
    assert exc.value.status == 404


def test_delete_assignment(store):
    training_id = _training(store)
    user_id = _user(store)
    assignment, _ = svc.assign(store, training_id, user_id, now=T0)

    assert svc.delete_assignment(store, assignment.id) is True
    assert svc.delete_assignment(store, assignment.id) is False
    assert svc.list_trainings_for_user(store, user_id, now=T0) == []


def test_list_trainings_for_user_orders_by_assigned_date(store):
    user_id = _user(store)
    late = _training(store, "Zeta")
    early = _training(store, "Alpha")
    svc.assign(store, late, user_id, now=T0)
    svc.assign(store, early, user_id, now=T0 + timedelta(hours=1))

    titles = [r.training.title for r in svc.list_trainings_for_user(store, user_id, now=T0)]

    assert titles == ["Zeta", "Alpha"]
