from __future__ import annotations

from flask import Blueprint

from training_passport.routes import current_store, ok
from training_passport.services import assignments as assignment_service
from training_passport.services import trainings as training_service
from training_passport.services import users as user_service
from training_passport.utils.auth import require_login, require_roles
from training_passport.utils.errors import ApiError, validation_error
from training_passport.utils.validators import (
    require_json,
    validate_assign,
    validate_bulk_assign,
    validate_training,
)

trainings_bp = Blueprint("trainings", __name__)


@trainings_bp.get("")
@require_login
def list_trainings():
    return ok([t.to_public() for t in training_service.list_trainings(current_store())])


@trainings_bp.post("")
@require_roles(["admin"])
def create_training():
    training = training_service.create_training(current_store(), validate_training(require_json()))
    return ok(training.to_public(), "Training created.", status=201)


@trainings_bp.put("/<training_id>")
@require_roles(["admin"])
def update_training(training_id: str):
    training = training_service.update_training(current_store(), training_id, validate_training(require_json()))
    return ok(training.to_public(), "Training updated.")


@trainings_bp.delete("/<training_id>")
@require_roles(["admin"])
def delete_training(training_id: str):
    removed = training_service.delete_training(current_store(), training_id)
    return ok({"id": training_id, "assignmentsRemoved": removed}, "Training deleted.")


@trainings_bp.get("/<training_id>/participants")
@require_roles(["admin"])
def participants(training_id: str):
    return ok(training_service.participants(current_store(), training_id))


@trainings_bp.post("/<training_id>/assign")
@require_roles(["admin"])
def assign(training_id: str):
    data = validate_assign(require_json())
    store = current_store()
    training_service.get_training(store, training_id)
    user_service.get_user(store, data["user_id"])

    assignment, created = assignment_service.assign(
        store,
        training_id,
        data["user_id"],
        scheduled_date=data["scheduled_date"],
        trainer_name=data["trainer_name"],
    )
    if created:
        return ok(assignment.to_public(), "Training assigned.", status=201)
    return ok(assignment.to_public(), "Training re-assigned.")


@trainings_bp.post("/<training_id>/assign-bulk")
@require_roles(["admin"])
def assign_bulk(training_id: str):
    data = validate_bulk_assign(require_json())
    store = current_store()
    training_service.get_training(store, training_id)

    user_ids = list(data["user_ids"])
    user_ids.extend(u.id for u in user_service.users_in_categories(store, data["categories"]))
    user_ids = list(dict.fromkeys(user_ids))
    if not user_ids:
        raise validation_error({"userIds": ["No users selected."]}, "No users selected.")

    known = {d["_id"] for d in store.users.find_in("_id", user_ids)}
    unknown = [u for u in user_ids if u not in known]
    if unknown:
        raise ApiError("NOT_FOUND", "User not found", status=404, details={"userIds": unknown})

    result = assignment_service.bulk_assign(
        store,
        training_id,
        user_ids,
        scheduled_date=data["scheduled_date"],
        trainer_name=data["trainer_name"],
    )
    return ok(
        {"created": result.created, "updated": result.updated, "total": result.total},
        f"Training assigned to {result.total} user(s).",
    )
