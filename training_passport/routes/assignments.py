from __future__ import annotations

from flask import Blueprint

from training_passport.routes import current_store, ok
from training_passport.services import assignments as assignment_service
from training_passport.services import users as user_service
from training_passport.utils.auth import get_current_user, require_login, require_roles
from training_passport.utils.errors import ApiError, validation_error
from training_passport.utils.validators import require_json

assignments_bp = Blueprint("assignments", __name__)


def _reconciled(user_id: str) -> list[dict]:
    return [r.to_public() for r in assignment_service.list_trainings_for_user(current_store(), user_id)]


@assignments_bp.get("/me")
@require_login
def my_trainings():
    return ok(_reconciled(get_current_user().id))


@assignments_bp.get("/users/<user_id>")
@require_roles(["admin"])
def user_trainings(user_id: str):
    user_service.get_user(current_store(), user_id)
    return ok(_reconciled(user_id))


@assignments_bp.post("/<assignment_id>/status")
@require_login
def set_status(assignment_id: str):
    body = require_json()
    completed = body.get("completed")
    if not isinstance(completed, bool):
        raise validation_error({"completed": ["Must be true or false."]})

    store = current_store()
    user = get_current_user()
    assignment = assignment_service.get_assignment(store, assignment_id)
    allowed = user.is_admin or assignment.user_id == user.id or (
        bool(assignment.trainer_name) and assignment.trainer_name == user.name
    )
    if not allowed:
        raise ApiError("FORBIDDEN", "Not allowed to update this assignment", status=403)

    updated = assignment_service.set_assignment_status(store, assignment_id, completed)
    return ok(updated.to_public(), "Status updated.")


@assignments_bp.delete("/<assignment_id>")
@require_roles(["admin"])
def delete_assignment(assignment_id: str):
    store = current_store()
    assignment_service.get_assignment(store, assignment_id)
    assignment_service.delete_assignment(store, assignment_id)
    return ok({"id": assignment_id}, "Assignment deleted.")
