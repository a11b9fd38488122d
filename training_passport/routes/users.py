from __future__ import annotations

from flask import Blueprint

from training_passport.routes import current_store, ok
from training_passport.services import users as user_service
from training_passport.utils.auth import get_current_user, require_roles
from training_passport.utils.errors import ApiError
from training_passport.utils.validators import require_json, validate_user_create, validate_user_update

users_bp = Blueprint("users", __name__)


@users_bp.get("")
@require_roles(["admin"])
def list_users():
    return ok([u.to_public() for u in user_service.list_users(current_store())])


@users_bp.post("")
@require_roles(["admin"])
def create_user():
    data = validate_user_create(require_json())
    user = user_service.create_user(current_store(), data)
    return ok(user.to_public(), "User created.", status=201)


@users_bp.put("/<user_id>")
@require_roles(["admin"])
def update_user(user_id: str):
    data = validate_user_update(require_json())
    user = user_service.update_user(current_store(), user_id, data)
    return ok(user.to_public(), "User updated.")


@users_bp.post("/<user_id>/promote")
@require_roles(["admin"])
def promote_user(user_id: str):
    user = user_service.promote_user(current_store(), user_id)
    return ok(user.to_public(), "User promoted.")


@users_bp.delete("/<user_id>")
@require_roles(["admin"])
def delete_user(user_id: str):
    if get_current_user().id == user_id:
        raise ApiError("FORBIDDEN", "You cannot delete yourself.", status=403)
    removed = user_service.delete_user(current_store(), user_id)
    return ok({"id": user_id, "assignmentsRemoved": removed}, "User deleted.")
