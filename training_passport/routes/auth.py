from __future__ import annotations

from flask import Blueprint, current_app

from training_passport.routes import current_store, ok
from training_passport.services import users as user_service
from training_passport.utils.auth import create_access_token, get_current_user, require_login
from training_passport.utils.validators import require_json, validate_password_change

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/login")
def login():
    body = require_json()
    identifier = str(body.get("identifier") or body.get("username") or body.get("email") or "").strip()
    password = str(body.get("password") or "")

    cfg = current_app.config["CFG"]
    user = user_service.authenticate(current_store(), identifier, password, allow_seed=cfg.SEED_ADMIN)
    token = create_access_token(current_app, user)

    return ok(
        {
            "access_token": token,
            "token_type": "bearer",
            "user": user.to_public(),
            # Where the client should land after login.
            "redirect": "/admin" if user.is_admin else "/dashboard",
        }
    )


@auth_bp.get("/me")
@require_login
def me():
    return ok(get_current_user().to_public())


@auth_bp.post("/change-password")
@require_login
def change_password():
    current, new = validate_password_change(require_json())
    user_service.change_password(current_store(), get_current_user(), current, new)
    return ok(None, "Password updated successfully.")
