from __future__ import annotations

from flask import Blueprint

from training_passport.routes import current_store, ok
from training_passport.services import trainings as training_service
from training_passport.utils.auth import get_current_user, require_login
from training_passport.utils.errors import ApiError

trainer_bp = Blueprint("trainer", __name__)


@trainer_bp.get("/trainings")
@require_login
def my_sessions():
    store = current_store()
    user = get_current_user()
    if not user.is_admin and not training_service.is_trainer(store, user):
        raise ApiError("FORBIDDEN", "Only trainers can view this page", status=403)
    return ok(training_service.trainer_trainings(store, user.name))
