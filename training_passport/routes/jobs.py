from __future__ import annotations

from flask import Blueprint, current_app

from training_passport.jobs import run_monthly_digest, run_new_assignment_sweep
from training_passport.notify import NotificationSender, SettingsCursorStore, sender_from_config
from training_passport.routes import current_store, ok
from training_passport.utils.auth import require_internal_or_admin

jobs_bp = Blueprint("jobs", __name__)


def _sender() -> NotificationSender:
    # Tests install a recording sender here.
    sender = current_app.extensions.get("notification_sender")
    if sender is None:
        sender = sender_from_config(current_app.config["CFG"])
    return sender


@jobs_bp.post("/new-assignment-digest")
@require_internal_or_admin
def new_assignment_digest():
    store = current_store()
    return ok(run_new_assignment_sweep(store, SettingsCursorStore(store), _sender()))


@jobs_bp.post("/monthly-digest")
@require_internal_or_admin
def monthly_digest():
    cfg = current_app.config["CFG"]
    return ok(run_monthly_digest(current_store(), _sender(), app_url=cfg.APP_URL))
