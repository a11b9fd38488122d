from __future__ import annotations

from flask import Blueprint, current_app, request

from training_passport.reports import scheduled_report, summary_report
from training_passport.routes import ok
from training_passport.utils.auth import require_roles
from training_passport.utils.datetime import utc_now
from training_passport.utils.validators import parse_month_year

reports_bp = Blueprint("reports", __name__)


def _db():
    return current_app.extensions["mongo_db"]


@reports_bp.get("/summary")
@require_roles(["admin"])
def summary():
    return ok(summary_report(_db(), utc_now()))


@reports_bp.get("/scheduled")
@require_roles(["admin"])
def scheduled():
    month, year = parse_month_year(request.args, default=utc_now())
    return ok({"month": month, "year": year, "items": scheduled_report(_db(), month, year)})
