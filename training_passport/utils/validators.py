from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from flask import request

from training_passport.models import ROLES, TRAINING_CATEGORIES, URGENCIES, USER_CATEGORIES
from training_passport.utils.datetime import parse_datetime_maybe
from training_passport.utils.errors import ApiError, validation_error

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_.-]+$")

MIN_PASSWORD_LENGTH = 4


class FieldErrors:
    """Collects per-field messages so a form can show all of them at once."""

    def __init__(self) -> None:
        self.fields: dict[str, list[str]] = {}

    def add(self, name: str, message: str) -> None:
        self.fields.setdefault(name, []).append(message)

    def raise_if_any(self) -> None:
        if self.fields:
            raise validation_error(self.fields)


def require_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object", status=400)
    return body


def _str(body: dict[str, Any], key: str) -> str:
    return str(body.get(key) or "").strip()


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v).strip() for v in value if str(v or "").strip()]


def _optional_date(body: dict[str, Any], key: str, errors: FieldErrors) -> datetime | None:
    raw = body.get(key)
    if raw in (None, ""):
        return None
    dt = parse_datetime_maybe(raw)
    if dt is None:
        errors.add(key, "Must be an ISO-8601 date.")
    return dt


def _validate_user_fields(body: dict[str, Any], errors: FieldErrors) -> dict[str, Any]:
    name = _str(body, "name")
    username = _str(body, "username").lower()
    email = _str(body, "email").lower()
    role = _str(body, "role") or "user"
    categories = _str_list(body.get("categories"))

    if len(name) < 3:
        errors.add("name", "Full name must be at least 3 characters.")
    if len(username) < 3:
        errors.add("username", "Username must be at least 3 characters.")
    elif not _USERNAME_RE.match(username):
        errors.add("username", "Username may only contain letters, numbers, dots, hyphens and underscores.")
    if email and not _EMAIL_RE.match(email):
        errors.add("email", "Please enter a valid email.")
    if role not in ROLES:
        errors.add("role", "Role must be user or admin.")
    elif role == "admin" and not email:
        errors.add("email", "Email is required for administrators.")
    unknown = [c for c in categories if c not in USER_CATEGORIES]
    if unknown:
        errors.add("categories", f"Unknown categories: {', '.join(unknown)}")

    return {
        "name": name,
        "username": username,
        "email": email or None,
        "role": role,
        "categories": list(dict.fromkeys(categories)),
    }


def validate_user_create(body: dict[str, Any]) -> dict[str, Any]:
    errors = FieldErrors()
    out = _validate_user_fields(body, errors)
    password = str(body.get("password") or "")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.add("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    errors.raise_if_any()
    out["password"] = password
    return out


def validate_user_update(body: dict[str, Any]) -> dict[str, Any]:
    errors = FieldErrors()
    out = _validate_user_fields(body, errors)
    errors.raise_if_any()
    return out


def validate_training(body: dict[str, Any]) -> dict[str, Any]:
    errors = FieldErrors()

    title = _str(body, "title")
    description = _str(body, "description")
    category = _str(body, "category")
    urgency = _str(body, "urgency")
    trainer_name = _str(body, "trainerName") or None

    if len(title) < 3:
        errors.add("title", "Title must be at least 3 characters.")
    if len(description) < 10:
        errors.add("description", "Description must be at least 10 characters.")
    if category not in TRAINING_CATEGORIES:
        errors.add("category", "Select a category.")
    if urgency not in URGENCIES:
        errors.add("urgency", "Select an urgency.")

    duration = None
    try:
        duration = int(body.get("duration"))
        if duration < 1:
            errors.add("duration", "Duration must be at least 1 minute.")
    except (TypeError, ValueError):
        errors.add("duration", "Duration must be a number of minutes.")

    validity_days = None
    raw_validity = body.get("validityDays")
    if raw_validity not in (None, ""):
        try:
            validity_days = int(raw_validity)
            if validity_days < 0:
                errors.add("validityDays", "Validity cannot be negative.")
        except (TypeError, ValueError):
            errors.add("validityDays", "Validity must be a number of days.")

    scheduled_date = _optional_date(body, "scheduledDate", errors)

    errors.raise_if_any()
    return {
        "title": title,
        "description": description,
        "category": category,
        "urgency": urgency,
        "duration": duration,
        "trainer_name": trainer_name,
        "scheduled_date": scheduled_date,
        # 0 days means "never expires", same as unset.
        "validity_days": validity_days or None,
    }


def validate_assign(body: dict[str, Any]) -> dict[str, Any]:
    errors = FieldErrors()
    user_id = _str(body, "userId")
    if not user_id:
        errors.add("userId", "Select a user.")
    scheduled_date = _optional_date(body, "scheduledDate", errors)
    errors.raise_if_any()
    return {"user_id": user_id, "scheduled_date": scheduled_date, "trainer_name": _str(body, "trainerName") or None}


def validate_bulk_assign(body: dict[str, Any]) -> dict[str, Any]:
    errors = FieldErrors()
    user_ids = _str_list(body.get("userIds"))
    categories = _str_list(body.get("categories"))
    if not user_ids and not categories:
        errors.add("userIds", "No users selected.")
    unknown = [c for c in categories if c not in USER_CATEGORIES]
    if unknown:
        errors.add("categories", f"Unknown categories: {', '.join(unknown)}")
    scheduled_date = _optional_date(body, "scheduledDate", errors)
    errors.raise_if_any()
    return {
        "user_ids": user_ids,
        "categories": categories,
        "scheduled_date": scheduled_date,
        "trainer_name": _str(body, "trainerName") or None,
    }


def validate_password_change(body: dict[str, Any]) -> tuple[str, str]:
    errors = FieldErrors()
    current = str(body.get("currentPassword") or "")
    new = str(body.get("newPassword") or "")
    confirm = str(body.get("confirmPassword") or "")
    if not current:
        errors.add("currentPassword", "Current password is required.")
    if len(new) < MIN_PASSWORD_LENGTH:
        errors.add("newPassword", f"New password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if new != confirm:
        errors.add("confirmPassword", "New passwords do not match.")
    errors.raise_if_any()
    return current, new


def parse_month_year(args, *, default: datetime) -> tuple[int, int]:
    try:
        month = int(args.get("month") or default.month)
        year = int(args.get("year") or default.year)
    except (TypeError, ValueError) as e:
        raise ApiError("BAD_REQUEST", "month and year must be integers", status=400) from e
    if not 1 <= month <= 12:
        raise ApiError("BAD_REQUEST", "month must be between 1 and 12", status=400)
    return month, year
