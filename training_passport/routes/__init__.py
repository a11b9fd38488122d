from __future__ import annotations

from typing import Any

from flask import current_app, jsonify

from training_passport.store import DocumentStore, store_from_app


def current_store() -> DocumentStore:
    return store_from_app(current_app)


def ok(data: Any = None, message: str | None = None, status: int = 200):
    payload: dict[str, Any] = {"success": True, "data": data}
    if message:
        payload["message"] = message
    return jsonify(payload), status
