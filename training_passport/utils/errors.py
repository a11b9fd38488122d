from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ApiError(Exception):
    code: str
    message: str
    status: int = 400
    details: Any | None = None


def not_found(what: str) -> ApiError:
    return ApiError("NOT_FOUND", f"{what} not found", status=404)


def validation_error(fields: dict[str, list[str]], message: str = "Validation failed. Please review the fields.") -> ApiError:
    return ApiError("VALIDATION", message, status=400, details={"fields": fields})
