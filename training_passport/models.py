from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from training_passport.utils.datetime import as_utc, to_iso

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUSES = (STATUS_PENDING, STATUS_COMPLETED)

URGENCIES = ("high", "medium", "low")

TRAINING_CATEGORIES = (
    "Seguridad",
    "Calidad",
    "DPO",
    "TPM",
    "Medio Ambiente",
    "Mejora Enfocada",
    "Obligatoria",
)

USER_CATEGORIES = (
    "Supervisión",
    "Ingresantes",
    "Operaciones",
    "Línea de Mando (FC)",
    "Terceros",
    "Mantenimiento",
    "Brigadistas",
    "RRHH",
)

DEFAULT_AVATAR_URL = "https://placehold.co/100x100.png"


def _opt_str(value: Any) -> str | None:
    s = str(value or "").strip()
    return s or None


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class User:
    id: str
    name: str
    username: str
    role: str = ROLE_USER
    email: str | None = None
    categories: list[str] = field(default_factory=list)
    password_hash: str = ""
    avatar_url: str = DEFAULT_AVATAR_URL

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "User":
        return cls(
            id=str(doc["_id"]),
            name=str(doc.get("name") or ""),
            username=str(doc.get("username") or ""),
            role=str(doc.get("role") or ROLE_USER),
            email=_opt_str(doc.get("email")),
            categories=[str(c) for c in (doc.get("categories") or [])],
            password_hash=str(doc.get("passwordHash") or ""),
            avatar_url=str(doc.get("avatarUrl") or DEFAULT_AVATAR_URL),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "username": self.username,
            "email": self.email or "",
            "role": self.role,
            "categories": list(self.categories),
            "passwordHash": self.password_hash,
            "avatarUrl": self.avatar_url,
        }

    def to_public(self) -> dict[str, Any]:
        """Never exposes the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "categories": list(self.categories),
            "avatarUrl": self.avatar_url,
        }


@dataclass
class Training:
    id: str
    title: str
    description: str = ""
    category: str = ""
    urgency: str = "medium"
    duration: int | None = None
    trainer_name: str | None = None
    scheduled_date: datetime | None = None
    validity_days: int | None = None

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Training":
        return cls(
            id=str(doc["_id"]),
            title=str(doc.get("title") or ""),
            description=str(doc.get("description") or ""),
            category=str(doc.get("category") or ""),
            urgency=str(doc.get("urgency") or "medium"),
            duration=_opt_int(doc.get("duration")),
            trainer_name=_opt_str(doc.get("trainerName")),
            scheduled_date=as_utc(doc.get("scheduledDate")),
            validity_days=_opt_int(doc.get("validityDays")),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "urgency": self.urgency,
            "duration": self.duration,
            "trainerName": self.trainer_name,
            "scheduledDate": self.scheduled_date,
            "validityDays": self.validity_days,
        }

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "urgency": self.urgency,
            "duration": self.duration,
            "trainerName": self.trainer_name,
            "scheduledDate": to_iso(self.scheduled_date),
            "validityDays": self.validity_days,
        }


@dataclass
class Assignment:
    id: str
    user_id: str
    training_id: str
    status: str = STATUS_PENDING
    assigned_date: datetime | None = None
    completed_date: datetime | None = None
    scheduled_date: datetime | None = None
    trainer_name: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status != STATUS_COMPLETED

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Assignment":
        status = str(doc.get("status") or STATUS_PENDING)
        if status not in STATUSES:
            status = STATUS_PENDING
        return cls(
            id=str(doc["_id"]),
            user_id=str(doc.get("userId") or ""),
            training_id=str(doc.get("trainingId") or ""),
            status=status,
            assigned_date=as_utc(doc.get("assignedDate")),
            completed_date=as_utc(doc.get("completedDate")),
            scheduled_date=as_utc(doc.get("scheduledDate")),
            trainer_name=_opt_str(doc.get("trainerName")),
        )

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "trainingId": self.training_id,
            "status": self.status,
            "assignedDate": to_iso(self.assigned_date),
            "completedDate": to_iso(self.completed_date),
            "scheduledDate": to_iso(self.scheduled_date),
            "trainerName": self.trainer_name,
        }
