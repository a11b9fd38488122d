from __future__ import annotations

import logging
from typing import Any, Iterable

from pymongo.errors import DuplicateKeyError

from training_passport.models import ROLE_ADMIN, User
from training_passport.store import ASSIGNMENTS, USERS, DocumentStore
from training_passport.utils.auth import hash_password, verify_password
from training_passport.utils.errors import ApiError, not_found

logger = logging.getLogger("training_passport.users")

SEED_ADMIN = {
    "name": "Admin",
    "username": "admin",
    "email": "admin@example.com",
    "password": "password",
    "categories": ["Supervisión", "Línea de Mando (FC)"],
}


def _conflict(field_name: str, message: str) -> ApiError:
    return ApiError("CONFLICT", message, status=409, details={"fields": {field_name: [message]}})


def get_user(store: DocumentStore, user_id: str) -> User:
    doc = store.users.get(user_id)
    if not doc:
        raise not_found("User")
    return User.from_doc(doc)


def find_by_username(store: DocumentStore, username: str) -> User | None:
    doc = store.users.find_one(username=str(username or "").strip().lower())
    return User.from_doc(doc) if doc else None


def find_by_email(store: DocumentStore, email: str) -> User | None:
    email = str(email or "").strip().lower()
    if not email:
        return None
    doc = store.users.find_one(email=email)
    return User.from_doc(doc) if doc else None


def list_users(store: DocumentStore) -> list[User]:
    return [User.from_doc(d) for d in store.users.all(sort=[("name", 1)])]


def users_in_categories(store: DocumentStore, categories: Iterable[str]) -> list[User]:
    cats = list(dict.fromkeys(categories))
    if not cats:
        return []
    return [User.from_doc(d) for d in store.users.find_in("categories", cats)]


def _check_unique(store: DocumentStore, *, username: str, email: str | None, user_id: str | None = None) -> None:
    other = find_by_username(store, username)
    if other and other.id != user_id:
        raise _conflict("username", "This username is already in use.")
    if email:
        other = find_by_email(store, email)
        if other and other.id != user_id:
            raise _conflict("email", "This email is already in use.")


def create_user(store: DocumentStore, data: dict[str, Any]) -> User:
    _check_unique(store, username=data["username"], email=data.get("email"))
    user = User(
        id="",
        name=data["name"],
        username=data["username"].lower(),
        email=(data.get("email") or "").lower() or None,
        role=data.get("role") or "user",
        categories=list(data.get("categories") or []),
        password_hash=hash_password(data["password"]),
    )
    try:
        user.id = store.users.insert(user.to_doc())
    except DuplicateKeyError as e:
        raise _conflict("username", "This username is already in use.") from e
    logger.info("user created id=%s username=%s role=%s", user.id, user.username, user.role)
    return user


def update_user(store: DocumentStore, user_id: str, data: dict[str, Any]) -> User:
    get_user(store, user_id)
    _check_unique(store, username=data["username"], email=data.get("email"), user_id=user_id)
    fields = {
        "name": data["name"],
        "username": data["username"].lower(),
        "email": (data.get("email") or "").lower(),
        "role": data["role"],
        "categories": list(data.get("categories") or []),
    }
    try:
        store.users.update(user_id, fields)
    except DuplicateKeyError as e:
        raise _conflict("username", "This username is already in use.") from e
    logger.info("user updated id=%s", user_id)
    return get_user(store, user_id)


def promote_user(store: DocumentStore, user_id: str) -> User:
    get_user(store, user_id)
    store.users.update(user_id, {"role": ROLE_ADMIN})
    logger.info("user promoted id=%s", user_id)
    return get_user(store, user_id)


def delete_user(store: DocumentStore, user_id: str) -> int:
    """Delete a user and every assignment that references them, atomically."""
    get_user(store, user_id)
    removed = store.assignments.count(userId=user_id)
    batch = store.batch()
    batch.delete(USERS, user_id)
    batch.delete_where(ASSIGNMENTS, userId=user_id)
    batch.commit()
    logger.info("user deleted id=%s assignments_removed=%d", user_id, removed)
    return removed


def set_password(store: DocumentStore, user_id: str, new_password: str) -> None:
    store.users.update(user_id, {"passwordHash": hash_password(new_password)})
    logger.info("password changed user=%s", user_id)


def change_password(store: DocumentStore, user: User, current_password: str, new_password: str) -> None:
    doc = store.users.get(user.id)
    if not doc or not verify_password(current_password, str(doc.get("passwordHash") or "")):
        raise ApiError(
            "AUTH_INVALID",
            "The current password is incorrect.",
            status=400,
            details={"fields": {"currentPassword": ["The current password is incorrect."]}},
        )
    set_password(store, user.id, new_password)


def _seed_admin(store: DocumentStore) -> User:
    user = create_user(store, {**SEED_ADMIN, "role": ROLE_ADMIN})
    logger.warning("users collection was empty; seeded initial admin username=%s", user.username)
    return user


def authenticate(store: DocumentStore, identifier: str, password: str, *, allow_seed: bool = False) -> User:
    """Resolve a login by username or email.

    When ``allow_seed`` is set and no user exists at all, logging in with the
    seed admin credentials creates that admin.
    """
    identifier = str(identifier or "").strip().lower()
    if not identifier or not password:
        raise ApiError("BAD_REQUEST", "Username/email and password are required.", status=400)

    user = find_by_username(store, identifier) or find_by_email(store, identifier)
    if user is None:
        if (
            allow_seed
            and store.users.count() == 0
            and identifier in {SEED_ADMIN["username"], SEED_ADMIN["email"]}
            and password == SEED_ADMIN["password"]
        ):
            return _seed_admin(store)
        raise ApiError("AUTH_INVALID", "Invalid credentials or the user does not exist.", status=401)

    if not user.password_hash:
        raise ApiError("AUTH_INVALID", "This user has no password configured.", status=401)
    if not verify_password(password, user.password_hash):
        raise ApiError("AUTH_INVALID", "Invalid credentials.", status=401)
    return user
