from __future__ import annotations

import functools
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, TypeVar

import bcrypt
import jwt
from flask import current_app, g, request

from training_passport.models import ROLE_ADMIN, User
from training_passport.store import store_from_app
from training_passport.utils.errors import ApiError


_T = TypeVar("_T", bound=Callable[..., Any])


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed or legacy (non-bcrypt) hash.
        return False


def create_access_token(app, user: User) -> str:
    cfg = app.config["CFG"]
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "username": user.username,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=cfg.JWT_EXP_MINUTES)).timestamp()),
    }
    return jwt.encode(payload, cfg.JWT_SECRET, algorithm="HS256")


def _decode_token(token: str) -> dict[str, Any]:
    cfg = current_app.config["CFG"]
    try:
        return jwt.decode(token, cfg.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as e:
        raise ApiError("AUTH_INVALID", "Token expired", status=401) from e
    except jwt.InvalidTokenError as e:
        raise ApiError("AUTH_INVALID", "Invalid token", status=401) from e


def _bearer_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return ""


def get_current_user() -> User:
    cached = getattr(g, "current_user", None)
    if cached is not None:
        return cached

    token = _bearer_token()
    if not token:
        raise ApiError("AUTH_INVALID", "Missing bearer token", status=401)

    payload = _decode_token(token)
    sub = str(payload.get("sub") or "").strip()
    if not sub:
        raise ApiError("AUTH_INVALID", "Invalid token payload", status=401)

    doc = store_from_app(current_app).users.get(sub)
    if not doc:
        raise ApiError("AUTH_INVALID", "User not found", status=401)

    user = User.from_doc(doc)
    g.current_user = user
    return user


def require_roles(roles: list[str]) -> Callable[[_T], _T]:
    allowed = {str(r or "").lower().strip() for r in (roles or []) if str(r or "").strip()}

    def _decorator(fn: _T) -> _T:
        @functools.wraps(fn)
        def _wrapped(*args, **kwargs):
            user = get_current_user()
            if allowed and user.role not in allowed:
                raise ApiError("FORBIDDEN", "Insufficient role", status=403, details={"required": sorted(allowed)})
            return fn(*args, **kwargs)

        return _wrapped  # type: ignore[return-value]

    return _decorator


def require_login(fn: _T) -> _T:
    return require_roles([])(fn)


def has_internal_token() -> bool:
    expected = str(current_app.config["CFG"].INTERNAL_CRON_TOKEN or "")
    provided = str(request.headers.get("X-Internal-Token") or "").strip()
    return bool(expected and provided and hmac.compare_digest(provided, expected))


def require_internal_or_admin(fn: _T) -> _T:
    """Cron callers send X-Internal-Token; admins can trigger jobs by hand."""

    @functools.wraps(fn)
    def _wrapped(*args, **kwargs):
        if not has_internal_token():
            user = get_current_user()
            if user.role != ROLE_ADMIN:
                raise ApiError("FORBIDDEN", "Insufficient role", status=403, details={"required": [ROLE_ADMIN]})
        return fn(*args, **kwargs)

    return _wrapped  # type: ignore[return-value]
