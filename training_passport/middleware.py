from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from collections import deque
from typing import Any

from flask import Flask, g, jsonify, request
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException

from training_passport.utils.errors import ApiError

_UNLIMITED_PATHS = {"/health", "/version"}


def client_ip(trust_proxy: bool = True) -> str:
    ip = ""
    if trust_proxy:
        ip = str(request.headers.get("X-Forwarded-For") or "")
    ip = ip or request.remote_addr or ""
    if "," in ip:
        ip = ip.split(",", 1)[0]
    return ip.strip()


_LIMIT_RE = re.compile(r"^\s*(\d+)\s*(?:/|per)\s*(second|minute|hour)\s*$", re.IGNORECASE)
_PERIOD_SECONDS = {"second": 1, "minute": 60, "hour": 3600}


def parse_limit(value: str) -> tuple[int, int]:
    """``"30 per minute"`` or ``"30/minute"`` -> ``(30, 60)``."""
    m = _LIMIT_RE.match(str(value or ""))
    if not m:
        raise ValueError(f"Invalid rate limit: {value!r}")
    return max(1, int(m.group(1))), _PERIOD_SECONDS[m.group(2).lower()]


class SlidingWindowLimiter:
    """Keeps recent hit timestamps per key. Per process; gunicorn workers each keep their own."""

    def __init__(self, *, max_keys: int = 50_000) -> None:
        self._max_keys = max_keys
        self._lock = threading.Lock()
        self._hits: dict[str, deque[float]] = {}

    def hit(self, key: str, limit: tuple[int, int], *, now: float | None = None) -> bool:
        """Record one hit for ``key``; False when the limit is already reached (the hit is not counted)."""
        count, period = limit
        now = time.monotonic() if now is None else now
        with self._lock:
            hits = self._hits.get(key)
            if hits is None:
                if len(self._hits) >= self._max_keys:
                    self._hits.clear()
                hits = self._hits[key] = deque()
            while hits and hits[0] <= now - period:
                hits.popleft()
            if len(hits) >= count:
                return False
            hits.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = SlidingWindowLimiter()


def init_request_context(app: Flask) -> None:
    @app.before_request
    def _start():
        incoming = str(request.headers.get("X-Request-ID") or "").strip()
        g.request_id = incoming[:64] or os.urandom(8).hex()
        g.start_ts = time.monotonic()

    @app.after_request
    def _stamp(resp):
        rid = getattr(g, "request_id", "")
        if rid:
            resp.headers["X-Request-ID"] = rid
        return resp


def init_security_headers(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.after_request
    def _headers(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        https = request.is_secure or str(request.headers.get("X-Forwarded-Proto") or "").lower() == "https"
        if cfg.IS_PRODUCTION and https:
            resp.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return resp


def init_rate_limiting(app: Flask) -> None:
    cfg = app.config["CFG"]
    login_limit = parse_limit(cfg.RATE_LIMIT_LOGIN)
    global_limit = parse_limit(cfg.RATE_LIMIT_GLOBAL)
    path_limit = parse_limit(cfg.RATE_LIMIT_DEFAULT)

    @app.before_request
    def _rate_limit():
        path = request.path or ""
        if path in _UNLIMITED_PATHS or not path.startswith("/api/v1/"):
            return None

        ip = client_ip(cfg.TRUST_PROXY_HEADERS)
        if path == "/api/v1/auth/login":
            buckets = [(f"{ip}:LOGIN", login_limit)]
        else:
            buckets = [(f"{ip}:GLOBAL", global_limit), (f"{ip}:PATH:{request.method}:{path}", path_limit)]

        for key, limit in buckets:
            if not limiter.hit(key, limit):
                raise ApiError("RATE_LIMITED", "Too many requests. Please slow down.", status=429)
        return None


def init_request_logging(app: Flask) -> None:
    cfg = app.config["CFG"]
    logger = logging.getLogger("training_passport.request")

    @app.after_request
    def _log(resp):
        start = getattr(g, "start_ts", None)
        latency_ms = int((time.monotonic() - start) * 1000) if isinstance(start, (int, float)) else None
        user = getattr(g, "current_user", None)
        data: dict[str, Any] = {
            "type": "request",
            "request_id": getattr(g, "request_id", ""),
            "method": request.method,
            "path": request.path,
            "status": resp.status_code,
            "latency_ms": latency_ms,
            "ip": client_ip(cfg.TRUST_PROXY_HEADERS),
            "user_id": user.id if user is not None else None,
        }
        logger.info(json.dumps(data, separators=(",", ":")))
        return resp


def _error_body(code: str, message: str, details: Any = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "error": {"code": code, "message": message, "details": details}}
    if getattr(g, "request_id", None):
        payload["request_id"] = g.request_id
    return payload


def init_error_handlers(app: Flask) -> None:
    logger = logging.getLogger("training_passport")

    @app.errorhandler(ApiError)
    def _api_error(err: ApiError):
        return jsonify(_error_body(err.code, err.message, err.details)), err.status

    @app.errorhandler(HTTPException)
    def _http_error(err: HTTPException):
        status = int(err.code or 500)
        return jsonify(_error_body(f"HTTP_{status}", str(err.description or "HTTP error"))), status

    @app.errorhandler(PyMongoError)
    def _store_error(err: PyMongoError):
        logger.exception("Document store failure request_id=%s", getattr(g, "request_id", ""))
        return jsonify(_error_body("STORE_UNAVAILABLE", "The database is unavailable. Please try again later.")), 503

    @app.errorhandler(Exception)
    def _unhandled(err: Exception):
        logger.exception("Unhandled exception request_id=%s", getattr(g, "request_id", ""))
        return jsonify(_error_body("INTERNAL", "Unexpected error")), 500
