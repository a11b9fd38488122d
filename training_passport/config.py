from __future__ import annotations

import os
from dataclasses import dataclass


def _csv(value: str) -> list[str]:
    items: list[str] = []
    for part in (value or "").split(","):
        item = part.strip()
        if item:
            items.append(item)
    return items


def _env_str(name: str, default: str) -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


@dataclass(frozen=True)
class BaseConfig:
    ENV: str = "development"
    DEBUG: bool = False
    TESTING: bool = False

    APP_VERSION: str = "dev"
    APP_URL: str = "http://localhost:3000"

    MONGODB_URI: str = "mongodb://localhost:27017"
    DB_NAME: str = "training_passport"
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    # Multi-document transactions need a replica set (Atlas, rs0, ...).
    MONGO_TRANSACTIONS: bool = True

    JWT_SECRET: str = "dev-secret"
    JWT_EXP_MINUTES: int = 60 * 24

    # Creates admin/password on the first login attempt against an empty users collection.
    SEED_ADMIN: bool = True

    CORS_ORIGINS: list[str] | str = "http://localhost:3000,http://127.0.0.1:3000"
    CORS_ALLOW_CREDENTIALS: bool = False

    LOG_LEVEL: str = "INFO"

    RATE_LIMIT_GLOBAL: str = "1200 per minute"
    RATE_LIMIT_DEFAULT: str = "300 per minute"
    RATE_LIMIT_LOGIN: str = "30 per minute"

    TRUST_PROXY_HEADERS: bool = True

    INTERNAL_CRON_TOKEN: str = ""

    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    SMTP_FROM: str = ""
    SMTP_STARTTLS: bool = True

    def __post_init__(self) -> None:
        for name in ("APP_VERSION", "APP_URL", "MONGODB_URI", "DB_NAME", "JWT_SECRET"):
            object.__setattr__(self, name, _env_str(name, getattr(self, name)))

        object.__setattr__(
            self,
            "MONGO_SERVER_SELECTION_TIMEOUT_MS",
            _env_int("MONGO_SERVER_SELECTION_TIMEOUT_MS", self.MONGO_SERVER_SELECTION_TIMEOUT_MS),
        )
        object.__setattr__(self, "MONGO_TRANSACTIONS", _env_bool("MONGO_TRANSACTIONS", self.MONGO_TRANSACTIONS))
        object.__setattr__(self, "JWT_EXP_MINUTES", _env_int("JWT_EXP_MINUTES", self.JWT_EXP_MINUTES))
        object.__setattr__(self, "SEED_ADMIN", _env_bool("SEED_ADMIN", self.SEED_ADMIN))

        cors_raw = os.getenv("CORS_ORIGINS")
        if cors_raw is not None:
            cors_raw = str(cors_raw or "").strip()
            if cors_raw == "*":
                object.__setattr__(self, "CORS_ORIGINS", "*")
            else:
                object.__setattr__(self, "CORS_ORIGINS", _csv(cors_raw))
        else:
            object.__setattr__(self, "CORS_ORIGINS", _csv(str(self.CORS_ORIGINS)))

        object.__setattr__(
            self, "CORS_ALLOW_CREDENTIALS", _env_bool("CORS_ALLOW_CREDENTIALS", self.CORS_ALLOW_CREDENTIALS)
        )

        object.__setattr__(self, "LOG_LEVEL", _env_str("LOG_LEVEL", self.LOG_LEVEL).upper())

        for name in ("RATE_LIMIT_GLOBAL", "RATE_LIMIT_DEFAULT", "RATE_LIMIT_LOGIN"):
            object.__setattr__(self, name, _env_str(name, getattr(self, name)))

        object.__setattr__(self, "TRUST_PROXY_HEADERS", _env_bool("TRUST_PROXY_HEADERS", self.TRUST_PROXY_HEADERS))
        object.__setattr__(self, "INTERNAL_CRON_TOKEN", str(os.getenv("INTERNAL_CRON_TOKEN", "") or "").strip())

        for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS", "SMTP_FROM"):
            object.__setattr__(self, name, str(os.getenv(name, getattr(self, name)) or "").strip())
        object.__setattr__(self, "SMTP_PORT", _env_int("SMTP_PORT", self.SMTP_PORT))
        object.__setattr__(self, "SMTP_STARTTLS", _env_bool("SMTP_STARTTLS", self.SMTP_STARTTLS))

    @property
    def IS_PRODUCTION(self) -> bool:
        return str(self.ENV or "").lower() == "production"

    @property
    def USES_MONGOMOCK(self) -> bool:
        return str(self.MONGODB_URI or "").startswith("mongomock://")

    @property
    def SMTP_ENABLED(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_PORT and self.SMTP_FROM)

    def validate(self) -> None:
        if self.IS_PRODUCTION and str(self.JWT_SECRET or "").strip() in {"", "dev-secret"}:
            raise RuntimeError("JWT_SECRET must be set in production")
        if self.IS_PRODUCTION and (not str(self.MONGODB_URI or "").strip() or not str(self.DB_NAME or "").strip()):
            raise RuntimeError("MONGODB_URI and DB_NAME must be set in production")
        if self.IS_PRODUCTION and self.USES_MONGOMOCK:
            raise RuntimeError("MONGODB_URI must point at a real MongoDB deployment in production")
        if self.IS_PRODUCTION and self.SEED_ADMIN:
            raise RuntimeError("SEED_ADMIN must be disabled in production")


@dataclass(frozen=True)
class DevelopmentConfig(BaseConfig):
    ENV: str = "development"
    DEBUG: bool = True


@dataclass(frozen=True)
class ProductionConfig(BaseConfig):
    ENV: str = "production"
    DEBUG: bool = False
    SEED_ADMIN: bool = False


@dataclass(frozen=True)
class TestingConfig(BaseConfig):
    ENV: str = "testing"
    TESTING: bool = True
    JWT_SECRET: str = "test-secret"
    MONGODB_URI: str = "mongomock://localhost"


def get_config() -> BaseConfig:
    env = str(os.getenv("ENV") or os.getenv("APP_ENV") or "development").strip().lower()
    if env in {"prod", "production"}:
        cfg: BaseConfig = ProductionConfig()
    elif env in {"test", "testing"}:
        cfg = TestingConfig()
    else:
        cfg = DevelopmentConfig()

    cfg.validate()
    return cfg
