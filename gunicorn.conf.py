# gunicorn -c gunicorn.conf.py "training_passport:create_app()"
import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


bind = f"0.0.0.0:{_env_int('PORT', 8000)}"

workers = max(1, _env_int("WEB_CONCURRENCY", 2))
threads = max(1, _env_int("PYTHON_THREADS", 4))

# The rate limiter is per process; keep WEB_CONCURRENCY in mind when setting limits.
timeout = max(10, _env_int("GUNICORN_TIMEOUT", 60))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))

accesslog = "-"
errorlog = "-"
