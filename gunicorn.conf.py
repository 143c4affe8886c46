import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


wsgi_app = "app:create_app()"

bind = f"0.0.0.0:{_env_int('PORT', 5002)}"

# The application state lives in process memory (one session, one Firestore
# listener set), so exactly one worker. Concurrency comes from threads.
worker_class = "gthread"
workers = 1
threads = max(1, _env_int("PYTHON_THREADS", 4))

# Must stay off: a preloaded app would start Firestore listeners in the master.
preload_app = False

timeout = max(10, _env_int("GUNICORN_TIMEOUT", 120))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 30))

# Log to stdout/stderr (container friendly).
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info").strip().lower()

reload = _env_bool("GUNICORN_RELOAD", False)
