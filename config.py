from __future__ import annotations

import os


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


def _env_csv(name: str, default: str = "") -> list[str]:
    raw = _env_str(name, default)
    return [p.strip() for p in raw.split(",") if p.strip()]


class Config:
    """Process configuration, read once from the environment (after load_dotenv)."""

    def __init__(self):
        self.ENV = _env_str("APP_ENV", "development").lower()
        self.IS_PRODUCTION = self.ENV in {"prod", "production"}
        self.APP_VERSION = _env_str("APP_VERSION", "1.0.0")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()

        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 5002)
        self.ALLOWED_ORIGINS = _env_csv("ALLOWED_ORIGINS", "http://localhost:5173")

        # Local mode: the key/value table standing in for browser local storage.
        self.DATABASE_URL = _env_str("DATABASE_URL", "sqlite:///./placement_admin.db")

        # Cloud mode is active only when a project id is present (see services.cloud_store).
        self.FIRESTORE_PROJECT_ID = _env_str("FIRESTORE_PROJECT_ID")
        self.FIRESTORE_CREDENTIALS_FILE = _env_str("FIRESTORE_CREDENTIALS_FILE")
        self.FIRESTORE_DATABASE = _env_str("FIRESTORE_DATABASE")

        self.BACKUP_DIR = _env_str("BACKUP_DIR", "./backups")
        self.BALANCE_CACHE_SIZE = _env_int("BALANCE_CACHE_SIZE", 4096)
        self.RATE_LIMIT_LOGIN = _env_int("RATE_LIMIT_LOGIN", 20)

        # Seeded administrator; only used when the users collection is empty.
        self.DEFAULT_ADMIN_USERNAME = _env_str("DEFAULT_ADMIN_USERNAME")
        self.DEFAULT_ADMIN_PASSWORD = _env_str("DEFAULT_ADMIN_PASSWORD")

    def validate(self) -> None:
        if not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is required")
        if not (0 < int(self.PORT) < 65536):
            raise RuntimeError(f"Invalid PORT: {self.PORT}")
        if self.BALANCE_CACHE_SIZE < 0:
            raise RuntimeError("BALANCE_CACHE_SIZE must be >= 0")
