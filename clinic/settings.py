"""Environment-aware settings loader for the clinic backend."""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


class Settings(BaseModel):
    db_path: Path = Path(os.getenv("CLINIC_DB_PATH", str(BASE_DIR / "clinic" / "clinic.db")))
    secret_key: str = os.getenv("APP_SECRET_KEY", "change-me")
    timezone: str = os.getenv("CLINIC_TIMEZONE", "UTC")
    login_delay_seconds: float = float(os.getenv("LOGIN_DELAY_SECONDS", "1.0"))
    session_cookie_secure: bool = os.getenv("SESSION_COOKIE_SECURE", "false").lower() in {"1", "true", "yes"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
