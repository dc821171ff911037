"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent
DEFAULT_DB_URL = f"sqlite:///{BASE / 'evaluation.db'}"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    DATABASE_URL: str
    SQL_ECHO: bool
    LOG_LEVEL: str
    CORS_ORIGINS: list
    ALLOW_DEV_CORS: bool
    SERVICE_NAME: str

    def __init__(self, **overrides):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DB_URL)
        self.SQL_ECHO = _env_bool("SQL_ECHO", "false")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
        self.CORS_ORIGINS = [o.strip() for o in origins.split(",") if o.strip()]
        self.ALLOW_DEV_CORS = _env_bool("ALLOW_DEV_CORS", "true")
        self.SERVICE_NAME = os.getenv("SERVICE_NAME", "evaluation-backend")
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise TypeError(f"unknown setting: {key}")
            setattr(self, key, value)
        self._validate()

    def _validate(self):
        if not self.DATABASE_URL or not self.DATABASE_URL.strip():
            raise RuntimeError("DATABASE_URL must not be empty")
        if self.ENV != "dev" and self.ALLOW_DEV_CORS:
            raise RuntimeError("ALLOW_DEV_CORS must be disabled outside the dev environment")


settings = Settings()
