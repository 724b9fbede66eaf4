from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///streetwise.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")
    SNAPSHOT_PATH = os.getenv("SNAPSHOT_PATH", "streetwise-data.json")
    SNAPSHOT_DEBOUNCE_SECONDS = float(os.getenv("SNAPSHOT_DEBOUNCE_SECONDS", "0.5"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
