from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from streetwise import create_app
from streetwise.core.config import Config
from streetwise.core.extensions import db
from streetwise.storage import MemoryRecordStore, SqlRecordStore


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    STORAGE_BACKEND = "memory"
    SNAPSHOT_PATH = None
    LOG_LEVEL = "DEBUG"


class SqlTestConfig(TestConfig):
    STORAGE_BACKEND = "sql"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def sql_app():
    app = create_app(SqlTestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        yield MemoryRecordStore()
        return
    app = create_app(SqlTestConfig, store=SqlRecordStore())
    with app.app_context():
        db.create_all()
        yield app.extensions["streetwise.store"]
        db.session.remove()
        db.drop_all()


@pytest.fixture
def freeze_time(monkeypatch):
    """Pin the clock used to stamp new records."""
    from streetwise.core import entities

    def _freeze(instant):
        monkeypatch.setattr(entities, "utcnow", lambda: instant)

    return _freeze
