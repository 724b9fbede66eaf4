from __future__ import annotations

import streetwise
from streetwise import close_stores, create_app, get_store
from streetwise.core.config import Config
from streetwise.core.tenancy import ScopeFilter
from streetwise.storage import MemoryRecordStore


def test_onboard_org_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(
        args=[
            "onboard-org",
            "--name", "Hope Street",
            "--admin-email", "admin@hope.org",
            "--admin-name", "Ada",
            "--admin-password", "s3cret",
            "--tier", "basic",
        ]
    )
    assert result.exit_code == 0, result.output
    assert "admin=admin@hope.org" in result.output

    (org,) = get_store().list_organizations()
    assert org.name == "Hope Street"

    again = runner.invoke(
        args=[
            "onboard-org",
            "--name", "Other",
            "--admin-email", "admin@hope.org",
            "--admin-name", "B",
            "--admin-password", "x",
        ]
    )
    assert again.exit_code != 0
    assert "already exists" in again.output


def test_seed_defaults_command(app):
    runner = app.test_cli_runner()
    assert runner.invoke(args=["seed-defaults"]).exit_code != 0

    result = runner.invoke(args=["seed-defaults", "--user-id", "u1"])
    assert "Created 5 default work types." in result.output
    result = runner.invoke(args=["seed-defaults", "--user-id", "u1"])
    assert "skipped" in result.output
    assert len(get_store().list_work_types(ScopeFilter(user_id="u1"))) == 5


def test_totals_command(app):
    store = get_store()
    store.create_transaction({"amount": "5.00", "type": "donation", "user_id": "u1"})
    store.create_transaction({"amount": "2.00", "type": "donation", "user_id": "u2", "org_id": "o1"})

    runner = app.test_cli_runner()
    result = runner.invoke(args=["totals", "--free-tier", "--timeframe", "all-time"])
    assert result.output.strip() == "all-time: $5.00"

    result = runner.invoke(args=["totals"])
    assert "all-time: $7.00" in result.output
    assert "today: $7.00" in result.output

    assert runner.invoke(args=["totals", "--free-tier", "--org-id", "o1"]).exit_code != 0


def test_init_db_command_on_sql_backend(sql_app):
    runner = sql_app.test_cli_runner()
    result = runner.invoke(args=["init-db"])
    assert result.exit_code == 0
    assert "Tables created." in result.output

    store = sql_app.extensions["streetwise.store"]
    org = store.create_organization({"name": "Org1"})
    assert store.get_organization(org.id) == org


def _snapshot_config(path):
    class SnapshotConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = "sqlite://"
        STORAGE_BACKEND = "memory"
        SNAPSHOT_PATH = str(path)
        SNAPSHOT_DEBOUNCE_SECONDS = 60

    return SnapshotConfig


def test_flush_snapshot_command(tmp_path):
    app = create_app(_snapshot_config(tmp_path / "data.json"))
    app.extensions["streetwise.store"].create_user({"device_id": "device-1"})

    result = app.test_cli_runner().invoke(args=["flush-snapshot"])
    assert result.exit_code == 0
    assert (tmp_path / "data.json").exists()


def test_create_app_adds_no_exit_hooks(tmp_path, monkeypatch):
    registered = []
    monkeypatch.setattr(streetwise.atexit, "register", lambda *args, **kwargs: registered.append(args))

    first = create_app(_snapshot_config(tmp_path / "one.json"))
    second = create_app(_snapshot_config(tmp_path / "two.json"))

    assert registered == []
    assert first.extensions["streetwise.store"] in streetwise._open_stores
    assert second.extensions["streetwise.store"] in streetwise._open_stores


def test_close_stores_flushes_pending_snapshots(tmp_path):
    app = create_app(_snapshot_config(tmp_path / "data.json"))
    store = app.extensions["streetwise.store"]
    store.create_user({"device_id": "device-1"})
    assert store.flush_pending

    close_stores()

    assert not store.flush_pending
    assert (tmp_path / "data.json").exists()


def test_injected_store_is_left_to_its_owner(tmp_path):
    store = MemoryRecordStore()
    app = create_app(_snapshot_config(tmp_path / "unused.json"), store=store)
    assert app.extensions["streetwise.store"] is store
    assert store not in streetwise._open_stores
