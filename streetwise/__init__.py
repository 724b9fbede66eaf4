from __future__ import annotations

import atexit
import logging
import weakref

import click
from flask import Flask, current_app

from streetwise.collection.seeding import ensure_defaults
from streetwise.collection.services import onboard_organization
from streetwise.collection.totals import TIMEFRAMES, totals_summary
from streetwise.core.config import Config
from streetwise.core.errors import StreetwiseError
from streetwise.core.extensions import db
from streetwise.core.tenancy import UNSET, ScopeFilter
from streetwise.core.utils import money
from streetwise.storage import RecordStore, build_store

STORE_KEY = "streetwise.store"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Stores built by create_app, closed once at interpreter exit.
_open_stores: weakref.WeakSet[RecordStore] = weakref.WeakSet()


def create_app(config_object: type[Config] | None = None, store: RecordStore | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    db.init_app(app)
    configure_logging(app)

    if store is None:
        store = build_store(app.config)
        _open_stores.add(store)
    app.extensions[STORE_KEY] = store

    register_cli(app)
    return app


def get_store() -> RecordStore:
    return current_app.extensions[STORE_KEY]


@atexit.register
def close_stores() -> None:
    for store in list(_open_stores):
        store.close()


def configure_logging(app: Flask) -> None:
    logger = logging.getLogger("streetwise")
    logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


def register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db() -> None:
        """Create the relational tables."""
        db.create_all()
        click.echo("Tables created.")

    @app.cli.command("seed-defaults")
    @click.option("--user-id", type=str, default=None, help="User to seed.")
    @click.option("--org-id", type=str, default=None, help="Organization to seed.")
    def seed_defaults(user_id: str | None, org_id: str | None) -> None:
        """Create the default work types for a user or organization."""
        if not user_id and not org_id:
            raise click.UsageError("Pass --user-id or --org-id.")
        created = ensure_defaults(get_store(), user_id=user_id, org_id=org_id)
        if created:
            click.echo(f"Created {len(created)} default work types.")
        else:
            click.echo("Seed skipped: work types already exist.")

    @app.cli.command("onboard-org")
    @click.option("--name", type=str, required=True, help="Organization name.")
    @click.option("--admin-email", type=str, required=True)
    @click.option("--admin-name", type=str, required=True)
    @click.option("--admin-password", type=str, prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--tier", type=click.Choice(["free", "basic", "professional", "enterprise"]), default="free")
    @click.option("--subdomain", type=str, default=None)
    def onboard_org(
        name: str,
        admin_email: str,
        admin_name: str,
        admin_password: str,
        tier: str,
        subdomain: str | None,
    ) -> None:
        """Create an organization with its admin caseworker and default work types."""
        try:
            result = onboard_organization(
                get_store(),
                name=name,
                admin_email=admin_email,
                admin_name=admin_name,
                admin_password=admin_password,
                tier=tier,
                subdomain=subdomain,
            )
        except StreetwiseError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"[{result.organization.id}] {result.organization.name} admin={result.admin.email}")

    @app.cli.command("totals")
    @click.option("--user-id", type=str, default=None)
    @click.option("--org-id", type=str, default=None)
    @click.option("--free-tier", is_flag=True, help="Only records without an organization.")
    @click.option("--timeframe", type=click.Choice(TIMEFRAMES), default=None)
    def totals(user_id: str | None, org_id: str | None, free_tier: bool, timeframe: str | None) -> None:
        """Print collection totals for a scope."""
        if free_tier and org_id:
            raise click.UsageError("--free-tier and --org-id are exclusive.")
        scope = ScopeFilter(
            user_id=user_id if user_id else UNSET,
            org_id=None if free_tier else (org_id if org_id else UNSET),
        )
        summary = totals_summary(get_store(), scope)
        for name in (timeframe,) if timeframe else TIMEFRAMES:
            click.echo(f"{name}: {money(summary[name])}")

    @app.cli.command("flush-snapshot")
    def flush_snapshot() -> None:
        """Write the in-memory store to its snapshot file now."""
        get_store().flush()
        click.echo("Snapshot flushed.")
