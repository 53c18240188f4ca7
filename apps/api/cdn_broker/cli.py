"""CLI commands for the CDN broker."""

import logging
import os
import sys

import click

from cdn_broker.settings import get_settings

ALEMBIC_INI_PATH = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _route_manager(db):
    from cdn_broker.cdn.cloudfront import get_distribution_manager
    from cdn_broker.certificates.acm import get_certificate_manager
    from cdn_broker.services.route_manager import RouteManager
    from cdn_broker.store.route_store import RouteStore

    return RouteManager(RouteStore(db), get_distribution_manager(), get_certificate_manager())


@click.group()
def cli():
    """CDN broker CLI."""
    _configure_logging()


@cli.command()
@click.option("--host", default=None, help="Listen address (defaults to API_HOST).")
@click.option("--port", default=None, type=int, help="Listen port (defaults to API_PORT).")
def serve(host, port):
    """Run the broker API."""
    import uvicorn

    settings = get_settings()
    try:
        settings.validate_production_settings()
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    options = {}
    if settings.tls_enabled:
        options["ssl_certfile"] = settings.tls_certificate_path
        options["ssl_keyfile"] = settings.tls_private_key_path

    uvicorn.run(
        "cdn_broker.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None,
        **options,
    )


@cli.command()
@click.option("--revision", default="head", show_default=True, help="Target revision.")
def migrate(revision):
    """Apply database migrations."""
    from alembic import command
    from alembic.config import Config

    click.echo(f"Migrating database to {revision}...")
    config = Config(ALEMBIC_INI_PATH)
    config.set_main_option("script_location", os.path.join(os.path.dirname(ALEMBIC_INI_PATH), "alembic"))
    command.upgrade(config, revision)
    click.echo("✓ Database migrated.")


@cli.command("check-routes")
def check_routes():
    """Poll every actively changing route once."""
    from cdn_broker.db.session import SessionLocal

    db = SessionLocal()
    try:
        result = _route_manager(db).check_routes_to_update()
    finally:
        db.close()

    click.echo(
        f"Checked {result.checked} routes: "
        f"{len(result.provisioned)} provisioned, {len(result.deprovisioned)} deprovisioned, "
        f"{len(result.conflicts)} conflicts, {len(result.failed)} failed, "
        f"{len(result.timed_out)} timed out, {len(result.errors)} errors"
    )
    if result.errors:
        sys.exit(1)


@cli.command("delete-orphaned-certs")
def delete_orphaned_certs():
    """Delete issued certificates that no route uses."""
    from cdn_broker.db.session import SessionLocal

    db = SessionLocal()
    try:
        deleted = _route_manager(db).delete_orphaned_certs()
    finally:
        db.close()

    for arn in deleted:
        click.echo(f"✓ Deleted {arn}")
    click.echo(f"Deleted {len(deleted)} orphaned certificates.")


@cli.command("list-expiring-certs")
def list_expiring_certs():
    """List provisioned routes whose legacy certificates expire within 30 days."""
    from cdn_broker.db.session import SessionLocal

    db = SessionLocal()
    try:
        routes = _route_manager(db).routes_with_expiring_certs()
        for route in routes:
            click.echo(f"{route.instance_id}\t{route.domain_external}\t{route.dist_id}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
