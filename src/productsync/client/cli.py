"""Command-line interface for productsync.

Provides commands for:
- serve: Run the API server
- consistency: Show the server's consistency snapshot
- conflicts: Detect conflicts for a saved client snapshot
- update: Version-checked update of one product
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click
import httpx
from pydantic.alias_generators import to_snake

from productsync.client.api import (
    APIError,
    ConflictError,
    ProductClient,
)
from productsync.core.config import ServerConfig

DEFAULT_SERVER_URL = "http://localhost:8000"


def parse_assignment(assignment: str) -> tuple[str, Any]:
    """Parse ``field=value`` into an attribute name and a JSON-decoded value.

    Values that are not valid JSON are taken as plain strings.

    Raises:
        click.BadParameter: If there is no '='.
    """
    name, sep, raw = assignment.partition("=")
    if not sep or not name.strip():
        raise click.BadParameter(f"expected field=value, got '{assignment}'")
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return to_snake(name.strip()), value


def _client(ctx: click.Context) -> ProductClient:
    return ProductClient(ServerConfig(server_url=ctx.obj["server_url"]))


@click.group()
@click.version_option(package_name="productsync")
@click.option(
    "--server",
    "server_url",
    envvar="PRODUCTSYNC_SERVER_URL",
    default=DEFAULT_SERVER_URL,
    show_default=True,
    help="Server URL (or PRODUCTSYNC_SERVER_URL).",
)
@click.pass_context
def cli(ctx: click.Context, server_url: str) -> None:
    """productsync - Product management with optimistic concurrency."""
    ctx.ensure_object(dict)
    ctx.obj["server_url"] = server_url


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: PRODUCTSYNC_DB_PATH or ./productsync.db).",
)
def serve(host: str, port: int, db_path: str | None) -> None:
    """Run the productsync API server."""
    import uvicorn

    from productsync.server.app import DB_PATH, LOG_PATH, create_app, setup_logging
    from productsync.server.database import Database

    resolved_db_path = Path(db_path) if db_path else DB_PATH
    setup_logging(LOG_PATH)

    click.echo(f"Database: {resolved_db_path}")
    click.echo(f"Listening on http://{host}:{port}")
    uvicorn.run(create_app(Database(resolved_db_path)), host=host, port=port)


@cli.command()
@click.pass_context
def consistency(ctx: click.Context) -> None:
    """Show the server's consistency snapshot."""
    try:
        with _client(ctx) as client:
            snapshot = client.check_consistency()
    except httpx.RequestError:
        click.echo(f"Error: Could not connect to server at {ctx.obj['server_url']}", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    last_modified = snapshot.last_modified.isoformat() if snapshot.last_modified else "-"
    click.echo(f"Total records: {snapshot.total_records}")
    click.echo(f"Last modified: {last_modified}")
    click.echo(f"Checksum:      {snapshot.checksum}")


@cli.command()
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def conflicts(ctx: click.Context, snapshot_file: Path) -> None:
    """Detect conflicts for the products saved in SNAPSHOT_FILE.

    SNAPSHOT_FILE is a JSON list of products as returned by the API.
    """
    try:
        records = json.loads(snapshot_file.read_text(encoding="utf-8"))
    except ValueError as e:
        click.echo(f"Error: Invalid JSON in {snapshot_file}: {e}", err=True)
        sys.exit(1)
    if not isinstance(records, list):
        click.echo("Error: Snapshot file must contain a JSON list of products.", err=True)
        sys.exit(1)

    try:
        with _client(ctx) as client:
            conflicted = client.detect_conflicts(records)
    except httpx.RequestError:
        click.echo(f"Error: Could not connect to server at {ctx.obj['server_url']}", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not conflicted:
        click.echo("No conflicts.")
        return

    for product in conflicted:
        for conflict in product.conflicts:
            click.echo(
                f"{conflict.record_id}  {conflict.field}: "
                f"client={json.dumps(conflict.client_value)} "
                f"server={json.dumps(conflict.server_value)}"
            )
    total = sum(len(p.conflicts) for p in conflicted)
    click.echo(f"\n{total} conflicts in {len(conflicted)} products.")


@cli.command()
@click.argument("product_id")
@click.option("--revision", "-r", type=int, required=True, help="Revision you last saw.")
@click.option(
    "--set",
    "assignments",
    multiple=True,
    required=True,
    help="Field assignment, e.g. --set price=12.5 (repeatable).",
)
@click.pass_context
def update(
    ctx: click.Context, product_id: str, revision: int, assignments: tuple[str, ...]
) -> None:
    """Update PRODUCT_ID only if it is still at the given revision."""
    fields = dict(parse_assignment(a) for a in assignments)

    try:
        with _client(ctx) as client:
            product = client.update_with_version_check(product_id, fields, revision=revision)
    except httpx.RequestError:
        click.echo(f"Error: Could not connect to server at {ctx.obj['server_url']}", err=True)
        sys.exit(1)
    except ConflictError as e:
        click.echo(f"Conflict: {e}", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Updated {product.id} to revision {product.revision}.")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
