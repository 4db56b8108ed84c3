"""Apply the Postgres schema used by the db-backed stores.

The DDL in `fees/schema.sql` is idempotent, so re-running the command is safe.
Everything runs in a single transaction.
"""
from __future__ import annotations

import logging
from pathlib import Path

import click
import psycopg

logger = logging.getLogger("schoolhub.tools")

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "fees" / "schema.sql"


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--db-dsn", required=True, envvar="DATABASE_URL", help="DSN of the schoolhub database.")
@click.option(
    "--schema",
    "schema_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=SCHEMA_PATH,
    show_default=True,
    help="SQL file to apply.",
)
def cli(db_dsn: str, schema_path: Path) -> None:
    """Create the principals, classes and fees tables when missing."""
    ddl = schema_path.read_text(encoding="utf-8")
    try:
        with psycopg.connect(db_dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(ddl)
    except psycopg.Error as exc:
        logger.error("Schema apply failed: %s", exc.__class__.__name__)
        click.echo(f"Schema apply failed: {exc.__class__.__name__}", err=True)
        raise click.Abort() from exc
    click.echo(f"Applied {schema_path.name}")


if __name__ == "__main__":  # pragma: no cover
    cli()
