"""Issue a signed bearer token for a principal (development helper).

Why:
    Local development and manual API checks need credentials signed with the
    same secret the server verifies against. The token carries only `sub`,
    `iat` and `exp`; the role is looked up on every request.
"""
from __future__ import annotations

from dataclasses import replace
import logging

import click

from identity_access.tokens import issue_token
from web.config import load_settings


logger = logging.getLogger("schoolhub.tools")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--principal-id", required=True, help="Principal id to place in the `sub` claim.")
@click.option(
    "--ttl-seconds",
    type=int,
    default=None,
    help="Override JWT_TTL_SECONDS for this token.",
)
def cli(principal_id: str, ttl_seconds: int | None) -> None:
    """Print a bearer token signed with JWT_SECRET / JWT_ALGORITHM."""
    settings = load_settings()
    if settings.is_prod_like:
        click.echo("Refusing to issue tokens in a production-like environment.", err=True)
        raise click.Abort()
    cfg = settings.token_config()
    if ttl_seconds is not None:
        if ttl_seconds <= 0:
            raise click.BadParameter("must be positive", param_hint="--ttl-seconds")
        cfg = replace(cfg, ttl_seconds=ttl_seconds)
    token = issue_token(principal_id=principal_id.strip(), cfg=cfg)
    logger.info("Issued token: ttl_seconds=%d", cfg.ttl_seconds)
    click.echo(token)


if __name__ == "__main__":  # pragma: no cover
    cli()
