"""Command line entry points."""
from __future__ import annotations

import json

import click
import uvicorn

from webtoon_studio.config import WebtoonConfig, set_config
from webtoon_studio.credits import run_monthly_deposit
from webtoon_studio.db import get_session_factory, init_db
from webtoon_studio.log_config import setup_logging


@click.group()
def main() -> None:
    """Webtoon studio service."""


@main.command()
@click.option("--host", default=None, help="Bind address (defaults to WEBTOON_HOST).")
@click.option("--port", default=None, type=int, help="Port (defaults to WEBTOON_PORT).")
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the HTTP API."""
    config = WebtoonConfig()
    uvicorn.run(
        "webtoon_studio.main:create_app",
        factory=True,
        host=host or config.host,
        port=port or config.port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


@main.command("monthly-deposit")
def monthly_deposit() -> None:
    """Top up paid plans for the new month, as the scheduled job does."""
    config = WebtoonConfig()
    set_config(config)
    setup_logging(config.log_level)
    init_db(config.database_url)
    with get_session_factory()() as db:
        report = run_monthly_deposit(db)
    click.echo(json.dumps(report.to_dict(), indent=2))
    if report.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
