"""CLI entrypoint for news-harvest."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from news_harvest import __version__
from news_harvest.config import Settings
from news_harvest.ingestion.controllers import (
    ArticlesListCommand,
    IngestionCliController,
    LedgerResetCommand,
    LedgerStatsCommand,
    RunOnceCommand,
    ScheduleCommand,
)
from news_harvest.ingestion.errors import CycleAlreadyRunning, IngestionError
from news_harvest.logging_utils import setup_logging

click.rich_click.USE_MARKDOWN = True
INGESTION_CONTROLLER = IngestionCliController()


@click.group()
@click.version_option(version=__version__, prog_name="news-harvest")
@click.option(
    "--log-level",
    default=None,
    help="Logging level (defaults to NEWS_HARVEST_LOG_LEVEL or INFO).",
)
def news_harvest(log_level: str | None) -> None:
    """Feed-to-article harvesting pipeline."""

    setup_logging(log_level or Settings.from_env().log_level)


@news_harvest.command("run-once")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--feed-url", default=None, help="RSS/Atom feed URL overriding configuration.")
def run_once(db_path: Path | None, feed_url: str | None) -> None:
    """Run one ingestion cycle and print its counters."""

    _emit_lines(
        _guarded(
            lambda: INGESTION_CONTROLLER.run_once(
                RunOnceCommand(db_path=db_path, feed_url=feed_url),
            ),
        ),
    )


@news_harvest.command("schedule")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--feed-url", default=None, help="RSS/Atom feed URL overriding configuration.")
@click.option("--cron", default=None, help="5-field crontab expression, e.g. `*/30 * * * *`.")
@click.option(
    "--run-on-startup/--no-run-on-startup",
    default=None,
    help="Run one cycle immediately when the scheduler starts.",
)
def schedule(
    db_path: Path | None,
    feed_url: str | None,
    cron: str | None,
    run_on_startup: bool | None,
) -> None:
    """Run ingestion cycles on a schedule until interrupted."""

    _emit_lines(
        _guarded(
            lambda: INGESTION_CONTROLLER.schedule(
                ScheduleCommand(
                    db_path=db_path,
                    feed_url=feed_url,
                    cron=cron,
                    run_on_startup=run_on_startup,
                ),
            ),
        ),
    )


@news_harvest.group()
def ledger() -> None:
    """Processed-URL ledger commands."""


@ledger.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--recent-runs",
    type=click.IntRange(min=1, max=50),
    default=5,
    show_default=True,
    help="How many latest cycles to display.",
)
def ledger_stats(db_path: Path | None, recent_runs: int) -> None:
    """Show ledger totals and the latest cycles."""

    _emit_lines(
        INGESTION_CONTROLLER.ledger_stats(
            LedgerStatsCommand(db_path=db_path, recent_runs=recent_runs),
        ),
    )


@ledger.command("reset")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--url", default=None, help="Only clear the record for this canonical URL.")
@click.option("--failed-only", is_flag=True, default=False, help="Only clear failed records.")
def ledger_reset(db_path: Path | None, url: str | None, failed_only: bool) -> None:
    """Clear ledger records so matching URLs are attempted again."""

    _emit_lines(
        INGESTION_CONTROLLER.ledger_reset(
            LedgerResetCommand(db_path=db_path, url=url, failed_only=failed_only),
        ),
    )


@news_harvest.group()
def articles() -> None:
    """Stored article listings."""


@articles.command("recent")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=10,
    show_default=True,
    help="Max number of articles to print.",
)
def articles_recent(db_path: Path | None, limit: int) -> None:
    """List the most recently published stored articles."""

    _emit_lines(
        INGESTION_CONTROLLER.recent_articles(ArticlesListCommand(db_path=db_path, limit=limit)),
    )


@articles.command("category")
@click.argument("name")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=10,
    show_default=True,
    help="Max number of articles to print.",
)
def articles_category(name: str, db_path: Path | None, limit: int) -> None:
    """List stored articles in one category."""

    _emit_lines(
        INGESTION_CONTROLLER.category_articles(
            ArticlesListCommand(db_path=db_path, limit=limit, category=name),
        ),
    )


def _guarded(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except (IngestionError, CycleAlreadyRunning, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    news_harvest()
