"""Controllers for harvest CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from news_harvest.config import Settings
from news_harvest.ingestion.cleaning import extract_host
from news_harvest.ingestion.models import ArticleView, ItemState
from news_harvest.ingestion.pipeline import CycleSummary, IngestionOrchestrator
from news_harvest.ingestion.repository import SQLiteRepository
from news_harvest.ingestion.resolver import UrlResolver
from news_harvest.ingestion.scheduler import CycleScheduler
from news_harvest.ingestion.services.resolve_service import ResolveStageService
from news_harvest.ingestion.services.scrape_service import build_content_fetcher
from news_harvest.ingestion.services.summarize_service import Summarizer
from news_harvest.ingestion.sources.rss import RssFeedConfig, RssFeedReader


@dataclass(slots=True)
class RunOnceCommand:
    """CLI inputs for a single ingestion cycle."""

    db_path: Path | None
    feed_url: str | None


@dataclass(slots=True)
class ScheduleCommand:
    """CLI inputs for the periodic scheduler."""

    db_path: Path | None
    feed_url: str | None
    cron: str | None
    run_on_startup: bool | None


@dataclass(slots=True)
class LedgerStatsCommand:
    db_path: Path | None
    recent_runs: int


@dataclass(slots=True)
class LedgerResetCommand:
    """CLI inputs for clearing ledger records."""

    db_path: Path | None
    url: str | None
    failed_only: bool


@dataclass(slots=True)
class ArticlesListCommand:
    """CLI inputs for article listings."""

    db_path: Path | None
    limit: int
    category: str | None = None


class IngestionCliController:
    """Coordinates harvest command execution."""

    def run_once(self, command: RunOnceCommand) -> list[str]:
        settings = _settings_with_overrides(Settings.from_env(db_path=command.db_path), command)
        settings.validate_for_cycle()
        with _repository(settings) as repository, _orchestrator(settings, repository) as orchestrator:
            summary = orchestrator.run_cycle()
        return _cycle_lines(summary)

    def schedule(self, command: ScheduleCommand) -> list[str]:
        settings = _settings_with_overrides(Settings.from_env(db_path=command.db_path), command)
        scheduler_settings = settings.scheduler
        if command.cron is not None:
            scheduler_settings = replace(scheduler_settings, cron=command.cron.strip())
        if command.run_on_startup is not None:
            scheduler_settings = replace(scheduler_settings, run_on_startup=command.run_on_startup)
        settings = replace(settings, scheduler=scheduler_settings)
        settings.validate_for_cycle()
        settings.validate_schedule()

        with _repository(settings) as repository, _orchestrator(settings, repository) as orchestrator:
            CycleScheduler(
                run_cycle=orchestrator.run_cycle,
                settings=settings.scheduler,
            ).run_forever()
        return ["Scheduler stopped."]

    def ledger_stats(self, command: LedgerStatsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            stats = repository.ledger_stats()
            recent = repository.list_recent_runs(limit=command.recent_runs)

        lines = [
            f"Ledger: total={stats.total} succeeded={stats.succeeded} failed={stats.failed}",
        ]
        if not recent:
            return lines

        lines.append("Recent cycles:")
        for run in recent:
            finished_at = run.finished_at.isoformat() if run.finished_at is not None else "-"
            lines.append(
                f"  {run.run_id} status={run.status} "
                f"started_at={run.started_at.isoformat()} finished_at={finished_at} "
                f"entries={run.entries_count} new={run.new_count} "
                f"done={run.done_count} failed={run.failed_count}",
            )
            if run.error_summary:
                lines.append(f"    error={run.error_summary}")
        return lines

    def ledger_reset(self, command: LedgerResetCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            cleared = repository.clear_ledger(url=command.url, failed_only=command.failed_only)

        scope = command.url or "all URLs"
        if command.failed_only:
            scope = f"{scope} (failed only)"
        return [f"Ledger reset: cleared={cleared} scope={scope}"]

    def recent_articles(self, command: ArticlesListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            articles = repository.list_recent_articles(limit=command.limit)
        return _article_lines(articles, empty_message="No articles stored yet.")

    def category_articles(self, command: ArticlesListCommand) -> list[str]:
        if not command.category:
            raise ValueError("Category is required.")
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            articles = repository.list_articles_by_category(command.category, limit=command.limit)
        return _article_lines(
            articles,
            empty_message=f"No articles in category {command.category!r}.",
        )


def _settings_with_overrides(
    settings: Settings,
    command: RunOnceCommand | ScheduleCommand,
) -> Settings:
    if not command.feed_url:
        return settings
    return replace(settings, feed=replace(settings.feed, feed_url=command.feed_url.strip()))


@contextmanager
def _repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(settings.db_path)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


@contextmanager
def _orchestrator(
    settings: Settings,
    repository: SQLiteRepository,
) -> Iterator[IngestionOrchestrator]:
    feed_url = settings.feed.feed_url
    with ExitStack() as stack:
        resolver = stack.enter_context(
            UrlResolver(
                proxy_hosts=(*settings.resolver.proxy_hosts, extract_host(feed_url)),
                proxy_query_params=settings.resolver.proxy_query_params,
                max_redirects=settings.resolver.max_redirects,
                timeout_seconds=settings.resolver.timeout_seconds,
            ),
        )
        fetcher = build_content_fetcher(settings.extraction)
        stack.callback(fetcher.close)
        summarizer = Summarizer(settings.summarizer)
        stack.callback(summarizer.close)

        yield IngestionOrchestrator(
            settings=settings,
            repository=repository,
            reader=RssFeedReader(
                RssFeedConfig(
                    feed_url=feed_url,
                    max_retries=settings.feed.max_retries,
                    retry_backoff_seconds=settings.feed.retry_backoff_seconds,
                    request_timeout_seconds=settings.feed.request_timeout_seconds,
                ),
            ),
            resolve_stage=ResolveStageService(
                resolver=resolver,
                resolver_settings=settings.resolver,
            ),
            fetcher=fetcher,
            summarizer=summarizer,
        )


_REPORTED_STATES = frozenset({ItemState.UNRESOLVED, ItemState.DEFERRED})


def _cycle_lines(summary: CycleSummary) -> list[str]:
    counters = summary.counters
    lines = [
        "Ingestion cycle completed: "
        f"run_id={summary.run_id} status={summary.status.value} "
        f"entries={counters.entries_count} "
        f"resolved={counters.resolved_count} "
        f"unresolved={counters.unresolved_count} "
        f"already_seen={counters.already_seen_count} "
        f"new={counters.new_count} "
        f"done={counters.done_count} "
        f"failed={counters.failed_count} "
        f"deferred={counters.deferred_count}",
        "Articles: "
        f"inserted={counters.inserted_count} "
        f"updated={counters.updated_count} "
        f"unchanged={counters.unchanged_count}",
    ]
    for outcome in summary.outcomes:
        if outcome.state.is_failure or outcome.state in _REPORTED_STATES:
            lines.append(
                f"  {outcome.state.value} url={outcome.url} "
                f"error={outcome.error or '-'}",
            )
    return lines


def _article_lines(articles: list[ArticleView], *, empty_message: str) -> list[str]:
    if not articles:
        return [empty_message]

    lines: list[str] = []
    for article in articles:
        lines.append(
            f"{article.published_at.isoformat()} [{article.source_name}] {article.headline}",
        )
        lines.append(f"  url={article.url}")
        if article.categories:
            lines.append(f"  categories={', '.join(article.categories)}")
        if article.tags:
            lines.append(f"  tags={', '.join(article.tags)}")
        lines.append(f"  summary={article.summary}")
    return lines
