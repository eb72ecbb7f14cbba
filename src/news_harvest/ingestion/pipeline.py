"""End-to-end ingestion cycle orchestration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta

from news_harvest.config import Settings
from news_harvest.ingestion.errors import IngestionError
from news_harvest.ingestion.models import (
    ArticleWrite,
    CycleCounters,
    ItemOutcome,
    ItemState,
    ResolvedItem,
    RunStatus,
    ScrapedContent,
    SummaryResult,
    UpsertAction,
)
from news_harvest.ingestion.repository import SQLiteRepository
from news_harvest.ingestion.services.resolve_service import ResolveStageService
from news_harvest.ingestion.services.scrape_service import ContentFetcher
from news_harvest.ingestion.services.summarize_service import Summarizer
from news_harvest.ingestion.sources.base import FeedReader

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleSummary:
    """Result of one ingestion cycle."""

    run_id: str
    status: RunStatus
    counters: CycleCounters
    outcomes: list[ItemOutcome] = field(default_factory=list)


class IngestionOrchestrator:
    """Runs one cycle: feed, resolve, ledger filter, then per-item processing."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        repository: SQLiteRepository,
        reader: FeedReader,
        resolve_stage: ResolveStageService,
        fetcher: ContentFetcher,
        summarizer: Summarizer,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.reader = reader
        self.resolve_stage = resolve_stage
        self.fetcher = fetcher
        self.summarizer = summarizer

    def run_cycle(self, *, should_stop: Callable[[], bool] | None = None) -> CycleSummary:
        """Run one cycle.

        Once should_stop returns True the remaining items, and any item that
        fails while stopping, are deferred: nothing is written to the ledger
        for them, so the next cycle picks them up again.
        """

        stopping = should_stop or _never_stop
        counters = CycleCounters()
        outcomes: list[ItemOutcome] = []
        run_id = self.repository.start_run(
            self.reader.feed_url,
            stale_after=timedelta(seconds=self.settings.pipeline.active_run_stale_after_seconds),
        )
        logger.info("Started ingestion cycle %s for %s", run_id, self.reader.feed_url)

        try:
            entries = self.reader.fetch_entries()
            counters.entries_count = len(entries)
            self._heartbeat(run_id)

            resolved = self.resolve_stage.resolve_entries(entries)
            self._heartbeat(run_id)

            candidates = self._filter_resolved(resolved, counters=counters, outcomes=outcomes)
            new_items = self._filter_unprocessed(candidates, counters=counters, outcomes=outcomes)
            counters.new_count = len(new_items)

            for index, item in enumerate(new_items):
                if stopping():
                    outcomes.extend(self._defer(new_items[index:], counters=counters))
                    break
                outcomes.append(self._process_item(item, counters=counters, stopping=stopping))
                self._heartbeat(run_id)

            final_status = _final_status(counters)
            self.repository.finish_run(run_id=run_id, status=final_status, counters=counters)
        except Exception as exc:
            self.repository.finish_run(
                run_id=run_id,
                status=RunStatus.FAILED,
                counters=counters,
                error_summary=str(exc),
            )
            raise

        logger.info(
            "Cycle %s finished with status=%s entries=%d new=%d done=%d failed=%d deferred=%d",
            run_id,
            final_status.value,
            counters.entries_count,
            counters.new_count,
            counters.done_count,
            counters.failed_count,
            counters.deferred_count,
        )
        return CycleSummary(
            run_id=run_id,
            status=final_status,
            counters=counters,
            outcomes=outcomes,
        )

    def _filter_resolved(
        self,
        resolved: list[ResolvedItem],
        *,
        counters: CycleCounters,
        outcomes: list[ItemOutcome],
    ) -> list[ResolvedItem]:
        candidates: list[ResolvedItem] = []
        for item in resolved:
            if not item.is_resolved:
                counters.unresolved_count += 1
                outcomes.append(
                    ItemOutcome(entry=item.entry, url=item.canonical_url, state=ItemState.UNRESOLVED),
                )
                continue
            counters.resolved_count += 1
            candidates.append(item)
        return candidates

    def _filter_unprocessed(
        self,
        candidates: list[ResolvedItem],
        *,
        counters: CycleCounters,
        outcomes: list[ItemOutcome],
    ) -> list[ResolvedItem]:
        unprocessed = self.repository.unprocessed_of(item.canonical_url for item in candidates)

        new_items: list[ResolvedItem] = []
        claimed: set[str] = set()
        for item in candidates:
            url = item.canonical_url
            if url not in unprocessed or url in claimed:
                counters.already_seen_count += 1
                outcomes.append(ItemOutcome(entry=item.entry, url=url, state=ItemState.ALREADY_SEEN))
                continue
            claimed.add(url)
            new_items.append(item)

        limit = self.settings.pipeline.max_items_per_cycle
        if limit > 0 and len(new_items) > limit:
            logger.info("Limiting cycle to the newest %d of %d new items", limit, len(new_items))
            new_items = sorted(new_items, key=lambda item: item.entry.published_at, reverse=True)
            new_items = new_items[:limit]
        return new_items

    def _process_item(
        self,
        item: ResolvedItem,
        *,
        counters: CycleCounters,
        stopping: Callable[[], bool],
    ) -> ItemOutcome:
        url = item.canonical_url
        state = ItemState.SCRAPING
        try:
            scraped = self.fetcher.scrape(url)
            state = ItemState.SUMMARIZING
            summary = self.summarizer.summarize(scraped.content, scraped.title or item.entry.title)
            state = ItemState.PERSISTING
            stored = self.repository.save_article(self._build_article(item, scraped, summary))
            self.repository.record_outcome(url, success=True, article_id=stored.article_id)
        except Exception as exc:  # noqa: BLE001
            error = _describe_error(exc)
            if stopping():
                logger.warning("Item %s interrupted by shutdown, deferring: %s", url, error)
                counters.deferred_count += 1
                return ItemOutcome(entry=item.entry, url=url, state=ItemState.DEFERRED, error=error)
            failed_state = _FAILED_STATE_BY_STAGE[state]
            counters.failed_count += 1
            logger.warning("Item %s ended in %s: %s", url, failed_state.value, error)
            self._record_failure(url, error)
            return ItemOutcome(entry=item.entry, url=url, state=failed_state, error=error)

        counters.done_count += 1
        if stored.action == UpsertAction.INSERTED:
            counters.inserted_count += 1
        elif stored.action == UpsertAction.UPDATED:
            counters.updated_count += 1
        else:
            counters.unchanged_count += 1
        logger.info("Stored article %s (%s) for %s", stored.article_id, stored.action.value, url)
        return ItemOutcome(
            entry=item.entry,
            url=url,
            state=ItemState.DONE,
            article_id=stored.article_id,
        )

    def _defer(
        self,
        items: list[ResolvedItem],
        *,
        counters: CycleCounters,
    ) -> list[ItemOutcome]:
        logger.info("Stop requested, deferring %d remaining items", len(items))
        counters.deferred_count += len(items)
        return [
            ItemOutcome(entry=item.entry, url=item.canonical_url, state=ItemState.DEFERRED)
            for item in items
        ]

    def _heartbeat(self, run_id: str) -> None:
        try:
            self.repository.touch_run(run_id)
        except IngestionError as exc:
            logger.warning("Skipping heartbeat for run %s: %s", run_id, exc)

    def _record_failure(self, url: str, error: str) -> None:
        try:
            self.repository.record_outcome(url, success=False, error_summary=error)
        except IngestionError as exc:
            logger.error("Could not record failed outcome for %s: %s", url, exc)

    def _build_article(
        self,
        item: ResolvedItem,
        scraped: ScrapedContent,
        summary: SummaryResult,
    ) -> ArticleWrite:
        defaults = self.settings.defaults
        entry = item.entry
        categories = list(entry.categories) or list(defaults.categories)
        return ArticleWrite(
            headline=scraped.title or entry.title,
            content=scraped.content,
            summary=summary.summary,
            tags=list(summary.tags),
            categories=categories,
            source_name=scraped.site_name or entry.source_label or "unknown",
            author=scraped.author or defaults.author,
            url=item.canonical_url,
            published_at=scraped.published_at or entry.published_at,
            region=defaults.region,
            timezone=defaults.timezone,
        )


_FAILED_STATE_BY_STAGE = {
    ItemState.SCRAPING: ItemState.SCRAPE_FAILED,
    ItemState.SUMMARIZING: ItemState.SUMMARIZE_FAILED,
    ItemState.PERSISTING: ItemState.PERSIST_FAILED,
}


def _never_stop() -> bool:
    return False


def _final_status(counters: CycleCounters) -> RunStatus:
    if counters.deferred_count:
        return RunStatus.INTERRUPTED
    if counters.failed_count:
        return RunStatus.PARTIAL
    return RunStatus.SUCCEEDED


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, IngestionError):
        return f"{exc.code}: {exc.message}"
    return f"{type(exc).__name__}: {exc}"


def run_ingestion_cycle(  # noqa: PLR0913
    *,
    settings: Settings,
    repository: SQLiteRepository,
    reader: FeedReader,
    resolve_stage: ResolveStageService,
    fetcher: ContentFetcher,
    summarizer: Summarizer,
    should_stop: Callable[[], bool] | None = None,
) -> CycleSummary:
    """Run one ingestion cycle with provided dependencies."""

    return IngestionOrchestrator(
        settings=settings,
        repository=repository,
        reader=reader,
        resolve_stage=resolve_stage,
        fetcher=fetcher,
        summarizer=summarizer,
    ).run_cycle(should_stop=should_stop)
