"""Domain models for feed intake, resolution, ledger, and article storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunStatus(str, Enum):
    """Lifecycle states for ingestion cycles."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


class ResolutionMethod(str, Enum):
    """Strategy that produced a canonical URL."""

    QUERY_PARAM = "query_param"
    DIRECT_REDIRECT = "direct_redirect"
    PAGE_CONTENT = "page_content"
    FALLBACK_ORIGINAL = "fallback_original"


class ItemState(str, Enum):
    """Per-item pipeline states."""

    FETCHED = "fetched"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    CHECKING_LEDGER = "checking_ledger"
    NEW = "new"
    ALREADY_SEEN = "already_seen"
    SCRAPING = "scraping"
    SCRAPED = "scraped"
    SCRAPE_FAILED = "scrape_failed"
    SUMMARIZING = "summarizing"
    SUMMARIZED = "summarized"
    SUMMARIZE_FAILED = "summarize_failed"
    PERSISTING = "persisting"
    DONE = "done"
    PERSIST_FAILED = "persist_failed"
    DEFERRED = "deferred"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def is_failure(self) -> bool:
        return self in _FAILED_STATES


_FAILED_STATES = frozenset(
    {ItemState.SCRAPE_FAILED, ItemState.SUMMARIZE_FAILED, ItemState.PERSIST_FAILED},
)
_TERMINAL_STATES = _FAILED_STATES | {
    ItemState.DONE,
    ItemState.ALREADY_SEEN,
    ItemState.UNRESOLVED,
    ItemState.DEFERRED,
}


class UpsertAction(str, Enum):
    """Operation result for article upsert."""

    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class FeedEntry:
    """One raw entry read from the upstream feed."""

    title: str
    link: str
    published_at: datetime
    categories: tuple[str, ...] = ()
    source_label: str | None = None
    source_url: str | None = None
    guid: str | None = None


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving one raw link."""

    url: str
    method: ResolutionMethod
    resolved: bool


@dataclass(slots=True)
class ResolvedItem:
    """Feed entry paired with its canonical URL."""

    entry: FeedEntry
    canonical_url: str
    method: ResolutionMethod
    is_resolved: bool


@dataclass(slots=True)
class ScrapedContent:
    """Validated extraction result for one canonical URL."""

    url: str
    content: str
    title: str
    site_name: str
    author: str | None = None
    published_at: datetime | None = None


@dataclass(slots=True)
class SummaryResult:
    """Summary text and topical tags for one article."""

    summary: str
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ArticleWrite:
    """Article record ready for persistence."""

    headline: str
    content: str
    summary: str
    tags: list[str]
    categories: list[str]
    source_name: str
    author: str
    url: str
    published_at: datetime
    region: str
    timezone: str

    @property
    def content_length(self) -> int:
        return len(self.content)


@dataclass(slots=True)
class StoredArticle:
    """Result of persisting an article."""

    article_id: str
    action: UpsertAction


@dataclass(slots=True)
class ArticleView:
    """Read-only article view for listing commands."""

    article_id: str
    headline: str
    summary: str
    tags: list[str]
    categories: list[str]
    source_name: str
    author: str
    url: str
    published_at: datetime
    region: str
    timezone: str
    updated_at: datetime


@dataclass(slots=True)
class LedgerRecord:
    """Durable record of one attempted canonical URL."""

    url: str
    processed_at: datetime
    successful: bool
    article_id: str | None
    attempts: int
    error_summary: str | None = None


@dataclass(slots=True)
class LedgerStats:
    """Aggregated ledger counters."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0


@dataclass(slots=True)
class ItemOutcome:
    """Terminal state of one feed entry within a cycle."""

    entry: FeedEntry
    url: str
    state: ItemState
    article_id: str | None = None
    error: str | None = None


@dataclass(slots=True)
class CycleCounters:
    """Counters tracked for one ingestion cycle."""

    entries_count: int = 0
    resolved_count: int = 0
    unresolved_count: int = 0
    already_seen_count: int = 0
    new_count: int = 0
    done_count: int = 0
    failed_count: int = 0
    deferred_count: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    unchanged_count: int = 0


@dataclass(slots=True)
class CycleRunView:
    """Compact cycle run view for CLI reporting."""

    run_id: str
    status: str
    started_at: datetime
    finished_at: datetime | None
    entries_count: int
    new_count: int
    done_count: int
    failed_count: int
    error_summary: str | None = None
