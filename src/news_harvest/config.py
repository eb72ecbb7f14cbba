"""Runtime configuration for the ingestion pipeline and its collaborators."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_FEED_URL = (
    "https://news.google.com/rss/search?"
    "q=us+immigration+policy+OR+immigration+law+OR+USCIS+OR+visa&hl=en-US&gl=US&ceid=US:en"
)
DEFAULT_SUMMARY_PROMPT = (
    "You summarize news articles for a news digest. "
    "Write a neutral summary of 2-4 sentences covering the key facts, "
    "then suggest up to 5 short topical tags. "
    "Respond exactly in this format:\n"
    "SUMMARY: <summary text>\n"
    "TAGS: <comma,separated,tags>"
)
EXTRACTION_BACKENDS = frozenset({"service", "local"})


@dataclass(slots=True)
class FeedSettings:
    """Upstream feed settings."""

    feed_url: str = DEFAULT_FEED_URL
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class ResolverSettings:
    """Proxy-link resolution settings."""

    proxy_hosts: tuple[str, ...] = ("news.google.com",)
    proxy_query_params: tuple[str, ...] = ("url", "u")
    max_redirects: int = 10
    timeout_seconds: float = 10.0
    batch_size: int = 5
    batch_delay_seconds: float = 1.0


@dataclass(slots=True)
class ExtractionSettings:
    """Content extraction service settings."""

    backend: str = "service"
    api_url: str = "https://api.spider.cloud/crawl"
    api_key: str = ""
    timeout_seconds: float = 60.0
    max_retries: int = 2


@dataclass(slots=True)
class SummarizerSettings:
    """Text-generation service settings."""

    api_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    min_content_chars: int = 100
    max_input_chars: int = 8_000
    max_tokens: int = 300
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    timeout_seconds: float = 20.0
    system_prompt: str = DEFAULT_SUMMARY_PROMPT


@dataclass(slots=True)
class ArticleDefaults:
    """Metadata applied to articles when neither feed nor extraction provides it."""

    region: str = "US"
    timezone: str = "UTC"
    author: str = "Unknown"
    categories: tuple[str, ...] = ()


@dataclass(slots=True)
class PipelineSettings:
    """Cycle-level pipeline settings."""

    max_items_per_cycle: int = 0
    active_run_stale_after_seconds: int = 3_600


@dataclass(slots=True)
class SchedulerSettings:
    """Periodic trigger settings."""

    cron: str = "*/30 * * * *"
    run_on_startup: bool = True
    timezone: str = "UTC"
    graceful_shutdown_seconds: float = 30.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".news_harvest.db")
    feed: FeedSettings = field(default_factory=FeedSettings)
    resolver: ResolverSettings = field(default_factory=ResolverSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    summarizer: SummarizerSettings = field(default_factory=SummarizerSettings)
    defaults: ArticleDefaults = field(default_factory=ArticleDefaults)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("NEWS_HARVEST_DB_PATH", ".news_harvest.db")),
            feed=FeedSettings(
                feed_url=os.getenv("NEWS_HARVEST_FEED_URL", DEFAULT_FEED_URL).strip(),
                max_retries=int(os.getenv("NEWS_HARVEST_FEED_MAX_RETRIES", "3")),
                retry_backoff_seconds=float(
                    os.getenv("NEWS_HARVEST_FEED_RETRY_BACKOFF_SECONDS", "1.0"),
                ),
                request_timeout_seconds=float(
                    os.getenv("NEWS_HARVEST_FEED_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
            ),
            resolver=ResolverSettings(
                proxy_hosts=_env_csv("NEWS_HARVEST_RESOLVER_PROXY_HOSTS", ("news.google.com",)),
                proxy_query_params=_env_csv(
                    "NEWS_HARVEST_RESOLVER_PROXY_QUERY_PARAMS",
                    ("url", "u"),
                ),
                max_redirects=int(os.getenv("NEWS_HARVEST_RESOLVER_MAX_REDIRECTS", "10")),
                timeout_seconds=float(os.getenv("NEWS_HARVEST_RESOLVER_TIMEOUT_SECONDS", "10.0")),
                batch_size=int(os.getenv("NEWS_HARVEST_RESOLVER_BATCH_SIZE", "5")),
                batch_delay_seconds=float(
                    os.getenv("NEWS_HARVEST_RESOLVER_BATCH_DELAY_SECONDS", "1.0"),
                ),
            ),
            extraction=ExtractionSettings(
                backend=os.getenv("NEWS_HARVEST_EXTRACTION_BACKEND", "service").strip().lower(),
                api_url=os.getenv("NEWS_HARVEST_EXTRACTION_API_URL", "https://api.spider.cloud/crawl"),
                api_key=os.getenv("NEWS_HARVEST_EXTRACTION_API_KEY", ""),
                timeout_seconds=float(os.getenv("NEWS_HARVEST_EXTRACTION_TIMEOUT_SECONDS", "60.0")),
                max_retries=int(os.getenv("NEWS_HARVEST_EXTRACTION_MAX_RETRIES", "2")),
            ),
            summarizer=SummarizerSettings(
                api_url=os.getenv("NEWS_HARVEST_SUMMARIZER_API_URL", "https://api.openai.com/v1"),
                api_key=os.getenv("NEWS_HARVEST_SUMMARIZER_API_KEY", ""),
                model=os.getenv("NEWS_HARVEST_SUMMARIZER_MODEL", "gpt-4o-mini"),
                min_content_chars=int(os.getenv("NEWS_HARVEST_SUMMARIZER_MIN_CONTENT_CHARS", "100")),
                max_input_chars=int(os.getenv("NEWS_HARVEST_SUMMARIZER_MAX_INPUT_CHARS", "8000")),
                max_tokens=int(os.getenv("NEWS_HARVEST_SUMMARIZER_MAX_TOKENS", "300")),
                max_attempts=int(os.getenv("NEWS_HARVEST_SUMMARIZER_MAX_ATTEMPTS", "3")),
                backoff_seconds=float(os.getenv("NEWS_HARVEST_SUMMARIZER_BACKOFF_SECONDS", "1.0")),
                timeout_seconds=float(os.getenv("NEWS_HARVEST_SUMMARIZER_TIMEOUT_SECONDS", "20.0")),
                system_prompt=os.getenv("NEWS_HARVEST_SUMMARIZER_PROMPT", DEFAULT_SUMMARY_PROMPT),
            ),
            defaults=ArticleDefaults(
                region=os.getenv("NEWS_HARVEST_DEFAULT_REGION", "US"),
                timezone=os.getenv("NEWS_HARVEST_DEFAULT_TIMEZONE", "UTC"),
                author=os.getenv("NEWS_HARVEST_DEFAULT_AUTHOR", "Unknown"),
                categories=_env_csv("NEWS_HARVEST_DEFAULT_CATEGORIES", ()),
            ),
            pipeline=PipelineSettings(
                max_items_per_cycle=int(os.getenv("NEWS_HARVEST_MAX_ITEMS_PER_CYCLE", "0")),
                active_run_stale_after_seconds=int(
                    os.getenv("NEWS_HARVEST_ACTIVE_RUN_STALE_AFTER_SECONDS", "3600"),
                ),
            ),
            scheduler=SchedulerSettings(
                cron=os.getenv("NEWS_HARVEST_SCHEDULE_CRON", "*/30 * * * *").strip(),
                run_on_startup=_env_bool("NEWS_HARVEST_RUN_ON_STARTUP", default=True),
                timezone=os.getenv("NEWS_HARVEST_SCHEDULE_TIMEZONE", "UTC"),
                graceful_shutdown_seconds=float(
                    os.getenv("NEWS_HARVEST_GRACEFUL_SHUTDOWN_SECONDS", "30.0"),
                ),
            ),
            log_level=os.getenv("NEWS_HARVEST_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate_for_cycle(self, override_feed_url: str | None = None) -> None:
        """Raise configuration error if the pipeline cannot run with these settings."""

        _validate_http_url(override_feed_url or self.feed.feed_url, label="feed URL")
        if self.feed.max_retries <= 0:
            raise ValueError("NEWS_HARVEST_FEED_MAX_RETRIES must be > 0.")
        if self.resolver.batch_size <= 0:
            raise ValueError("NEWS_HARVEST_RESOLVER_BATCH_SIZE must be > 0.")
        if self.resolver.batch_delay_seconds < 0:
            raise ValueError("NEWS_HARVEST_RESOLVER_BATCH_DELAY_SECONDS must be >= 0.")
        if not 0 < self.resolver.max_redirects <= 20:
            raise ValueError("NEWS_HARVEST_RESOLVER_MAX_REDIRECTS must be between 1 and 20.")
        if self.resolver.timeout_seconds <= 0:
            raise ValueError("NEWS_HARVEST_RESOLVER_TIMEOUT_SECONDS must be > 0.")

        if self.extraction.backend not in EXTRACTION_BACKENDS:
            raise ValueError(
                "Invalid NEWS_HARVEST_EXTRACTION_BACKEND: "
                f"{self.extraction.backend!r}. Expected one of {sorted(EXTRACTION_BACKENDS)}.",
            )
        if self.extraction.backend == "service":
            _validate_http_url(self.extraction.api_url, label="extraction API URL")
            if not self.extraction.api_key:
                raise ValueError(
                    "Extraction API key is required for the service backend. "
                    "Set NEWS_HARVEST_EXTRACTION_API_KEY or NEWS_HARVEST_EXTRACTION_BACKEND=local.",
                )

        _validate_http_url(self.summarizer.api_url, label="summarizer API URL")
        if not self.summarizer.api_key:
            raise ValueError("Summarizer API key is required. Set NEWS_HARVEST_SUMMARIZER_API_KEY.")
        if self.summarizer.max_attempts <= 0:
            raise ValueError("NEWS_HARVEST_SUMMARIZER_MAX_ATTEMPTS must be > 0.")
        if self.summarizer.min_content_chars < 0:
            raise ValueError("NEWS_HARVEST_SUMMARIZER_MIN_CONTENT_CHARS must be >= 0.")
        if self.summarizer.max_input_chars <= 0:
            raise ValueError("NEWS_HARVEST_SUMMARIZER_MAX_INPUT_CHARS must be > 0.")

        if self.pipeline.max_items_per_cycle < 0:
            raise ValueError("NEWS_HARVEST_MAX_ITEMS_PER_CYCLE must be >= 0.")
        if self.pipeline.active_run_stale_after_seconds <= 0:
            raise ValueError("NEWS_HARVEST_ACTIVE_RUN_STALE_AFTER_SECONDS must be > 0.")

    def validate_schedule(self) -> None:
        """Raise configuration error if the cron expression is not a 5-field crontab."""

        if len(self.scheduler.cron.split()) != 5:
            raise ValueError(
                f"Invalid NEWS_HARVEST_SCHEDULE_CRON: {self.scheduler.cron!r}. "
                "Expected a 5-field crontab expression.",
            )
        if self.scheduler.graceful_shutdown_seconds < 0:
            raise ValueError("NEWS_HARVEST_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")


def _validate_http_url(value: str, *, label: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {label}: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_csv(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    values: list[str] = []
    for part in raw.split(","):
        normalized = part.strip()
        if normalized and normalized not in values:
            values.append(normalized)
    return tuple(values)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
