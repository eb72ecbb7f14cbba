"""SQLModel-backed storage facade for the harvest pipeline."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, delete, select

from news_harvest.ingestion.errors import (
    CycleAlreadyRunning,
    PersistenceConflict,
    PersistenceFailure,
)
from news_harvest.ingestion.models import (
    ArticleView,
    ArticleWrite,
    CycleCounters,
    CycleRunView,
    LedgerRecord,
    LedgerStats,
    RunStatus,
    StoredArticle,
    UpsertAction,
)
from news_harvest.ingestion.storage.alembic_runner import upgrade_head
from news_harvest.ingestion.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from news_harvest.ingestion.storage.sqlmodel_models import (
    Article,
    ArticleCategory,
    IngestionRun,
    ProcessedUrl,
)

logger = logging.getLogger(__name__)
DEFAULT_ACTIVE_RUN_STALE_AFTER = timedelta(hours=1)
# SQLite caps bound parameters per statement.
LEDGER_QUERY_CHUNK_SIZE = 500
ERROR_SUMMARY_MAX_CHARS = 1000


class SQLiteRepository:
    """Facade that persists cycle runs, the URL ledger and articles."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    # Cycle runs

    def start_run(
        self,
        feed_url: str,
        *,
        stale_after: timedelta = DEFAULT_ACTIVE_RUN_STALE_AFTER,
    ) -> str:
        """Claim the single running-cycle slot, reclaiming it from a stale holder."""

        if stale_after.total_seconds() <= 0:
            raise ValueError("stale_after must be > 0")

        while True:
            run_id = str(uuid4())
            with Session(self.engine) as session:
                now = utc_now()
                session.add(
                    IngestionRun(
                        run_id=run_id,
                        feed_url=feed_url,
                        status=RunStatus.RUNNING.value,
                        started_at=now,
                        heartbeat_at=now,
                    ),
                )
                try:
                    session.commit()
                    return run_id
                except IntegrityError as error:
                    session.rollback()
                    active_run = session.exec(
                        select(IngestionRun).where(
                            IngestionRun.status == RunStatus.RUNNING.value,
                        ),
                    ).one_or_none()
                    if active_run is None:
                        continue

                    heartbeat_at = to_utc_aware_datetime(
                        active_run.heartbeat_at or active_run.started_at,
                    )
                    if datetime.now(tz=UTC) - heartbeat_at > stale_after:
                        reclaimed_at = utc_now()
                        active_run.status = RunStatus.FAILED.value
                        active_run.finished_at = reclaimed_at
                        active_run.heartbeat_at = reclaimed_at
                        active_run.error_summary = (
                            "Auto-recovered stale running cycle after crash/interruption."
                        )
                        session.add(active_run)
                        session.commit()
                        logger.warning(
                            "Recovered stale running cycle %s (heartbeat_at=%s)",
                            active_run.run_id,
                            heartbeat_at.isoformat(),
                        )
                        continue

                    raise CycleAlreadyRunning(
                        "Another ingestion cycle is already running "
                        f"(run_id={active_run.run_id}, heartbeat_at={heartbeat_at.isoformat()}).",
                    ) from error

    def touch_run(self, run_id: str) -> None:
        try:
            with Session(self.engine) as session:
                run = session.exec(
                    select(IngestionRun).where(
                        IngestionRun.run_id == run_id,
                        IngestionRun.status == RunStatus.RUNNING.value,
                    ),
                ).one_or_none()
                if run is None:
                    return
                run.heartbeat_at = utc_now()
                session.add(run)
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(message=f"Heartbeat failed for run {run_id}: {exc}") from exc

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        counters: CycleCounters,
        error_summary: str | None = None,
    ) -> None:
        with Session(self.engine) as session:
            run = session.get(IngestionRun, run_id)
            if run is None:
                raise RuntimeError(f"Run not found: {run_id}")

            now = utc_now()
            run.status = status.value
            run.finished_at = now
            run.heartbeat_at = now
            run.entries_count = counters.entries_count
            run.resolved_count = counters.resolved_count
            run.unresolved_count = counters.unresolved_count
            run.already_seen_count = counters.already_seen_count
            run.new_count = counters.new_count
            run.done_count = counters.done_count
            run.failed_count = counters.failed_count
            run.deferred_count = counters.deferred_count
            run.inserted_count = counters.inserted_count
            run.updated_count = counters.updated_count
            run.unchanged_count = counters.unchanged_count
            run.error_summary = _truncate(error_summary)
            session.add(run)
            session.commit()

    def list_recent_runs(self, *, limit: int = 5) -> list[CycleRunView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(IngestionRun)
                .order_by(col(IngestionRun.started_at).desc(), col(IngestionRun.run_id).desc())
                .limit(max(1, limit)),
            ).all()

        return [
            CycleRunView(
                run_id=row.run_id,
                status=row.status,
                started_at=to_utc_aware_datetime(row.started_at),
                finished_at=(
                    to_utc_aware_datetime(row.finished_at) if row.finished_at is not None else None
                ),
                entries_count=row.entries_count,
                new_count=row.new_count,
                done_count=row.done_count,
                failed_count=row.failed_count,
                error_summary=row.error_summary,
            )
            for row in rows
        ]

    # URL ledger

    def is_processed(self, url: str) -> bool:
        try:
            with Session(self.engine) as session:
                found = session.exec(
                    select(ProcessedUrl.id).where(ProcessedUrl.url == url),
                ).first()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(message=f"Ledger read failed for {url}: {exc}") from exc
        return found is not None

    def unprocessed_of(self, urls: Iterable[str]) -> set[str]:
        """Subset of urls with no ledger record, using one query per chunk."""

        candidates = list(dict.fromkeys(urls))
        seen: set[str] = set()
        try:
            with Session(self.engine) as session:
                for start in range(0, len(candidates), LEDGER_QUERY_CHUNK_SIZE):
                    chunk = candidates[start : start + LEDGER_QUERY_CHUNK_SIZE]
                    seen.update(
                        session.exec(
                            select(ProcessedUrl.url).where(col(ProcessedUrl.url).in_(chunk)),
                        ).all(),
                    )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(message=f"Ledger lookup failed: {exc}") from exc
        return {url for url in candidates if url not in seen}

    def record_outcome(
        self,
        url: str,
        *,
        success: bool,
        article_id: str | None = None,
        error_summary: str | None = None,
    ) -> None:
        """Insert the ledger row, or update it in place when the URL already exists."""

        summary = None if success else _truncate(error_summary)
        try:
            try:
                self._insert_ledger_row(
                    url=url,
                    success=success,
                    article_id=article_id,
                    error_summary=summary,
                )
                return
            except PersistenceConflict:
                logger.debug("Ledger row for %s already exists, updating", url)

            with Session(self.engine) as session:
                result = session.exec(
                    sa_update(ProcessedUrl)
                    .where(col(ProcessedUrl.url) == url)
                    .values(
                        processed_at=to_db_datetime(utc_now()),
                        successful=success,
                        article_id=article_id,
                        attempts=col(ProcessedUrl.attempts) + 1,
                        error_summary=summary,
                    ),
                )
                session.commit()
            if result.rowcount != 1:
                raise PersistenceFailure(message=f"Ledger row for {url} disappeared during update")
        except SQLAlchemyError as exc:
            raise PersistenceFailure(message=f"Ledger write failed for {url}: {exc}") from exc

    def get_ledger_record(self, url: str) -> LedgerRecord | None:
        with Session(self.engine) as session:
            row = session.exec(select(ProcessedUrl).where(ProcessedUrl.url == url)).one_or_none()
        if row is None:
            return None
        return _to_ledger_record(row)

    def clear_ledger(self, *, url: str | None = None, failed_only: bool = False) -> int:
        """Delete ledger rows so the matching URLs are attempted again."""

        statement = delete(ProcessedUrl)
        if url is not None:
            statement = statement.where(col(ProcessedUrl.url) == url)
        if failed_only:
            statement = statement.where(col(ProcessedUrl.successful) == False)  # noqa: E712
        with Session(self.engine) as session:
            result = session.exec(statement)
            session.commit()
        logger.info("Cleared %d ledger records", result.rowcount)
        return int(result.rowcount)

    def ledger_stats(self) -> LedgerStats:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ProcessedUrl.successful, func.count())
                .group_by(ProcessedUrl.successful),
            ).all()

        stats = LedgerStats()
        for successful, count in rows:
            stats.total += count
            if successful:
                stats.succeeded += count
            else:
                stats.failed += count
        return stats

    # Articles

    def save_article(self, article: ArticleWrite) -> StoredArticle:
        """Upsert by (headline, source_name); rewrite only when summary or content changed."""

        try:
            with Session(self.engine) as session:
                existing = self._find_article(session, article)
                if existing is None:
                    article_id = self._try_insert_article(session=session, article=article)
                    if article_id is not None:
                        return StoredArticle(article_id=article_id, action=UpsertAction.INSERTED)
                    existing = self._find_article(session, article)
                    if existing is None:
                        raise PersistenceFailure(
                            message=f"Failed to resolve article after insert conflict: {article.url}",
                        )

                if existing.summary == article.summary and existing.content == article.content:
                    return StoredArticle(
                        article_id=existing.article_id,
                        action=UpsertAction.SKIPPED,
                    )

                existing.content = article.content
                existing.summary = article.summary
                existing.tags_json = json.dumps(article.tags, ensure_ascii=False)
                existing.author = article.author
                existing.url = article.url
                existing.published_at = to_db_datetime(article.published_at)
                existing.region = article.region
                existing.timezone = article.timezone
                existing.content_length = article.content_length
                existing.updated_at = utc_now()
                session.add(existing)
                self._replace_categories(
                    session=session,
                    article_id=existing.article_id,
                    categories=article.categories,
                )
                session.commit()
                return StoredArticle(article_id=existing.article_id, action=UpsertAction.UPDATED)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(message=f"Article save failed for {article.url}: {exc}") from exc

    def list_recent_articles(self, *, limit: int = 10) -> list[ArticleView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Article)
                .order_by(col(Article.published_at).desc(), col(Article.article_id).desc())
                .limit(max(1, limit)),
            ).all()
            return self._to_views(session, rows)

    def list_articles_by_category(self, category: str, *, limit: int = 10) -> list[ArticleView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Article)
                .join(ArticleCategory, col(ArticleCategory.article_id) == col(Article.article_id))
                .where(func.lower(ArticleCategory.category) == category.strip().lower())
                .order_by(col(Article.published_at).desc(), col(Article.article_id).desc())
                .limit(max(1, limit)),
            ).all()
            return self._to_views(session, rows)

    def _find_article(self, session: Session, article: ArticleWrite) -> Article | None:
        return session.exec(
            select(Article).where(
                Article.headline == article.headline,
                Article.source_name == article.source_name,
            ),
        ).one_or_none()

    def _try_insert_article(self, *, session: Session, article: ArticleWrite) -> str | None:
        article_id = str(uuid4())
        now = utc_now()
        session.add(
            Article(
                article_id=article_id,
                headline=article.headline,
                content=article.content,
                summary=article.summary,
                tags_json=json.dumps(article.tags, ensure_ascii=False),
                source_name=article.source_name,
                author=article.author,
                url=article.url,
                published_at=to_db_datetime(article.published_at),
                region=article.region,
                timezone=article.timezone,
                content_length=article.content_length,
                created_at=now,
                updated_at=now,
            ),
        )
        try:
            # Parent row first so the category foreign keys resolve.
            session.flush()
            self._replace_categories(
                session=session,
                article_id=article_id,
                categories=article.categories,
            )
            session.commit()
            return article_id
        except IntegrityError:
            session.rollback()
            return None

    def _replace_categories(
        self,
        *,
        session: Session,
        article_id: str,
        categories: list[str],
    ) -> None:
        session.exec(delete(ArticleCategory).where(col(ArticleCategory.article_id) == article_id))
        for category in dict.fromkeys(item.strip() for item in categories if item.strip()):
            session.add(ArticleCategory(article_id=article_id, category=category))

    def _insert_ledger_row(
        self,
        *,
        url: str,
        success: bool,
        article_id: str | None,
        error_summary: str | None,
    ) -> None:
        with Session(self.engine) as session:
            session.add(
                ProcessedUrl(
                    url=url,
                    processed_at=utc_now(),
                    successful=success,
                    article_id=article_id,
                    attempts=1,
                    error_summary=error_summary,
                ),
            )
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                if not self._ledger_row_exists(session, url):
                    raise
                raise PersistenceConflict(message=f"Ledger row exists for {url}") from error

    def _ledger_row_exists(self, session: Session, url: str) -> bool:
        return session.exec(select(ProcessedUrl.id).where(ProcessedUrl.url == url)).first() is not None

    def _to_views(self, session: Session, rows: Iterable[Article]) -> list[ArticleView]:
        articles = list(rows)
        categories: dict[str, list[str]] = {article.article_id: [] for article in articles}
        if articles:
            category_rows = session.exec(
                select(ArticleCategory)
                .where(col(ArticleCategory.article_id).in_(list(categories)))
                .order_by(col(ArticleCategory.id).asc()),
            ).all()
            for row in category_rows:
                categories[row.article_id].append(row.category)

        return [
            ArticleView(
                article_id=article.article_id,
                headline=article.headline,
                summary=article.summary,
                tags=json.loads(article.tags_json or "[]"),
                categories=categories[article.article_id],
                source_name=article.source_name,
                author=article.author,
                url=article.url,
                published_at=to_utc_aware_datetime(article.published_at),
                region=article.region,
                timezone=article.timezone,
                updated_at=to_utc_aware_datetime(article.updated_at),
            )
            for article in articles
        ]


def _to_ledger_record(row: ProcessedUrl) -> LedgerRecord:
    return LedgerRecord(
        url=row.url,
        processed_at=to_utc_aware_datetime(row.processed_at),
        successful=row.successful,
        article_id=row.article_id,
        attempts=row.attempts,
        error_summary=row.error_summary,
    )


def _truncate(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    if len(text) > ERROR_SUMMARY_MAX_CHARS:
        return text[: ERROR_SUMMARY_MAX_CHARS - 3] + "..."
    return text or None
