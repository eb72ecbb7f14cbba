from __future__ import annotations

import threading
from datetime import UTC, datetime

import allure

from news_harvest.ingestion.models import ArticleWrite
from news_harvest.ingestion.repository import SQLiteRepository

pytestmark = [
    allure.epic("Harvest Cycle"),
    allure.feature("Processed URL Ledger"),
]


def _article(headline: str = "Visa rules change") -> ArticleWrite:
    return ArticleWrite(
        headline=headline,
        content="Body " * 50,
        summary="Summary",
        tags=["visa"],
        categories=["Immigration"],
        source_name="example.com",
        author="Reporter",
        url=f"https://example.com/{headline.replace(' ', '-').lower()}",
        published_at=datetime(2026, 2, 17, 12, 0, tzinfo=UTC),
        region="US",
        timezone="UTC",
    )


def test_record_outcome_inserts_then_updates_single_row(repository: SQLiteRepository) -> None:
    url = "https://example.com/a"
    assert repository.is_processed(url) is False
    assert repository.get_ledger_record(url) is None

    repository.record_outcome(url, success=False, error_summary="extraction_failed: empty")
    failed = repository.get_ledger_record(url)
    assert failed is not None
    assert failed.successful is False
    assert failed.attempts == 1
    assert failed.error_summary == "extraction_failed: empty"
    assert failed.processed_at.tzinfo is not None

    stored = repository.save_article(_article())
    repository.record_outcome(url, success=True, article_id=stored.article_id)

    record = repository.get_ledger_record(url)
    assert record is not None
    assert record.successful is True
    assert record.article_id == stored.article_id
    assert record.attempts == 2
    assert record.error_summary is None
    assert repository.is_processed(url) is True
    assert repository.ledger_stats().total == 1


def test_unprocessed_of_returns_only_unknown_urls(repository: SQLiteRepository) -> None:
    repository.record_outcome("https://example.com/seen-ok", success=True)
    repository.record_outcome("https://example.com/seen-failed", success=False)

    unprocessed = repository.unprocessed_of(
        [
            "https://example.com/seen-ok",
            "https://example.com/new-1",
            "https://example.com/seen-failed",
            "https://example.com/new-2",
            "https://example.com/new-1",
        ],
    )

    assert unprocessed == {"https://example.com/new-1", "https://example.com/new-2"}
    assert repository.unprocessed_of([]) == set()


def test_unprocessed_of_handles_more_urls_than_one_query_chunk(
    repository: SQLiteRepository,
) -> None:
    urls = [f"https://example.com/{index}" for index in range(1_200)]
    for url in urls[::100]:
        repository.record_outcome(url, success=True)

    unprocessed = repository.unprocessed_of(urls)

    assert len(unprocessed) == 1_188
    assert "https://example.com/0" not in unprocessed
    assert "https://example.com/1100" not in unprocessed


def test_concurrent_record_outcome_yields_one_record(repository: SQLiteRepository) -> None:
    url = "https://example.com/contended"
    workers = 8
    barrier = threading.Barrier(workers)
    errors: list[BaseException] = []

    def _record(index: int) -> None:
        barrier.wait()
        try:
            repository.record_outcome(url, success=index % 2 == 0, error_summary=f"worker {index}")
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=_record, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    stats = repository.ledger_stats()
    assert stats.total == 1
    record = repository.get_ledger_record(url)
    assert record is not None
    assert record.attempts == workers
    failed_summaries = {f"worker {index}" for index in range(workers) if index % 2}
    if record.successful:
        assert record.error_summary is None
    else:
        assert record.error_summary in failed_summaries

    repository.record_outcome(url, success=False, error_summary="final retry")

    latest = repository.get_ledger_record(url)
    assert latest is not None
    assert latest.successful is False
    assert latest.error_summary == "final retry"
    assert latest.attempts == workers + 1
    assert repository.ledger_stats().total == 1


def test_clear_ledger_by_url_and_failed_only(repository: SQLiteRepository) -> None:
    repository.record_outcome("https://example.com/ok", success=True)
    repository.record_outcome("https://example.com/bad-1", success=False, error_summary="x")
    repository.record_outcome("https://example.com/bad-2", success=False, error_summary="y")

    assert repository.clear_ledger(url="https://example.com/bad-1") == 1
    assert repository.is_processed("https://example.com/bad-1") is False

    assert repository.clear_ledger(failed_only=True) == 1
    assert repository.is_processed("https://example.com/bad-2") is False
    assert repository.is_processed("https://example.com/ok") is True

    assert repository.clear_ledger() == 1
    assert repository.ledger_stats().total == 0


def test_ledger_stats_counts_outcomes(repository: SQLiteRepository) -> None:
    repository.record_outcome("https://example.com/1", success=True)
    repository.record_outcome("https://example.com/2", success=True)
    repository.record_outcome("https://example.com/3", success=False)

    stats = repository.ledger_stats()

    assert (stats.total, stats.succeeded, stats.failed) == (3, 2, 1)


def test_long_error_summary_is_truncated(repository: SQLiteRepository) -> None:
    repository.record_outcome("https://example.com/long", success=False, error_summary="e" * 5000)

    record = repository.get_ledger_record("https://example.com/long")

    assert record is not None
    assert record.error_summary is not None
    assert len(record.error_summary) == 1000
    assert record.error_summary.endswith("...")
