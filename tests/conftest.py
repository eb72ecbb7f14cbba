"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from news_harvest.config import ExtractionSettings, Settings, SummarizerSettings
from news_harvest.ingestion.repository import SQLiteRepository


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[SQLiteRepository]:
    repo = SQLiteRepository(tmp_path / "harvest.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings with credentials filled and no pauses between resolver batches."""

    settings = Settings(
        db_path=tmp_path / "harvest.db",
        extraction=ExtractionSettings(api_key="extract-key"),
        summarizer=SummarizerSettings(api_key="summary-key", backoff_seconds=0.0),
    )
    settings.resolver.batch_delay_seconds = 0.0
    return settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("NEWS_HARVEST_"):
            monkeypatch.delenv(name, raising=False)
