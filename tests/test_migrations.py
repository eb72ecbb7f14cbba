import sqlite3
from pathlib import Path

import allure

from news_harvest.ingestion.repository import SQLiteRepository

pytestmark = [
    allure.epic("Harvest Cycle"),
    allure.feature("Persist & Run Accounting"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    db_path = tmp_path / "migrations.db"
    repository = SQLiteRepository(db_path)
    repository.init_schema()
    repository.close()

    connection = sqlite3.connect(db_path)
    try:
        version = connection.execute("SELECT version_num FROM alembic_version").fetchone()
        tables = connection.execute(
            """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table'
              AND name IN ('ingestion_runs', 'articles', 'article_categories', 'processed_urls')
            ORDER BY name
            """,
        ).fetchall()
        running_index = connection.execute(
            """
            SELECT sql
            FROM sqlite_master
            WHERE type = 'index' AND name = 'uq_ingestion_runs_single_running'
            """,
        ).fetchone()
    finally:
        connection.close()

    assert version == ("20261017_0001",)
    assert [row[0] for row in tables] == [
        "article_categories",
        "articles",
        "ingestion_runs",
        "processed_urls",
    ]
    assert running_index is not None
    assert "running" in running_index[0]


def test_init_schema_is_repeatable(tmp_path: Path) -> None:
    db_path = tmp_path / "migrations.db"
    for _ in range(2):
        repository = SQLiteRepository(db_path)
        repository.init_schema()
        repository.close()

    repository = SQLiteRepository(db_path)
    try:
        assert repository.ledger_stats().total == 0
    finally:
        repository.close()
