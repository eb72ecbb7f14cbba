"""SQLModel ORM tables for harvest storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint, text
from sqlmodel import Field, SQLModel


class IngestionRun(SQLModel, table=True):
    __tablename__ = "ingestion_runs"  # type: ignore[bad-override]
    __table_args__ = (
        Index(
            "uq_ingestion_runs_single_running",
            "status",
            unique=True,
            sqlite_where=text("status = 'running'"),
        ),
    )

    run_id: str = Field(primary_key=True)
    feed_url: str
    status: str = Field(index=True)
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    heartbeat_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
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
    error_summary: str | None = None


class Article(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("headline", "source_name", name="uq_articles_headline_source"),
    )

    article_id: str = Field(primary_key=True)
    headline: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    summary: str = Field(sa_column=Column(Text, nullable=False))
    tags_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    source_name: str = Field(index=True)
    author: str
    url: str = Field(index=True)
    published_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    region: str
    timezone: str
    content_length: int
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ArticleCategory(SQLModel, table=True):
    __tablename__ = "article_categories"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("article_id", "category", name="uq_article_categories_article_category"),
    )

    id: int | None = Field(default=None, primary_key=True)
    article_id: str = Field(
        sa_column=Column(
            ForeignKey("articles.article_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    category: str = Field(index=True)


class ProcessedUrl(SQLModel, table=True):
    __tablename__ = "processed_urls"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(sa_column=Column(Text, nullable=False, unique=True))
    processed_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    successful: bool = Field(index=True)
    article_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("articles.article_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    attempts: int = 1
    error_summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
