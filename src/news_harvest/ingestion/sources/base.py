"""Common feed reader contract."""

from __future__ import annotations

from typing import Protocol

from news_harvest.ingestion.models import FeedEntry


class FeedReader(Protocol):
    """Interface for the upstream feed."""

    feed_url: str

    def fetch_entries(self) -> list[FeedEntry]:
        """Fetch and parse the feed once.

        Raises FeedUnavailable on network or parse errors.
        """
        raise NotImplementedError
