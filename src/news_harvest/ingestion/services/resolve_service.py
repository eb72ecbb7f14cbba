"""Batched resolution stage for the ingestion pipeline."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from news_harvest.config import ResolverSettings
from news_harvest.ingestion.models import FeedEntry, ResolvedItem
from news_harvest.ingestion.resolver import UrlResolver

logger = logging.getLogger(__name__)


class ResolveStageService:
    """Resolves feed entries in fixed-size groups with a pause between groups."""

    def __init__(
        self,
        *,
        resolver: UrlResolver,
        resolver_settings: ResolverSettings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.resolver_settings = resolver_settings
        self._sleep = sleep

    def resolve_entries(self, entries: list[FeedEntry]) -> list[ResolvedItem]:
        """Resolve every entry, preserving feed order."""

        batch_size = max(1, self.resolver_settings.batch_size)
        results: list[ResolvedItem] = []
        with ThreadPoolExecutor(
            max_workers=batch_size,
            thread_name_prefix="resolver",
        ) as executor:
            for start in range(0, len(entries), batch_size):
                if start and self.resolver_settings.batch_delay_seconds > 0:
                    self._sleep(self.resolver_settings.batch_delay_seconds)
                batch = entries[start : start + batch_size]
                results.extend(executor.map(self.resolver.resolve_entry, batch))
                logger.debug(
                    "Resolved batch %d-%d of %d entries",
                    start + 1,
                    start + len(batch),
                    len(entries),
                )
        return results
