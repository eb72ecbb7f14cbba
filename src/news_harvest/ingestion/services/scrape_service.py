"""Full-content retrieval for canonical article URLs."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from news_harvest.config import ExtractionSettings
from news_harvest.http.fetcher import HttpFetcher
from news_harvest.http.html_extractor import extract_article
from news_harvest.ingestion.cleaning import extract_domain
from news_harvest.ingestion.errors import ExtractionFailed
from news_harvest.ingestion.models import ScrapedContent

_WRAPPER_TAGS_RE = re.compile(r"</?\s*(?:body|html)\s*>", re.IGNORECASE)
logger = logging.getLogger(__name__)


class ExtractionClient(Protocol):
    """Backend that turns one URL into raw extracted content."""

    def extract(self, url: str) -> ScrapedContent:
        """Raise ExtractionFailed when the backend cannot deliver content."""
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class ServiceExtractionClient:
    """Hosted extraction API returning markdown for one page per call."""

    def __init__(
        self,
        settings: ExtractionSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._client = httpx.Client(
            timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {settings.api_key}",
                "Content-Type": "application/json",
            },
            transport=transport or httpx.HTTPTransport(retries=settings.max_retries),
        )

    def extract(self, url: str) -> ScrapedContent:
        payload = {
            "url": url,
            "return_format": "markdown",
            "readability": True,
            "limit": 1,
        }
        try:
            response = self._client.post(self.settings.api_url, json=payload)
        except httpx.TimeoutException as exc:
            raise ExtractionFailed(
                message=f"Extraction timed out for {url}",
                code="timeout",
                url=url,
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionFailed(
                message=f"Extraction transport error for {url}: {exc}",
                code="transport",
                url=url,
            ) from exc

        if not response.is_success:
            raise ExtractionFailed(
                message=f"Extraction service returned HTTP {response.status_code} for {url}",
                code=str(response.status_code),
                url=url,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ExtractionFailed(
                message=f"Extraction service returned invalid JSON for {url}",
                code="invalid_response",
                url=url,
            ) from exc

        record = _first_record(body)
        if record is None:
            raise ExtractionFailed(
                message=f"Extraction service returned no record for {url}",
                code="empty_response",
                url=url,
            )

        metadata = record.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}
        return ScrapedContent(
            url=url,
            content=str(record.get("content") or ""),
            title=str(record.get("title") or metadata.get("title") or ""),
            site_name=str(record.get("siteName") or metadata.get("siteName") or ""),
            author=_optional_str(metadata.get("author")),
            published_at=_parse_timestamp(_optional_str(metadata.get("publishedTime"))),
        )

    def close(self) -> None:
        self._client.close()


class LocalExtractionClient:
    """Direct page download with in-process text extraction."""

    def __init__(
        self,
        settings: ExtractionSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._fetcher = HttpFetcher(
            timeout_seconds=settings.timeout_seconds,
            max_retries=settings.max_retries,
            transport=transport,
        )

    def extract(self, url: str) -> ScrapedContent:
        fetched = self._fetcher.fetch(url)
        if not fetched.is_success:
            raise ExtractionFailed(
                message=f"Download failed for {url}: {fetched.error}",
                code="download_failed",
                url=url,
            )

        extracted = extract_article(fetched.content, url=fetched.final_url)
        if not extracted.is_success:
            raise ExtractionFailed(
                message=f"No article text extracted from {url}: {extracted.error}",
                code="no_content",
                url=url,
            )
        return ScrapedContent(
            url=url,
            content=extracted.text,
            title=extracted.title or "",
            site_name=extracted.site_name or "",
            author=extracted.author,
            published_at=extracted.published_at,
        )

    def close(self) -> None:
        self._fetcher.close()


class ContentFetcher:
    """Validates backend output and fills derived metadata."""

    def __init__(self, client: ExtractionClient) -> None:
        self.client = client

    def scrape(self, url: str) -> ScrapedContent:
        scraped = self.client.extract(url)
        if is_degenerate_content(scraped.content):
            raise ExtractionFailed(
                message=f"Extraction returned no usable content for {url}",
                code="empty_content",
                url=url,
            )
        if not scraped.site_name.strip():
            scraped.site_name = extract_domain(url)
        scraped.title = scraped.title.strip()
        logger.info("Scraped %d chars from %s", len(scraped.content), url)
        return scraped

    def close(self) -> None:
        self.client.close()


def build_content_fetcher(
    settings: ExtractionSettings,
    *,
    transport: httpx.BaseTransport | None = None,
) -> ContentFetcher:
    """Content fetcher for the configured extraction backend."""

    if settings.backend == "local":
        return ContentFetcher(LocalExtractionClient(settings, transport=transport))
    return ContentFetcher(ServiceExtractionClient(settings, transport=transport))


def is_degenerate_content(content: str) -> bool:
    """Whether content is empty once bare body/html wrapper tags are removed."""

    return not _WRAPPER_TAGS_RE.sub("", content or "").strip()


def _first_record(body: Any) -> dict[str, Any] | None:
    if isinstance(body, list):
        body = body[0] if body else None
    if isinstance(body, dict):
        return body
    return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparseable published time %r", value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
