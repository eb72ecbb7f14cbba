"""HTML to article text extraction using trafilatura."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

import trafilatura

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExtractionResult:
    """Result of HTML text extraction."""

    text: str
    is_success: bool
    title: str | None = None
    site_name: str | None = None
    author: str | None = None
    published_at: datetime | None = None
    error: str | None = None


def extract_article(
    html: str,
    *,
    url: str | None = None,
    output_format: str = "markdown",
    max_chars: int = 0,
) -> ExtractionResult:
    """Extract main content and metadata from HTML.

    Falls back to a recall-oriented extraction if the precise pass finds nothing.
    """

    if not html or not html.strip():
        return ExtractionResult(text="", is_success=False, error="empty HTML input")

    try:
        text = trafilatura.extract(
            html,
            url=url,
            output_format=output_format,
            include_tables=True,
            include_links=False,
            favor_precision=True,
            deduplicate=True,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura.extract failed for %s: %s", url or "<unknown>", exc)
        text = None

    if not text:
        try:
            text = trafilatura.extract(
                html,
                url=url,
                output_format=output_format,
                include_tables=True,
                favor_recall=True,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("trafilatura fallback failed for %s: %s", url or "<unknown>", exc)
            return ExtractionResult(text="", is_success=False, error=f"extraction failed: {exc}")

    if not text:
        return ExtractionResult(text="", is_success=False, error="no content extracted")

    if max_chars > 0 and len(text) > max_chars:
        text = text[:max_chars].rstrip()

    result = ExtractionResult(text=text, is_success=True)
    _apply_metadata(result, html=html, url=url)
    return result


def _apply_metadata(result: ExtractionResult, *, html: str, url: str | None) -> None:
    try:
        metadata = trafilatura.extract_metadata(html, default_url=url)
    except Exception as exc:  # noqa: BLE001
        logger.debug("trafilatura metadata extraction failed for %s: %s", url or "<unknown>", exc)
        return
    if metadata is None:
        return
    result.title = metadata.title or None
    result.site_name = metadata.sitename or None
    result.author = metadata.author or None
    result.published_at = _parse_date(metadata.date)


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
