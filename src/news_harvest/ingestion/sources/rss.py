"""RSS/Atom feed reader."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from defusedxml import ElementTree

from news_harvest.ingestion.errors import FeedUnavailable
from news_harvest.ingestion.models import FeedEntry

DEFAULT_TITLE = "No Title"
RETRYABLE_HTTP_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; NewsHarvestBot/1.0)"
_TITLE_SOURCE_SUFFIX_RE = re.compile(r"\s+-\s+([^-]+)$")
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RssFeedConfig:
    """Feed reader settings."""

    feed_url: str
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    request_timeout_seconds: float = 30.0


class RssFeedReader:
    """Reads one RSS/Atom feed into a finite list of feed entries."""

    def __init__(self, config: RssFeedConfig) -> None:
        self.config = config

    @property
    def feed_url(self) -> str:
        return self.config.feed_url

    def fetch_entries(self) -> list[FeedEntry]:
        raw_xml = self._request_feed(self.config.feed_url)
        entries = parse_feed(raw_xml, self.config.feed_url)
        logger.info("Fetched %d entries from %s", len(entries), self.config.feed_url)
        return entries

    def _request_feed(self, feed_url: str) -> str:
        attempt = 0
        last_error: FeedUnavailable | None = None
        while attempt < self.config.max_retries:
            attempt += 1
            try:
                request = Request(  # noqa: S310
                    url=feed_url,
                    headers={
                        "Accept": "application/rss+xml, application/atom+xml, application/xml",
                        "User-Agent": DEFAULT_USER_AGENT,
                    },
                    method="GET",
                )
                with urlopen(request, timeout=self.config.request_timeout_seconds) as response:  # noqa: S310
                    return response.read().decode("utf-8", errors="replace")
            except HTTPError as exc:
                if exc.code not in RETRYABLE_HTTP_STATUS_CODES:
                    raise FeedUnavailable(
                        message=f"Non-retryable feed HTTP error: {exc.code}",
                        code=str(exc.code),
                    ) from exc
                last_error = FeedUnavailable(
                    message=f"Temporary feed HTTP error: {exc.code}",
                    code=str(exc.code),
                )
            except (URLError, TimeoutError) as exc:
                reason = getattr(exc, "reason", exc)
                last_error = FeedUnavailable(
                    message=f"Feed transport error: {reason}",
                    code="transport",
                )

            if attempt < self.config.max_retries:
                logger.warning(
                    "Feed request failed (attempt %d/%d): %s",
                    attempt,
                    self.config.max_retries,
                    last_error,
                )
                time.sleep(self.config.retry_backoff_seconds * attempt)

        if last_error is None:
            raise FeedUnavailable(message="Feed request failed", code="unknown")
        raise last_error


def parse_feed(raw_xml: str, feed_url: str) -> list[FeedEntry]:
    """Parse an RSS 2.0 or Atom document into feed entries."""

    try:
        root = ElementTree.fromstring(raw_xml)
    except ElementTree.ParseError as error:
        raise FeedUnavailable(
            message=f"Invalid RSS/Atom XML from {feed_url}",
            code="invalid_feed_xml",
        ) from error

    root_name = _local_name(root.tag)
    if root_name == "rss":
        return _parse_rss(root)
    if root_name == "feed":
        return _parse_atom(root)

    # Best effort: some feeds omit top-level conventions.
    channel = root.find(".//channel")
    if channel is not None or root.findall(".//item"):
        return _parse_rss(channel if channel is not None else root)
    if any(_local_name(element.tag) == "entry" for element in root.iter()):
        return _parse_atom(root)

    raise FeedUnavailable(
        message=f"Unsupported feed format from {feed_url}",
        code="unsupported_feed_format",
    )


def _parse_rss(root: ElementTree.Element) -> list[FeedEntry]:
    channel = root.find("channel")
    container = channel if channel is not None else root

    results: list[FeedEntry] = []
    for item in container:
        if _local_name(item.tag) != "item":
            continue

        title = _child_text(item, "title") or DEFAULT_TITLE
        link = _child_text(item, "link") or _child_text(item, "guid") or ""
        if not link:
            logger.warning("Skipping feed item without link: %s", title)
            continue
        source_element = _child(item, "source")
        source_label = _child_text(item, "source") or extract_source_from_title(title)
        source_url = None
        if source_element is not None:
            source_url = (source_element.attrib.get("url") or "").strip() or None

        results.append(
            FeedEntry(
                title=title,
                link=link,
                published_at=parse_datetime(_child_text(item, "pubDate")),
                categories=_categories(item),
                source_label=source_label,
                source_url=source_url,
                guid=_child_text(item, "guid"),
            ),
        )
    return results


def _parse_atom(root: ElementTree.Element) -> list[FeedEntry]:
    results: list[FeedEntry] = []
    for entry in root.iter():
        if _local_name(entry.tag) != "entry":
            continue

        title = _child_text(entry, "title") or DEFAULT_TITLE
        link = _atom_link(entry)
        if not link:
            logger.warning("Skipping feed entry without link: %s", title)
            continue
        raw_published_at = _child_text(entry, "published") or _child_text(entry, "updated")
        results.append(
            FeedEntry(
                title=title,
                link=link,
                published_at=parse_datetime(raw_published_at),
                categories=_categories(entry),
                source_label=_atom_source(entry) or extract_source_from_title(title),
                guid=_child_text(entry, "id"),
            ),
        )
    return results


def extract_source_from_title(title: str) -> str | None:
    """Publisher label from the "Headline - Publisher" title convention."""

    match = _TITLE_SOURCE_SUFFIX_RE.search(title)
    if match is None:
        return None
    return match.group(1).strip() or None


def parse_datetime(raw_value: str | None) -> datetime:
    """Parse RFC 822 or ISO timestamps; missing or invalid values become now (UTC)."""

    if not raw_value:
        return datetime.now(tz=UTC)

    try:
        parsed = parsedate_to_datetime(raw_value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    except (TypeError, ValueError):
        pass

    try:
        iso = datetime.fromisoformat(raw_value.replace("Z", "+00:00"))
        if iso.tzinfo is None:
            return iso.replace(tzinfo=UTC)
        return iso.astimezone(UTC)
    except ValueError:
        return datetime.now(tz=UTC)


def _categories(element: ElementTree.Element) -> tuple[str, ...]:
    values: list[str] = []
    for child in element:
        if _local_name(child.tag) != "category":
            continue
        # Atom keeps the label in the term attribute.
        text = (child.text or child.attrib.get("term") or "").strip()
        if text and text not in values:
            values.append(text)
    return tuple(values)


def _atom_link(entry: ElementTree.Element) -> str | None:
    for child in entry:
        if _local_name(child.tag) != "link":
            continue
        rel = child.attrib.get("rel", "").strip().lower()
        href = child.attrib.get("href", "").strip()
        if not href:
            continue
        if not rel or rel == "alternate":
            return href
    for child in entry:
        if _local_name(child.tag) == "link":
            href = child.attrib.get("href", "").strip()
            if href:
                return href
    return None


def _atom_source(entry: ElementTree.Element) -> str | None:
    source = _child(entry, "source")
    if source is not None:
        title = _child_text(source, "title")
        if title:
            return title
    author = _child(entry, "author")
    if author is not None:
        return _child_text(author, "name")
    return None


def _child(element: ElementTree.Element, name: str) -> ElementTree.Element | None:
    target = name.lower()
    for child in element:
        if _local_name(child.tag) == target:
            return child
    return None


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    target = name.lower()
    for child in element:
        if _local_name(child.tag) != target:
            continue
        if child.text and child.text.strip():
            return child.text.strip()
        full_text = "".join(child.itertext()).strip()
        if full_text:
            return full_text
    return None


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[1].lower()
    return tag.lower()
