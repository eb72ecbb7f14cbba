"""Article summarization through a chat-completions API."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from typing import Any

import httpx

from news_harvest.config import SummarizerSettings
from news_harvest.ingestion.errors import SummarizationFailed
from news_harvest.ingestion.models import SummaryResult

RETRYABLE_HTTP_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_SUMMARY_RE = re.compile(
    r"SUMMARY\s*:\s*(?P<summary>.*?)\s*(?:TAGS\s*:\s*(?P<tags>.*?))?\s*$",
    re.IGNORECASE | re.DOTALL,
)
logger = logging.getLogger(__name__)


class Summarizer:
    """Produces a short summary and topical tags for article content."""

    def __init__(
        self,
        settings: SummarizerSettings,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=settings.api_url.rstrip("/"),
            timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {settings.api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def summarize(self, content: str, title: str) -> SummaryResult:
        """Summarize content; short inputs are returned as-is without a request.

        Raises SummarizationFailed once retries are exhausted or the reply is unusable.
        """

        if len(content) < self.settings.min_content_chars:
            logger.info("Content too short to summarize (%d chars): %s", len(content), title)
            return SummaryResult(summary=content, tags=[])

        payload = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": self.settings.system_prompt},
                {
                    "role": "user",
                    "content": (
                        f"Title: {title}\n\nContent: {content[: self.settings.max_input_chars]}"
                    ),
                },
            ],
            "max_tokens": self.settings.max_tokens,
        }
        reply = self._complete(payload, title=title)
        result = parse_summary_response(reply)
        if not result.summary:
            raise SummarizationFailed(
                message=f"Summarizer returned an empty summary for {title!r}",
                code="empty_summary",
            )
        logger.info("Summarized %r (%d tags)", title, len(result.tags))
        return result

    def _complete(self, payload: dict[str, Any], *, title: str) -> str:
        max_attempts = max(1, self.settings.max_attempts)
        last_error = ""
        for attempt in range(1, max_attempts + 1):
            try:
                response = self._client.post("/chat/completions", json=payload)
            except httpx.TimeoutException:
                last_error = "timeout"
            except httpx.HTTPError as exc:
                last_error = f"transport error: {exc}"
            else:
                if response.is_success:
                    return _reply_text(response, attempts=attempt)
                if response.status_code not in RETRYABLE_HTTP_STATUS_CODES:
                    raise SummarizationFailed(
                        message=f"Summarizer rejected request with HTTP {response.status_code}",
                        code=str(response.status_code),
                        attempts=attempt,
                    )
                last_error = f"HTTP {response.status_code}"

            if attempt < max_attempts:
                delay = self.settings.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Summarization attempt %d/%d for %r failed (%s); retrying in %.1fs",
                    attempt,
                    max_attempts,
                    title,
                    last_error,
                    delay,
                )
                self._sleep(delay)

        raise SummarizationFailed(
            message=f"Summarization failed after {max_attempts} attempts: {last_error}",
            code="retries_exhausted",
            attempts=max_attempts,
        )

    def close(self) -> None:
        self._client.close()


def parse_summary_response(text: str) -> SummaryResult:
    """Parse a ``SUMMARY: ... TAGS: a, b`` reply; unmarked text is all summary."""

    cleaned = text.replace("**", "").replace("__", "").strip()
    match = _SUMMARY_RE.search(cleaned)
    if match is None:
        return SummaryResult(summary=cleaned, tags=[])

    summary = match.group("summary").strip()
    tags: list[str] = []
    for raw_tag in (match.group("tags") or "").replace("\n", ",").split(","):
        tag = raw_tag.strip().strip("#").strip()
        if tag and tag not in tags:
            tags.append(tag)
    return SummaryResult(summary=summary, tags=tags)


def _reply_text(response: httpx.Response, *, attempts: int) -> str:
    try:
        body = response.json()
        text = body["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise SummarizationFailed(
            message="Summarizer returned a malformed response",
            code="malformed_response",
            attempts=attempts,
        ) from exc
    if not isinstance(text, str) or not text.strip():
        raise SummarizationFailed(
            message="Summarizer returned an empty response",
            code="empty_response",
            attempts=attempts,
        )
    return text.strip()
