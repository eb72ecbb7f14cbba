"""Resolution of feed proxy links to canonical article URLs.

Strategies are tried in order and the first success wins:

1. destination embedded in a proxy link query parameter (no network call);
2. redirect-following request, HEAD first with GET fallback;
3. markup of an intermediary proxy page: canonical link, meta refresh,
   client-side redirect script, first outbound anchor;
4. the original link, flagged unresolved when it still points at a proxy host.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from news_harvest.http.fetcher import DEFAULT_USER_AGENT
from news_harvest.ingestion.cleaning import canonicalize_url, host_matches, is_http_url
from news_harvest.ingestion.errors import ResolutionDegraded
from news_harvest.ingestion.models import FeedEntry, Resolution, ResolutionMethod, ResolvedItem

HTTP_CLIENT_ERROR = 400
_META_REFRESH_URL_RE = re.compile(r"url\s*=\s*['\"]?([^'\";]+)", re.IGNORECASE)
_SCRIPT_REDIRECT_RES = (
    re.compile(
        r"(?:window\.|document\.|top\.|self\.)?location(?:\.href)?\s*=\s*['\"]([^'\"]+)['\"]",
    ),
    re.compile(r"location\.(?:replace|assign)\(\s*['\"]([^'\"]+)['\"]\s*\)"),
)
logger = logging.getLogger(__name__)


class UrlResolver:
    """Turns raw feed links into canonical, tracking-free article URLs."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        proxy_hosts: tuple[str, ...],
        proxy_query_params: tuple[str, ...] = ("url", "u"),
        max_redirects: int = 10,
        timeout_seconds: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.proxy_hosts = tuple(dict.fromkeys(host.strip().lower() for host in proxy_hosts if host))
        self.proxy_query_params = proxy_query_params
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            max_redirects=max_redirects,
            transport=transport,
        )

    def is_proxy_url(self, url: str) -> bool:
        return host_matches(url, self.proxy_hosts)

    def resolve_entry(self, entry: FeedEntry) -> ResolvedItem:
        resolution = self.resolve(entry.link, source_url=entry.source_url)
        return ResolvedItem(
            entry=entry,
            canonical_url=resolution.url,
            method=resolution.method,
            is_resolved=resolution.resolved,
        )

    def resolve(self, raw_link: str, *, source_url: str | None = None) -> Resolution:
        """Resolve a raw link; never raises, degrades to the original link."""

        link = raw_link.strip()
        try:
            resolution = self._resolve_chain(link, source_url=source_url)
        except ResolutionDegraded as exc:
            logger.warning("Resolution degraded for %s: %s", link, exc)
            resolution = None
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error resolving %s: %s", link, exc)
            resolution = None

        if resolution is not None:
            logger.info("Resolved %s -> %s (%s)", link, resolution.url, resolution.method.value)
            return resolution

        fallback = canonicalize_url(link) if is_http_url(link) else link
        resolved = is_http_url(fallback) and not self.is_proxy_url(fallback)
        if not resolved:
            logger.warning("Could not resolve proxy link %s", link)
        return Resolution(url=fallback, method=ResolutionMethod.FALLBACK_ORIGINAL, resolved=resolved)

    def _resolve_chain(self, link: str, *, source_url: str | None) -> Resolution | None:
        if not is_http_url(link):
            raise ResolutionDegraded(message=f"Not an absolute http(s) link: {link!r}")

        embedded = self._from_query_param(link)
        if embedded is not None:
            return Resolution(url=embedded, method=ResolutionMethod.QUERY_PARAM, resolved=True)

        final_url, html = self._follow_redirects(link)
        if not self.is_proxy_url(final_url):
            return Resolution(
                url=canonicalize_url(final_url),
                method=ResolutionMethod.DIRECT_REDIRECT,
                resolved=True,
            )

        embedded = self._from_query_param(final_url)
        if embedded is not None:
            return Resolution(url=embedded, method=ResolutionMethod.QUERY_PARAM, resolved=True)

        if html is None:
            html = self._fetch_page(final_url)
        extracted = self._from_page(html, base_url=final_url, source_url=source_url)
        if extracted is not None:
            return Resolution(url=extracted, method=ResolutionMethod.PAGE_CONTENT, resolved=True)
        return None

    def _from_query_param(self, link: str) -> str | None:
        if not self.is_proxy_url(link):
            return None
        query = parse_qs(urlparse(link).query)
        for name in self.proxy_query_params:
            for value in query.get(name, []):
                candidate = self._accept(value)
                if candidate is not None:
                    return candidate
        return None

    def _follow_redirects(self, link: str) -> tuple[str, str | None]:
        try:
            response = self._client.head(link)
            if response.status_code < HTTP_CLIENT_ERROR:
                return str(response.url), None
            logger.debug("HEAD %s returned %s, retrying with GET", link, response.status_code)
        except httpx.HTTPError as exc:
            logger.debug("HEAD %s failed, retrying with GET: %s", link, exc)

        response = self._get(link)
        return str(response.url), response.text

    def _fetch_page(self, url: str) -> str:
        return self._get(url).text

    def _get(self, url: str) -> httpx.Response:
        try:
            response = self._client.get(url)
        except httpx.HTTPError as exc:
            raise ResolutionDegraded(message=f"GET {url} failed: {exc}", code="transport") from exc
        if response.status_code >= HTTP_CLIENT_ERROR:
            raise ResolutionDegraded(
                message=f"GET {url} returned HTTP {response.status_code}",
                code=str(response.status_code),
            )
        return response

    def _from_page(self, html: str, *, base_url: str, source_url: str | None) -> str | None:
        if not html.strip():
            return None
        soup = BeautifulSoup(html, "html.parser")

        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            rels = rel if isinstance(rel, list) else [rel]
            if "canonical" in (value.lower() for value in rels):
                candidate = self._accept(urljoin(base_url, link["href"]))
                if candidate is not None:
                    return candidate

        for meta in soup.find_all("meta", content=True):
            if str(meta.get("http-equiv", "")).lower() != "refresh":
                continue
            match = _META_REFRESH_URL_RE.search(meta["content"])
            if match:
                candidate = self._accept(urljoin(base_url, match.group(1).strip()))
                if candidate is not None:
                    return candidate

        for script in soup.find_all("script"):
            text = script.string or script.get_text() or ""
            for pattern in _SCRIPT_REDIRECT_RES:
                for match in pattern.finditer(text):
                    candidate = self._accept(urljoin(base_url, match.group(1)))
                    if candidate is not None:
                        return candidate

        return self._first_outbound_anchor(soup, base_url=base_url, source_url=source_url)

    def _first_outbound_anchor(
        self,
        soup: BeautifulSoup,
        *,
        base_url: str,
        source_url: str | None,
    ) -> str | None:
        hrefs = [urljoin(base_url, anchor["href"]) for anchor in soup.find_all("a", href=True)]
        if source_url and is_http_url(source_url):
            source_host = (urlparse(source_url).hostname or "").lower().removeprefix("www.")
            for href in hrefs:
                if source_host and host_matches(href, (source_host,)):
                    candidate = self._accept(href)
                    if candidate is not None:
                        return candidate
        for href in hrefs:
            candidate = self._accept(href)
            if candidate is not None:
                return candidate
        return None

    def _accept(self, value: str) -> str | None:
        candidate = value.strip()
        if not is_http_url(candidate) or self.is_proxy_url(candidate):
            return None
        return canonicalize_url(candidate)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> UrlResolver:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
