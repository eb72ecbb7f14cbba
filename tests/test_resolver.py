from __future__ import annotations

from datetime import UTC, datetime

import allure
import httpx
import pytest

from news_harvest.config import ResolverSettings
from news_harvest.ingestion.models import FeedEntry, ResolutionMethod
from news_harvest.ingestion.resolver import UrlResolver
from news_harvest.ingestion.services.resolve_service import ResolveStageService

pytestmark = [
    allure.epic("Harvest Cycle"),
    allure.feature("URL Resolution"),
]

PROXY_LINK = "https://news.google.com/rss/articles/CBMiabc?oc=5"


def _resolver(handler, *, proxy_hosts=("news.google.com",)) -> UrlResolver:
    return UrlResolver(proxy_hosts=proxy_hosts, transport=httpx.MockTransport(handler))


def _html_page(body: str) -> httpx.Response:
    return httpx.Response(200, html=f"<html><head></head><body>{body}</body></html>")


def _entry(link: str, *, source_url: str | None = None, title: str = "Headline") -> FeedEntry:
    return FeedEntry(
        title=title,
        link=link,
        published_at=datetime(2026, 2, 17, tzinfo=UTC),
        source_url=source_url,
    )


def test_query_param_destination_resolves_without_network() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    resolver = _resolver(_handler)
    link = (
        "https://news.google.com/articles/redirect"
        "?url=https%3A%2F%2Fwww.example.com%2Fstory%3Futm_source%3Dgn%26id%3D7"
    )

    resolution = resolver.resolve(link)

    assert resolution.method == ResolutionMethod.QUERY_PARAM
    assert resolution.resolved is True
    assert resolution.url == "https://www.example.com/story?id=7"


def test_query_param_must_hold_absolute_http_url() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "news.google.com"
        return _html_page("")

    resolution = _resolver(_handler).resolve("https://news.google.com/x?url=/relative")

    assert resolution.method == ResolutionMethod.FALLBACK_ORIGINAL
    assert resolution.resolved is False


def test_redirect_chain_resolves_to_publisher() -> None:
    methods: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.url.host == "news.google.com":
            return httpx.Response(
                302,
                headers={"Location": "https://Publisher.com/a?utm_medium=rss#top"},
            )
        return httpx.Response(200)

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.method == ResolutionMethod.DIRECT_REDIRECT
    assert resolution.resolved is True
    assert resolution.url == "https://publisher.com/a"
    assert methods == ["HEAD", "HEAD"]


def test_head_failure_falls_back_to_get() -> None:
    methods: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        if request.method == "HEAD":
            return httpx.Response(405)
        if request.url.host == "news.google.com":
            return httpx.Response(301, headers={"Location": "https://publisher.com/b"})
        return httpx.Response(200, text="article")

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.url == "https://publisher.com/b"
    assert resolution.method == ResolutionMethod.DIRECT_REDIRECT
    assert methods == ["HEAD", "GET", "GET"]


def test_canonical_link_on_proxy_page() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            html=(
                '<html><head><link rel="canonical" href="https://publisher.com/c?fbclid=1">'
                '</head><body><a href="https://other.com/x">x</a></body></html>'
            ),
        )

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.method == ResolutionMethod.PAGE_CONTENT
    assert resolution.url == "https://publisher.com/c"


def test_meta_refresh_on_proxy_page() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            html=(
                '<html><head><meta http-equiv="refresh" '
                "content=\"0;URL='https://publisher.com/m'\"></head><body></body></html>"
            ),
        )

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.method == ResolutionMethod.PAGE_CONTENT
    assert resolution.url == "https://publisher.com/m"


def test_script_redirect_on_proxy_page() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return _html_page(
            '<script>window.location.replace("https://publisher.com/s");</script>',
        )

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.method == ResolutionMethod.PAGE_CONTENT
    assert resolution.url == "https://publisher.com/s"


def test_anchor_matching_publisher_is_preferred() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return _html_page(
            '<a href="/settings">settings</a>'
            '<a href="https://accounts.google.com/login">login</a>'
            '<a href="https://ads.example.net/promo">promo</a>'
            '<a href="https://www.example-times.com/2026/visa">story</a>',
        )

    resolver = _resolver(_handler, proxy_hosts=("news.google.com", "accounts.google.com"))

    with_source = resolver.resolve(PROXY_LINK, source_url="https://www.example-times.com")
    without_source = resolver.resolve(PROXY_LINK)

    assert with_source.url == "https://www.example-times.com/2026/visa"
    assert with_source.method == ResolutionMethod.PAGE_CONTENT
    assert without_source.url == "https://ads.example.net/promo"


def test_proxy_page_without_destination_is_unresolved() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return _html_page('<a href="https://news.google.com/home">home</a>')

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.method == ResolutionMethod.FALLBACK_ORIGINAL
    assert resolution.resolved is False
    assert resolution.url.startswith("https://news.google.com/")


def test_feed_host_result_is_unresolved() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return _html_page("<p>no links</p>")

    resolver = _resolver(_handler, proxy_hosts=("news.google.com", "feeds.example.com"))

    resolution = resolver.resolve("https://feeds.example.com/item/1")

    assert resolution.resolved is False
    assert resolution.method == ResolutionMethod.FALLBACK_ORIGINAL


def test_network_error_on_publisher_link_keeps_canonical_original() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    resolution = _resolver(_handler).resolve("https://publisher.com/d?utm_source=feed")

    assert resolution.method == ResolutionMethod.FALLBACK_ORIGINAL
    assert resolution.resolved is True
    assert resolution.url == "https://publisher.com/d"


def test_network_error_on_proxy_link_is_unresolved() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    resolution = _resolver(_handler).resolve(PROXY_LINK)

    assert resolution.resolved is False


def test_redirect_loop_is_bounded() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": "https://news.google.com/loop"})

    resolver = UrlResolver(
        proxy_hosts=("news.google.com",),
        max_redirects=3,
        transport=httpx.MockTransport(_handler),
    )

    resolution = resolver.resolve(PROXY_LINK)

    assert resolution.resolved is False


def test_non_http_link_is_unresolved_without_request() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    resolution = _resolver(_handler).resolve("  not-a-link  ")

    assert resolution.url == "not-a-link"
    assert resolution.resolved is False


def test_resolve_entry_carries_entry_and_method() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    entry = _entry("https://news.google.com/r?u=https://publisher.com/e")

    item = _resolver(_handler).resolve_entry(entry)

    assert item.entry is entry
    assert item.canonical_url == "https://publisher.com/e"
    assert item.method == ResolutionMethod.QUERY_PARAM
    assert item.is_resolved is True


@pytest.mark.parametrize(("entries_count", "expected_sleeps"), [(0, 0), (5, 0), (6, 1), (11, 2)])
def test_resolve_stage_pauses_between_batches(entries_count: int, expected_sleeps: int) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    sleeps: list[float] = []
    stage = ResolveStageService(
        resolver=_resolver(_handler),
        resolver_settings=ResolverSettings(batch_size=5, batch_delay_seconds=1.0),
        sleep=sleeps.append,
    )
    entries = [
        _entry(f"https://news.google.com/r?url=https://publisher.com/{index}")
        for index in range(entries_count)
    ]

    items = stage.resolve_entries(entries)

    assert [item.canonical_url for item in items] == [
        f"https://publisher.com/{index}" for index in range(entries_count)
    ]
    assert sleeps == [1.0] * expected_sleeps
