"""Tests for the shared HTTP module components."""

from __future__ import annotations

import httpx

from news_harvest.http.fetcher import HttpFetcher
from news_harvest.http.html_extractor import ExtractionResult, extract_article

ARTICLE_HTML = """
<html>
  <head>
    <title>Court pauses new visa rule</title>
    <meta property="og:site_name" content="Publisher Daily">
  </head>
  <body>
    <article>
      <h1>Court pauses new visa rule</h1>
      <p>A federal court on Monday paused a rule that would have changed how
      employers sponsor skilled workers, citing procedural problems with how
      the rule was announced and the short comment period that preceded it.</p>
      <p>The administration said it would appeal the decision, while employer
      groups welcomed the pause and asked for a longer consultation before any
      similar change is proposed again in the coming months.</p>
    </article>
  </body>
</html>
"""


class TestHtmlExtractor:
    def test_extract_from_article_html(self):
        result = extract_article(ARTICLE_HTML, url="https://publisher.com/visa-rule")
        assert isinstance(result, ExtractionResult)
        assert result.is_success
        assert "federal court" in result.text

    def test_extract_from_empty_html(self):
        result = extract_article("")
        assert not result.is_success
        assert result.error == "empty HTML input"

    def test_extract_from_whitespace_html(self):
        result = extract_article("   \n ")
        assert not result.is_success

    def test_extract_with_max_chars(self):
        html = "<html><body><p>" + "word " * 3000 + "</p></body></html>"
        result = extract_article(html, max_chars=100)
        if result.is_success:
            assert len(result.text) <= 100


class TestHttpFetcher:
    def test_fetch_success_reports_final_url(self):
        def _handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://publisher.com/new"})
            return httpx.Response(200, html="<p>ok</p>")

        with HttpFetcher(transport=httpx.MockTransport(_handler)) as fetcher:
            result = fetcher.fetch("https://publisher.com/old")

        assert result.is_success
        assert result.final_url == "https://publisher.com/new"
        assert result.content == "<p>ok</p>"
        assert result.content_type.startswith("text/html")

    def test_fetch_http_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
        with HttpFetcher(transport=transport) as fetcher:
            result = fetcher.fetch("https://publisher.com/missing")

        assert not result.is_success
        assert result.status_code == 404
        assert result.error == "HTTP 404"

    def test_fetch_timeout(self):
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with HttpFetcher(transport=httpx.MockTransport(_handler)) as fetcher:
            result = fetcher.fetch("https://publisher.com/slow")

        assert not result.is_success
        assert result.status_code == 0
        assert result.error == "timeout"

    def test_fetch_transport_error(self):
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with HttpFetcher(transport=httpx.MockTransport(_handler)) as fetcher:
            result = fetcher.fetch("https://publisher.com/down")

        assert not result.is_success
        assert result.error == "refused"
