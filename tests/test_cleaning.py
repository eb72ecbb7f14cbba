import allure

from news_harvest.ingestion.cleaning import (
    canonicalize_url,
    extract_domain,
    host_matches,
    is_http_url,
    is_tracking_param,
)

pytestmark = [
    allure.epic("Harvest Cycle"),
    allure.feature("URL Resolution"),
]


def test_canonicalize_url_normalizes_query_and_fragment() -> None:
    raw = "HTTPS://Example.com:443/news?id=2&a=1#fragment"
    assert canonicalize_url(raw) == "https://example.com/news?a=1&id=2"


def test_tracking_parameters_do_not_change_canonical_url() -> None:
    first = canonicalize_url("https://example.com/a?utm_source=x&id=1")
    second = canonicalize_url("https://example.com/a?id=1&utm_source=y")

    assert first == second == "https://example.com/a?id=1"


def test_canonicalize_url_strips_click_identifiers() -> None:
    raw = "https://example.com/story?gclid=1&fbclid=2&msclkid=3&mc_cid=4&_ga=5&ref_src=twsrc&page=2"
    assert canonicalize_url(raw) == "https://example.com/story?page=2"


def test_canonicalize_url_keeps_non_default_port_and_collapses_slashes() -> None:
    assert canonicalize_url("http://Example.com:8080//a//b") == "http://example.com:8080/a/b"
    assert canonicalize_url("http://example.com:80/") == "http://example.com/"


def test_is_tracking_param_is_case_insensitive() -> None:
    assert is_tracking_param("UTM_Campaign")
    assert is_tracking_param("FBCLID")
    assert not is_tracking_param("id")


def test_is_http_url() -> None:
    assert is_http_url("https://example.com/a")
    assert not is_http_url("/relative/path")
    assert not is_http_url("mailto:someone@example.com")
    assert not is_http_url(None)


def test_host_matches_exact_host_and_subdomains() -> None:
    hosts = ("news.google.com",)
    assert host_matches("https://news.google.com/rss/articles/abc", hosts)
    assert host_matches("https://beta.news.google.com/x", hosts)
    assert not host_matches("https://fakenews.google.com.example.org/x", hosts)
    assert not host_matches("https://example.com/news.google.com", hosts)


def test_extract_domain_drops_www() -> None:
    assert extract_domain("https://www.Reuters.com/world") == "reuters.com"
    assert extract_domain("not a url") == "unknown"
