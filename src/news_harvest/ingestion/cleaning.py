"""URL normalization helpers used for dedup keys."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = frozenset(
    {
        "gclid",
        "gclsrc",
        "dclid",
        "fbclid",
        "msclkid",
        "yclid",
        "twclid",
        "igshid",
        "mc_cid",
        "mc_eid",
        "_ga",
        "_gl",
        "_hsenc",
        "_hsmi",
        "mkt_tok",
        "ref_src",
        "oly_enc_id",
        "oly_anon_id",
        "vero_id",
        "wt_mc",
        "ocid",
    },
)


def canonicalize_url(url: str) -> str:
    """Normalize URL for idempotent hashing and uniqueness checks.

    Strips tracking parameters, lowercases scheme and host, drops default
    ports and fragments, and sorts the remaining query parameters.
    """

    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = parsed.netloc.lower()
    if netloc.endswith(":80") and scheme == "http":
        netloc = netloc[:-3]
    if netloc.endswith(":443") and scheme == "https":
        netloc = netloc[:-4]

    path = parsed.path or "/"
    normalized_path = re.sub(r"/{2,}", "/", path)
    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not is_tracking_param(key)
    ]
    normalized_query = urlencode(sorted(kept))
    cleaned = parsed._replace(
        scheme=scheme,
        netloc=netloc,
        path=normalized_path,
        params="",
        query=normalized_query,
        fragment="",
    )
    return str(urlunparse(cleaned))


def is_tracking_param(name: str) -> bool:
    """Whether a query parameter only carries click/campaign tracking data."""

    lowered = name.strip().lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def is_http_url(value: str | None) -> bool:
    """Whether value is an absolute http(s) URL with a host."""

    if not value:
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def host_matches(url: str, hosts: tuple[str, ...] | frozenset[str]) -> bool:
    """Whether the URL host equals or is a subdomain of any listed host."""

    host = extract_host(url)
    if not host:
        return False
    return any(host == item or host.endswith(f".{item}") for item in hosts if item)


def extract_host(url: str) -> str:
    """Lowercased host without port or credentials."""

    return (urlparse(url.strip()).hostname or "").lower()


def extract_domain(url: str) -> str:
    """Get normalized domain from URL, dropping a leading www."""

    host = extract_host(url)
    if host.startswith("www."):
        host = host[4:]
    return host or "unknown"

