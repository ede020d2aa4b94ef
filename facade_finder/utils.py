"""Utility functions for domain extraction, URL normalization and timestamps."""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urldefrag, urlparse

import tldextract

# Bundled public suffix snapshot only, so classification never hits the network.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def extract_registered_domain(url_or_domain: str) -> str:
    """Extract the registered domain from a URL or domain string.

    Examples:
        'https://www.youtube.com/embed/abc' -> 'youtube.com'
        'tracker.cdn.example.co.uk' -> 'example.co.uk'
    """
    ext = _extract(url_or_domain)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    # Fallback for IPs or unusual domains
    return extract_hostname(url_or_domain) or url_or_domain


def extract_hostname(url: str) -> str:
    """Extract a lowercase hostname from a URL or bare domain."""
    try:
        parsed = urlparse(url if "://" in url else f"https://{url}")
        return (parsed.hostname or "").lower()
    except ValueError:
        return ""


def strip_fragment(url: str) -> str:
    return urldefrag(url)[0]


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def normalize_url(url: str) -> str:
    """Ensure URL has a scheme and strip trailing slash."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url.rstrip("/")
