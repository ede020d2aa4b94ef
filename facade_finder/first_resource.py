"""Entry-point requests that mark a facadable product as having started to load."""

from __future__ import annotations

import re

DEFERRABLE_PRODUCT_FIRST_RESOURCE: dict[str, re.Pattern[str]] = {
    "Facebook Messenger Customer Chat": re.compile(r"connect\.facebook.net/.*/sdk/xfbml\.customerchat\.js"),
    "YouTube Embedded Player": re.compile(r"youtube\.com/embed/"),
    "Help Scout Beacon": re.compile(r"beacon-v2\.helpscout\.net"),
    "Vimeo Embedded Player": re.compile(r"player\.vimeo\.com/video/"),
    "Drift Live Chat": re.compile(r"js\.driftt\.com/include/.*/.*\.js"),
    "Intercom Widget": re.compile(r"widget\.intercom\.io/widget/.*"),
}


def first_resource_product_names(url: str) -> list[str]:
    """Names of every product whose first-resource pattern matches the URL."""
    return [
        name for name, pattern in DEFERRABLE_PRODUCT_FIRST_RESOURCE.items()
        if pattern.search(url)
    ]
