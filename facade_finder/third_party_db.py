"""Third-party entity and product identification.

Combines a built-in entity database (the products with known facades plus
common entities without them) with optional loading of a third-party-web
``entities.json`` file for wider coverage.
"""

from __future__ import annotations

import functools
import json
import logging
import re
from pathlib import Path

from .models import Entity, Facade, Product
from .utils import extract_hostname, extract_registered_domain

logger = logging.getLogger(__name__)

REGEXP_PREFIX = "REGEXP:"

# Hostnames whose entity lookup is remembered per database
ENTITY_CACHE_SIZE = 512

_LIVE_CHAT_LOADER = Facade("React Live Chat Loader", "https://github.com/calibreapp/react-live-chat-loader")

# Built-in entities: the facadable products plus common entities without facades
BUILTIN_ENTITIES: list[Entity] = [
    Entity(
        name="Google",
        domains=(
            "google.com", "gstatic.com", "googleapis.com", "google-analytics.com",
            "googletagmanager.com", "doubleclick.net", "googlesyndication.com",
            "youtube.com", "youtube-nocookie.com", "ytimg.com", "ggpht.com",
            "googlevideo.com", "googleusercontent.com",
        ),
        categories=("video", "analytics", "ad"),
        products=(
            Product(
                name="YouTube Embedded Player",
                categories=("video",),
                url_patterns=("youtube.com/embed/", "youtube-nocookie.com/embed/"),
                facades=(
                    Facade("Lite YouTube", "https://github.com/paulirish/lite-youtube-embed"),
                    Facade("Ngx Lite Video", "https://github.com/karim1safan/ngx-lite-video"),
                ),
            ),
            Product(
                name="Google Analytics",
                categories=("analytics",),
                url_patterns=("google-analytics.com/", "googletagmanager.com/gtag/"),
            ),
        ),
    ),
    Entity(
        name="Facebook",
        domains=("facebook.com", "facebook.net", "fbcdn.net", "fbsbx.com", "messenger.com"),
        categories=("social",),
        products=(
            Product(
                name="Facebook Messenger Customer Chat",
                categories=("social",),
                url_patterns=("REGEXP:connect\\.facebook\\.net/.*/sdk/xfbml\\.customerchat\\.js",),
                facades=(_LIVE_CHAT_LOADER,),
            ),
        ),
    ),
    Entity(
        name="Help Scout",
        domains=("helpscout.net",),
        categories=("customer-success",),
        products=(
            Product(
                name="Help Scout Beacon",
                categories=("customer-success",),
                url_patterns=("beacon-v2.helpscout.net",),
                facades=(_LIVE_CHAT_LOADER,),
            ),
        ),
    ),
    Entity(
        name="Vimeo",
        domains=("vimeo.com", "vimeocdn.com"),
        categories=("video",),
        products=(
            Product(
                name="Vimeo Embedded Player",
                categories=("video",),
                url_patterns=("player.vimeo.com/video/",),
                facades=(Facade("Lite Vimeo Embed", "https://github.com/luwes/lite-vimeo-embed"),),
            ),
        ),
    ),
    Entity(
        name="Drift",
        domains=("drift.com", "driftt.com", "driftcdn.com"),
        categories=("marketing",),
        products=(
            Product(
                name="Drift Live Chat",
                categories=("marketing",),
                url_patterns=("REGEXP:js\\.driftt\\.com/include/.*/.*\\.js", "js.driftt.com/"),
                facades=(_LIVE_CHAT_LOADER,),
            ),
        ),
    ),
    Entity(
        name="Intercom",
        domains=("intercom.io", "intercomcdn.com", "intercomassets.com", "intercom.com"),
        categories=("customer-success",),
        products=(
            Product(
                name="Intercom Widget",
                categories=("customer-success",),
                url_patterns=("widget.intercom.io", "js.intercomcdn.com/"),
                facades=(
                    _LIVE_CHAT_LOADER,
                    Facade("Intercom Facade", "https://github.com/danielbachhuber/intercom-facade/"),
                ),
            ),
        ),
    ),
    # Common entities without facadable products
    Entity(name="Hotjar", domains=("hotjar.com", "hotjar.io"), categories=("analytics",)),
    Entity(name="Microsoft", domains=("bing.com", "clarity.ms", "msecnd.net"), categories=("analytics",)),
    Entity(name="Twitter", domains=("twitter.com", "twimg.com", "t.co"), categories=("social",)),
    Entity(name="Criteo", domains=("criteo.com", "criteo.net"), categories=("ad",)),
    Entity(name="Cloudflare CDN", domains=("cdnjs.cloudflare.com",), categories=("cdn",)),
    Entity(name="jsDelivr CDN", domains=("cdn.jsdelivr.net",), categories=("cdn",)),
    Entity(name="HubSpot", domains=("hubspot.com", "hs-analytics.net", "hsforms.com"), categories=("marketing",)),
]


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    if pattern.startswith(REGEXP_PREFIX):
        return re.compile(pattern[len(REGEXP_PREFIX):])
    return re.compile(re.escape(pattern))


def _entity_from_json(entry: dict) -> Entity:
    """Build an Entity from one third-party-web ``entities.json`` record."""
    products = []
    for product in entry.get("products") or []:
        facades = tuple(
            Facade(name=f.get("name", ""), repo=f.get("repo", ""))
            for f in product.get("facades") or []
        )
        products.append(Product(
            name=product["name"],
            categories=tuple(product.get("categories") or entry.get("categories") or ()),
            url_patterns=tuple(product.get("urlPatterns") or ()),
            facades=facades,
        ))
    return Entity(
        name=entry["name"],
        domains=tuple(entry.get("domains") or ()),
        categories=tuple(entry.get("categories") or ()),
        products=tuple(products),
    )


class ThirdPartyDatabase:
    """URL classification database.

    Maps a URL to its owning entity and product. Entities are indexed by
    domain; lookups walk up the hostname so ``widget.intercom.io`` finds
    the entity registered for ``intercom.io``.
    """

    def __init__(self, entities_path: str | Path | None = None):
        self._entities: dict[str, Entity] = {e.name: e for e in BUILTIN_ENTITIES}

        if entities_path:
            self._load_entities(Path(entities_path))

        # domain -> entity, product name -> compiled patterns
        self._by_domain: dict[str, Entity] = {}
        self._patterns: dict[tuple[str, str], list[re.Pattern[str]]] = {}
        for entity in self._entities.values():
            for domain in entity.domains:
                self._by_domain[domain.lower().removeprefix("*.")] = entity
            for product in entity.products:
                self._patterns[(entity.name, product.name)] = [
                    _compile_pattern(p) for p in product.url_patterns
                ]

        self._entity_for_host = functools.lru_cache(maxsize=ENTITY_CACHE_SIZE)(self._lookup_host)
        logger.info(
            "ThirdPartyDatabase loaded with %d entities, %d domain entries",
            len(self._entities), len(self._by_domain),
        )

    def _load_entities(self, path: Path) -> None:
        """Load a third-party-web entities.json file."""
        if not path.exists():
            logger.warning("Entities file not found: %s", path)
            return
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            count = 0
            for entry in data:
                if not isinstance(entry, dict) or "name" not in entry:
                    continue
                entity = _entity_from_json(entry)
                self._entities[entity.name] = entity
                count += 1
            logger.info("Loaded %d entities from %s", count, path)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.error("Failed to parse entities file %s: %s", path, e)

    def get_entity(self, url: str) -> Entity | None:
        """Return the entity owning a URL, or None if unknown.

        Walks up the domain hierarchy: a.b.youtube.com -> b.youtube.com -> youtube.com
        """
        hostname = extract_hostname(url)
        if not hostname:
            return None
        return self._entity_for_host(hostname)

    def _lookup_host(self, hostname: str) -> Entity | None:
        parts = hostname.split(".")
        for i in range(len(parts) - 1):
            entity = self._by_domain.get(".".join(parts[i:]))
            if entity:
                return entity
        return self._by_domain.get(extract_registered_domain(hostname))

    def get_product(self, url: str) -> Product | None:
        """Return the first product of the URL's entity whose pattern matches."""
        entity = self.get_entity(url)
        if entity is None:
            return None
        for product in entity.products:
            for pattern in self._patterns.get((entity.name, product.name), ()):
                if pattern.search(url):
                    return product
        return None

    def is_first_party(self, url: str, main_entity: Entity | None) -> bool:
        """A URL is first party when it has no entity or shares the page's entity."""
        entity = self.get_entity(url)
        if entity is None:
            return True
        return main_entity is not None and entity.name == main_entity.name

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    @property
    def entity_cache_info(self):
        return self._entity_for_host.cache_info()
