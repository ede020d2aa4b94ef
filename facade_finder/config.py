"""Configuration loading and typed config dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class CrawlerSettings:
    concurrency: int = 4
    page_timeout_ms: int = 45000
    dwell_ms: int = 10000  # embeds keep fetching after load
    inter_site_delay_ms: int = 1000
    max_retries: int = 2
    headless: bool = True
    trace: bool = True


@dataclass
class Viewport:
    width: int = 1350
    height: int = 940


@dataclass
class BrowserSettings:
    locale: str = "en-US"
    viewport: Viewport = field(default_factory=Viewport)
    user_agent: str | None = None


@dataclass
class AuditSettings:
    condense_threshold_bytes: int = 1000
    throttling_method: str = "provided"  # "provided" or "simulate"
    cpu_slowdown_multiplier: float = 4.0

    @property
    def cpu_multiplier(self) -> float:
        if self.throttling_method == "simulate":
            return self.cpu_slowdown_multiplier
        return 1.0


@dataclass
class DatabaseSettings:
    path: str = "data/facades.db"


@dataclass
class ThirdPartySettings:
    entities_path: str | None = None


@dataclass
class FinderConfig:
    project_root: Path = field(default_factory=lambda: Path.cwd())
    crawler: CrawlerSettings = field(default_factory=CrawlerSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    third_party: ThirdPartySettings = field(default_factory=ThirdPartySettings)
    sites_file: str = "data/sites.csv"

    def resolve_path(self, relative_path: str) -> Path:
        """Resolve a relative path against the project root."""
        p = Path(relative_path)
        if p.is_absolute():
            return p
        return self.project_root / p


def _build_nested(cls, data: dict | None):
    """Build a flat dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        return cls()
    fieldnames = {f.name for f in cls.__dataclass_fields__.values()}
    return cls(**{key: val for key, val in data.items() if key in fieldnames})


def load_config(path: str | Path) -> FinderConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config_path = Path(path)
    project_root = config_path.parent

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        raw = {}

    browser = raw.get("browser") or {}
    return FinderConfig(
        project_root=project_root,
        crawler=_build_nested(CrawlerSettings, raw.get("crawler")),
        browser=BrowserSettings(
            locale=browser.get("locale", "en-US"),
            viewport=_build_nested(Viewport, browser.get("viewport")),
            user_agent=browser.get("user_agent"),
        ),
        audit=_build_nested(AuditSettings, raw.get("audit")),
        database=_build_nested(DatabaseSettings, raw.get("database")),
        third_party=_build_nested(ThirdPartySettings, raw.get("third_party")),
        sites_file=raw.get("sites_file", "data/sites.csv"),
    )
