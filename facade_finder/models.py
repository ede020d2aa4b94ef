"""Data models for the Facade Finder."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum


class CaptureStatus(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class SiteInfo:
    url: str
    domain: str
    category: str | None = None
    rank: int | None = None


# ── Third-party knowledge base ──

@dataclass(frozen=True)
class Facade:
    name: str
    repo: str = ""


@dataclass(frozen=True)
class Product:
    name: str
    categories: tuple[str, ...] = ()
    url_patterns: tuple[str, ...] = ()
    facades: tuple[Facade, ...] = ()

    @property
    def has_facade(self) -> bool:
        return len(self.facades) > 0

    @property
    def primary_category(self) -> str | None:
        return self.categories[0] if self.categories else None


@dataclass(frozen=True)
class Entity:
    name: str
    domains: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    products: tuple[Product, ...] = ()


# ── Page capture ──

@dataclass
class NetworkRequest:
    """A finished network request. Times are milliseconds on one clock."""

    url: str
    resource_type: str = "other"
    transfer_size: int = 0
    start_time: float = 0.0
    response_received_time: float | None = None
    end_time: float | None = None
    status_code: int | None = None


@dataclass
class MainThreadTask:
    """A top-level main thread task (milliseconds)."""

    start_time: float
    duration: float
    attributable_urls: list[str] = field(default_factory=list)


@dataclass
class PageCapture:
    site: SiteInfo
    status: CaptureStatus
    requested_url: str = ""
    final_url: str | None = None
    started_at: str = ""
    completed_at: str = ""
    requests: list[NetworkRequest] = field(default_factory=list)
    tasks: list[MainThreadTask] = field(default_factory=list)
    error: str | None = None


# ── Cost attribution ──

@dataclass(frozen=True)
class URLCostSummary:
    url: str
    transfer_size: float = 0
    blocking_time: float = 0
    main_thread_time: float = 0
    first_start_time: float = 0
    first_content_available: float = 0


@dataclass
class ProductSummary:
    """Cost rolled up for one facadable product during one audit."""

    product: Product
    start_of_product_requests: float = math.inf
    transfer_size: float = 0
    blocking_time: float = 0
    url_summaries: dict[str, URLCostSummary] = field(default_factory=dict)

    @property
    def is_anchored(self) -> bool:
        return self.start_of_product_requests != math.inf

    def add(self, summary: URLCostSummary) -> None:
        self.url_summaries[summary.url] = summary
        self.transfer_size += summary.transfer_size
        self.blocking_time += summary.blocking_time


# ── Report ──

@dataclass
class ResourceItem:
    url: str
    transfer_size: float = 0
    blocking_time: float = 0
    main_thread_time: float = 0
    first_start_time: float = 0
    first_content_available: float = 0

    @classmethod
    def from_summary(cls, summary: URLCostSummary) -> ResourceItem:
        return cls(
            url=summary.url,
            transfer_size=summary.transfer_size,
            blocking_time=summary.blocking_time,
            main_thread_time=summary.main_thread_time,
            first_start_time=summary.first_start_time,
            first_content_available=summary.first_content_available,
        )


@dataclass
class ProductRow:
    product: str
    product_name: str
    category: str | None = None
    transfer_size: float = 0
    blocking_time: float = 0
    start_of_product_requests: float = 0
    facades: list[str] = field(default_factory=list)
    items: list[ResourceItem] = field(default_factory=list)


@dataclass
class FacadeReport:
    page_url: str
    rows: list[ProductRow] = field(default_factory=list)
    not_applicable: bool = True
    score: int = 1
    display_value: str = ""
