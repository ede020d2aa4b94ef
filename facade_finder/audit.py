"""Running the facade audit over one page capture."""

from __future__ import annotations

import logging

from .config import AuditSettings
from .cost_summary import get_summaries
from .facades import get_facadable_product_summaries
from .models import FacadeReport, PageCapture
from .report import build_report
from .third_party_db import ThirdPartyDatabase

logger = logging.getLogger(__name__)


def audit_capture(
    capture: PageCapture,
    third_party_db: ThirdPartyDatabase,
    settings: AuditSettings | None = None,
) -> FacadeReport:
    """Attribute a capture's cost to facadable products and build the report."""
    settings = settings or AuditSettings()
    page_url = capture.final_url or capture.requested_url or capture.site.url
    main_entity = third_party_db.get_entity(page_url)

    by_url = get_summaries(capture.requests, capture.tasks, settings.cpu_multiplier)
    product_summaries = get_facadable_product_summaries(by_url, main_entity, third_party_db)
    report = build_report(page_url, product_summaries, settings.condense_threshold_bytes)

    logger.info(
        "Audited %s: %d URLs, %d facadable products (main entity: %s)",
        page_url, len(by_url), len(report.rows),
        main_entity.name if main_entity else "unknown",
    )
    return report
