"""Turning attributed product summaries into displayable report rows."""

from __future__ import annotations

from dataclasses import asdict

from .facades import CONDENSE_THRESHOLD_BYTES, condense_items
from .models import FacadeReport, ProductRow, ProductSummary, ResourceItem

TITLE = "Lazy load third-party resources with facades"
FAILURE_TITLE = "Some third-party resources can be lazy loaded with a facade"

CATEGORY_LABELS: dict[str, str] = {
    "video": "{product_name} (Video)",
    "customer-success": "{product_name} (Customer Success)",
    "marketing": "{product_name} (Marketing)",
    "social": "{product_name} (Social)",
}


def product_display_name(product_name: str, category: str | None) -> str:
    """Product name with its primary category, or the bare name if unmapped."""
    template = CATEGORY_LABELS.get(category or "")
    if template is None:
        return product_name
    return template.format(product_name=product_name)


def display_value(item_count: int) -> str:
    if item_count == 1:
        return "1 facade alternative available"
    return f"{item_count} facade alternatives available"


def build_row(summary: ProductSummary, condense_threshold: float = CONDENSE_THRESHOLD_BYTES) -> ProductRow:
    product = summary.product
    items = sorted(
        (ResourceItem.from_summary(s) for s in summary.url_summaries.values()),
        key=lambda item: item.transfer_size,
        reverse=True,
    )
    condense_items(items, condense_threshold)
    return ProductRow(
        product=product_display_name(product.name, product.primary_category),
        product_name=product.name,
        category=product.primary_category,
        transfer_size=summary.transfer_size,
        blocking_time=summary.blocking_time,
        start_of_product_requests=summary.start_of_product_requests,
        facades=[f.name for f in product.facades],
        items=items,
    )


def build_report(
    page_url: str,
    summaries: list[ProductSummary],
    condense_threshold: float = CONDENSE_THRESHOLD_BYTES,
) -> FacadeReport:
    """Assemble the report. No rows means the audit is not applicable."""
    rows = [build_row(s, condense_threshold) for s in summaries]
    if not rows:
        return FacadeReport(page_url=page_url, rows=[], not_applicable=True, score=1)
    return FacadeReport(
        page_url=page_url,
        rows=rows,
        not_applicable=False,
        score=0,
        display_value=display_value(len(rows)),
    )


def report_to_dict(report: FacadeReport) -> dict:
    return asdict(report)


def _format_kib(size: float) -> str:
    return f"{size / 1024:,.1f} KiB"


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 1] + "…"


def format_report(report: FacadeReport, width: int = 100) -> str:
    """Render a report as a fixed-width text table."""
    lines = [report.page_url]
    if report.not_applicable:
        lines.append(f"  {TITLE}: not applicable")
        return "\n".join(lines)

    name_width = width - 30
    lines.append(f"  {FAILURE_TITLE} ({report.display_value})")
    lines.append(f"  {'Product':<{name_width}} {'Transfer Size':>14} {'Blocking':>10}")
    lines.append("  " + "-" * (width - 2))
    for row in report.rows:
        lines.append(
            f"  {_truncate(row.product, name_width):<{name_width}} "
            f"{_format_kib(row.transfer_size):>14} {row.blocking_time:>8.0f}ms"
        )
        for item in row.items:
            lines.append(
                f"    {_truncate(item.url, name_width - 2):<{name_width - 2}} "
                f"{_format_kib(item.transfer_size):>14} {item.blocking_time:>8.0f}ms"
            )
        if row.facades:
            lines.append(f"    facades: {', '.join(row.facades)}")
    return "\n".join(lines)
