"""CLI entry point: offline audits of saved captures and live crawl orchestration."""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import sys
import time
from pathlib import Path

from playwright.async_api import async_playwright

from .audit import audit_capture
from .capture import CaptureFormatError, capture_page, load_capture, save_capture
from .config import FinderConfig, load_config
from .db import Database
from .models import CaptureStatus, FacadeReport, SiteInfo
from .report import format_report, report_to_dict
from .third_party_db import ThirdPartyDatabase
from .utils import extract_registered_domain, normalize_url

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="facade_finder",
        description="Facade Finder — third-party embeds that can be lazy loaded",
    )
    parser.add_argument(
        "--config", type=str, default="config.yaml",
        help="Path to config.yaml (default: ./config.yaml)",
    )
    parser.add_argument(
        "--capture", action="append", default=[], metavar="FILE",
        help="Audit a saved capture JSON file instead of crawling (repeatable)",
    )
    parser.add_argument(
        "--url", action="append", default=[],
        help="Crawl this URL (repeatable); overrides the sites file",
    )
    parser.add_argument(
        "--sites", type=str, default=None,
        help="Override sites CSV file path",
    )
    parser.add_argument(
        "--concurrency", type=int, default=None,
        help="Override number of concurrent browser contexts",
    )
    parser.add_argument(
        "--limit", type=int, default=None,
        help="Only crawl first N sites",
    )
    parser.add_argument(
        "--headed", action="store_true",
        help="Run in headed mode (visible browser windows)",
    )
    parser.add_argument(
        "--save-captures", type=str, default=None, metavar="DIR",
        help="Write each crawl capture as JSON into DIR",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print reports as JSON",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--resume", action="store_true",
        help="Skip sites already audited successfully",
    )
    return parser.parse_args(argv)


def load_sites_csv(path: Path) -> list[SiteInfo]:
    """Load sites from a CSV file with a ``url`` column."""
    sites: list[SiteInfo] = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            url = normalize_url(row["url"])
            domain = (row.get("domain") or "").strip() or extract_registered_domain(url)
            category = (row.get("category") or "").strip() or None
            rank_str = (row.get("rank") or "").strip()
            rank = int(rank_str) if rank_str else None
            sites.append(SiteInfo(url=url, domain=domain, category=category, rank=rank))
    return sites


def _format_eta(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m {int(seconds % 60)}s"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


def _print_report(report: FacadeReport, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report_to_dict(report), indent=2))
    else:
        print(format_report(report))
        print()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("playwright").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)


def _load_third_party_db(config: FinderConfig) -> ThirdPartyDatabase:
    entities_path = config.third_party.entities_path
    if entities_path:
        return ThirdPartyDatabase(entities_path=config.resolve_path(entities_path))
    return ThirdPartyDatabase()


def run_offline(paths: list[str], config: FinderConfig, as_json: bool) -> int:
    """Audit saved captures. Returns the number of captures that failed to load."""
    third_party_db = _load_third_party_db(config)
    failures = 0
    for path in paths:
        try:
            capture = load_capture(path)
        except CaptureFormatError as e:
            logger.error("%s", e)
            failures += 1
            continue
        report = audit_capture(capture, third_party_db, config.audit)
        _print_report(report, as_json)
    return failures


async def run_crawl(args: argparse.Namespace, config: FinderConfig) -> None:
    """Capture and audit each site, storing results in the database."""
    if args.url:
        sites = [
            SiteInfo(url=normalize_url(u), domain=extract_registered_domain(u))
            for u in args.url
        ]
    else:
        sites_path = config.resolve_path(args.sites or config.sites_file)
        if not sites_path.exists():
            logger.error("Sites file not found: %s", sites_path)
            sys.exit(1)
        sites = load_sites_csv(sites_path)
    if args.limit:
        sites = sites[: args.limit]

    db = Database(config.resolve_path(config.database.path))
    await db.connect()
    third_party_db = _load_third_party_db(config)
    captures_dir = Path(args.save_captures) if args.save_captures else None

    tasks: list[SiteInfo] = []
    for site in sites:
        if args.resume and await db.has_session(site.domain):
            logger.debug("Skipping %s — already audited", site.domain)
            continue
        tasks.append(site)

    if not tasks:
        logger.info("No sites to audit. Use without --resume to re-audit.")
        await db.close()
        return

    total = len(tasks)
    logger.info("Starting crawl: %d sites, concurrency: %d", total, config.crawler.concurrency)

    completed = 0
    errors = 0
    crawl_start = time.monotonic()

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=config.crawler.headless)
        logger.info("Browser launched (headless=%s)", config.crawler.headless)
        sem = asyncio.Semaphore(config.crawler.concurrency)

        async def run_task(site: SiteInfo) -> None:
            nonlocal completed, errors

            async with sem:
                for attempt in range(config.crawler.max_retries + 1):
                    capture = await capture_page(browser, site, config)
                    if capture.status == CaptureStatus.SUCCESS or attempt >= config.crawler.max_retries:
                        break
                    logger.info("Retrying %s — attempt %d/%d",
                                site.domain, attempt + 2, config.crawler.max_retries + 1)
                    await asyncio.sleep(1)

                if captures_dir:
                    save_capture(capture, captures_dir / f"{site.domain}.json")

                report = None
                if capture.status == CaptureStatus.SUCCESS:
                    report = audit_capture(capture, third_party_db, config.audit)

                try:
                    await db.save_audit(capture, report)
                except Exception as e:
                    logger.error("Failed to save result for %s: %s", site.domain, e)

                completed += 1
                if capture.status != CaptureStatus.SUCCESS:
                    errors += 1

                elapsed = time.monotonic() - crawl_start
                rate = completed / elapsed if elapsed > 0 else 0
                eta = (total - completed) / rate if rate > 0 else 0

                status_icon = "OK" if capture.status == CaptureStatus.SUCCESS else capture.status.value.upper()
                products = ", ".join(r.product_name for r in report.rows) if report and report.rows else "-"
                print(
                    f"[{completed:>4}/{total}] {status_icon:<7} "
                    f"{site.domain:<30} | {len(capture.requests):>3} req "
                    f"| facades: {products} | ETA {_format_eta(eta)}"
                )
                if report and args.verbose:
                    _print_report(report, args.json)

                await asyncio.sleep(config.crawler.inter_site_delay_ms / 1000)

        await asyncio.gather(*(run_task(s) for s in tasks))
        await browser.close()

    elapsed = time.monotonic() - crawl_start
    stats = await db.get_stats()
    product_totals = await db.get_product_totals()
    await db.close()

    print("\n" + "=" * 70)
    print("CRAWL COMPLETE")
    print("=" * 70)
    print(f"  Duration:           {_format_eta(elapsed)}")
    print(f"  Sites:              {completed}/{total} ({errors} errors)")
    print(f"  With facades:       {stats.get('sessions_with_facades', 0):,}")
    for product in product_totals:
        print(f"    {product['product']:<36} {product['sites']:>4} sites "
              f"{(product['transfer_size'] or 0) / 1024:>10,.0f} KiB")
    print(f"  Database:           {db.db_path}")
    print("=" * 70)


async def main(args: argparse.Namespace) -> None:
    """Main entry: audit saved captures, or crawl and audit live sites."""
    _setup_logging(args.verbose)

    config = load_config(Path(args.config).resolve())
    if args.concurrency:
        config.crawler.concurrency = args.concurrency
    if args.headed:
        config.crawler.headless = False

    if args.capture:
        failures = run_offline(args.capture, config, args.json)
        if failures == len(args.capture):
            logger.error("No capture could be audited")
            sys.exit(1)
        return

    await run_crawl(args, config)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main(parse_args()))
