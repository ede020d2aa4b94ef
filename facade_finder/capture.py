"""Playwright page capture and capture file I/O.

Loads a single site in a fresh browser context, records every finished
request with its timing and transfer size, records a Chrome trace for
main thread work, and returns a PageCapture. Captures can be saved to and
loaded from JSON so audits can be re-run offline.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict
from pathlib import Path

from playwright.async_api import Browser, Request as PWRequest

from .config import FinderConfig
from .models import CaptureStatus, MainThreadTask, NetworkRequest, PageCapture, SiteInfo
from .trace import parse_main_thread_tasks
from .utils import now_iso

logger = logging.getLogger(__name__)

TRACE_CATEGORIES = [
    "devtools.timeline",
    "disabled-by-default-devtools.timeline",
    "disabled-by-default-devtools.timeline.stack",
    "v8.execute",
    "toplevel",
]


class CaptureFormatError(ValueError):
    """A capture file could not be read."""


async def _record_request(request: PWRequest, nav_start_ms: float) -> NetworkRequest:
    timing = request.timing
    start = timing.get("startTime", nav_start_ms) - nav_start_ms
    response_start = timing.get("responseStart", -1)
    response_end = timing.get("responseEnd", -1)

    transfer_size = 0
    try:
        sizes = await request.sizes()
        transfer_size = sizes.get("responseBodySize", 0) + sizes.get("responseHeadersSize", 0)
    except Exception as e:
        logger.debug("No sizes for %s: %s", request.url, e)

    status_code = None
    response = await request.response()
    if response is not None:
        status_code = response.status

    return NetworkRequest(
        url=request.url,
        resource_type=request.resource_type,
        transfer_size=max(transfer_size, 0),
        start_time=start,
        response_received_time=start + response_start if response_start >= 0 else None,
        end_time=start + response_end if response_end >= 0 else None,
        status_code=status_code,
    )


async def capture_page(browser: Browser, site: SiteInfo, config: FinderConfig) -> PageCapture:
    """Load a site and capture its network requests and main thread tasks.

    Never raises for page-level failures: timeouts and errors come back
    as a PageCapture with the matching status and whatever was recorded.
    """
    started_at = now_iso()
    captured_requests: list[NetworkRequest] = []
    tasks: list[MainThreadTask] = []
    pending: list[asyncio.Task] = []
    nav_start_ms = time.time() * 1000

    def on_request_finished(request: PWRequest) -> None:
        pending.append(asyncio.ensure_future(_record_request(request, nav_start_ms)))

    async def collect_requests() -> None:
        for result in await asyncio.gather(*pending, return_exceptions=True):
            if isinstance(result, NetworkRequest):
                captured_requests.append(result)
            else:
                logger.debug("Dropped request record on %s: %s", site.domain, result)
        pending.clear()

    context = None
    page = None
    tracing = False
    try:
        context = await browser.new_context(
            locale=config.browser.locale,
            viewport={
                "width": config.browser.viewport.width,
                "height": config.browser.viewport.height,
            },
            user_agent=config.browser.user_agent or None,
        )
        page = await context.new_page()
        page.on("requestfinished", on_request_finished)

        if config.crawler.trace:
            await browser.start_tracing(page=page, categories=TRACE_CATEGORIES)
            tracing = True

        nav_start_ms = time.time() * 1000
        try:
            await page.goto(site.url, timeout=config.crawler.page_timeout_ms, wait_until="load")
        except Exception as e:
            error_str = str(e)
            if "timeout" in error_str.lower():
                logger.warning("Timeout loading %s", site.url)
                await collect_requests()
                return PageCapture(
                    site=site,
                    status=CaptureStatus.TIMEOUT,
                    requested_url=site.url,
                    started_at=started_at,
                    completed_at=now_iso(),
                    requests=captured_requests,
                    error=error_str,
                )
            raise

        # Embeds keep loading after the load event
        await asyncio.sleep(config.crawler.dwell_ms / 1000)

        if tracing:
            trace_bytes = await browser.stop_tracing()
            tracing = False
            try:
                tasks = parse_main_thread_tasks(json.loads(trace_bytes))
            except json.JSONDecodeError as e:
                logger.warning("Unreadable trace for %s: %s", site.url, e)

        final_url = page.url
        await collect_requests()

        return PageCapture(
            site=site,
            status=CaptureStatus.SUCCESS,
            requested_url=site.url,
            final_url=final_url,
            started_at=started_at,
            completed_at=now_iso(),
            requests=captured_requests,
            tasks=tasks,
        )

    except Exception as e:
        logger.error("Error capturing %s: %s", site.url, e)
        await collect_requests()
        return PageCapture(
            site=site,
            status=CaptureStatus.ERROR,
            requested_url=site.url,
            started_at=started_at,
            completed_at=now_iso(),
            requests=captured_requests,
            error=str(e),
        )
    finally:
        if page is not None:
            page.remove_listener("requestfinished", on_request_finished)
        if tracing:
            try:
                await browser.stop_tracing()
            except Exception:
                logger.debug("stop_tracing failed for %s", site.url)
        if context:
            try:
                await context.close()
            except Exception:
                logger.debug("Context close failed for %s", site.url)
        # Requests that finished after the last collect are not recorded
        for task in pending:
            task.cancel()


def capture_to_dict(capture: PageCapture) -> dict:
    data = asdict(capture)
    data["status"] = capture.status.value
    return data


def capture_from_dict(data: dict) -> PageCapture:
    try:
        site_data = data.get("site") or {}
        requested_url = data.get("requested_url") or site_data.get("url") or data.get("url", "")
        site = SiteInfo(
            url=site_data.get("url", requested_url),
            domain=site_data.get("domain", ""),
            category=site_data.get("category"),
            rank=site_data.get("rank"),
        )
        return PageCapture(
            site=site,
            status=CaptureStatus(data.get("status", CaptureStatus.SUCCESS.value)),
            requested_url=requested_url,
            final_url=data.get("final_url"),
            started_at=data.get("started_at", ""),
            completed_at=data.get("completed_at", ""),
            requests=[NetworkRequest(**r) for r in data.get("requests", [])],
            tasks=[MainThreadTask(**t) for t in data.get("tasks", [])],
            error=data.get("error"),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise CaptureFormatError(f"Invalid capture data: {e}") from e


def load_capture(path: str | Path) -> PageCapture:
    """Load a capture saved by save_capture (or written by hand)."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CaptureFormatError(f"Cannot read capture {path}: {e}") from e
    if not isinstance(data, dict):
        raise CaptureFormatError(f"Capture {path} is not a JSON object")
    return capture_from_dict(data)


def save_capture(capture: PageCapture, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(capture_to_dict(capture), f, indent=2)
    return path
