"""Per-URL network and main thread cost.

Aggregates captured requests and main thread tasks into one
URLCostSummary per URL, the input of product attribution.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .models import MainThreadTask, NetworkRequest, URLCostSummary
from .utils import strip_fragment

logger = logging.getLogger(__name__)

# Main thread time beyond this counts as blocking
BLOCKING_TIME_THRESHOLD_MS = 50


@dataclass
class _Accumulator:
    transfer_size: float = 0
    blocking_time: float = 0
    main_thread_time: float = 0
    first_start_time: float = math.inf
    first_content_available: float = math.inf


def get_summaries(
    requests: list[NetworkRequest],
    tasks: list[MainThreadTask],
    cpu_multiplier: float = 1.0,
) -> dict[str, URLCostSummary]:
    """Compute a cost summary for every URL seen in requests or tasks."""
    by_url: dict[str, _Accumulator] = {}

    for request in requests:
        acc = by_url.setdefault(strip_fragment(request.url), _Accumulator())
        acc.transfer_size += request.transfer_size or 0
        acc.first_start_time = min(acc.first_start_time, request.start_time)
        content_available = request.response_received_time
        if content_available is None:
            content_available = request.start_time
        acc.first_content_available = min(acc.first_content_available, content_available)

    for task in tasks:
        if not task.attributable_urls:
            continue
        acc = by_url.setdefault(strip_fragment(task.attributable_urls[0]), _Accumulator())
        duration = task.duration * cpu_multiplier
        acc.main_thread_time += duration
        acc.blocking_time += max(duration - BLOCKING_TIME_THRESHOLD_MS, 0)

    summaries = {}
    for url, acc in by_url.items():
        # Script URLs seen only on the main thread have no network timing.
        first_start = 0 if acc.first_start_time == math.inf else acc.first_start_time
        first_content = first_start if acc.first_content_available == math.inf else acc.first_content_available
        summaries[url] = URLCostSummary(
            url=url,
            transfer_size=acc.transfer_size,
            blocking_time=acc.blocking_time,
            main_thread_time=acc.main_thread_time,
            first_start_time=first_start,
            first_content_available=first_content,
        )

    logger.debug("Summarized %d requests and %d tasks into %d URLs",
                 len(requests), len(tasks), len(summaries))
    return summaries
