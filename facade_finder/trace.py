"""Chrome trace parsing into top-level renderer main thread tasks.

Only what cost attribution needs is extracted: when each top-level task ran,
how long it took, and which script URLs its nested events point at.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from .models import MainThreadTask

logger = logging.getLogger(__name__)

MAIN_THREAD_NAME = "CrRendererMain"
TOP_LEVEL_TASK_NAMES = frozenset({"RunTask", "ThreadControllerImpl::RunTask", "ThreadControllerImpl::DoWork"})


def _event_urls(event: dict) -> list[str]:
    """Script URLs referenced by a single trace event."""
    urls: list[str] = []
    args = event.get("args") or {}
    for key in ("data", "beginData"):
        data = args.get(key)
        if not isinstance(data, dict):
            continue
        url = data.get("url")
        if url:
            urls.append(url)
        for frame in data.get("stackTrace") or []:
            if isinstance(frame, dict) and frame.get("url"):
                urls.append(frame["url"])
    return urls


def _find_main_thread(events: list[dict]) -> tuple[int, int] | None:
    """(pid, tid) of the busiest renderer main thread."""
    candidates = {
        (e.get("pid"), e.get("tid"))
        for e in events
        if e.get("ph") == "M"
        and e.get("name") == "thread_name"
        and (e.get("args") or {}).get("name") == MAIN_THREAD_NAME
    }
    if not candidates:
        return None

    busy: Counter = Counter()
    for e in events:
        key = (e.get("pid"), e.get("tid"))
        if key in candidates and e.get("ph") == "X" and e.get("name") in TOP_LEVEL_TASK_NAMES:
            busy[key] += e.get("dur", 0)
    if busy:
        return busy.most_common(1)[0][0]
    return sorted(candidates)[0]


def parse_main_thread_tasks(trace: dict | list) -> list[MainThreadTask]:
    """Extract top-level main thread tasks from a trace.

    Accepts either a bare list of events or ``{"traceEvents": [...]}``.
    Nested tasks are folded into their top-level parent.
    """
    events = trace.get("traceEvents", []) if isinstance(trace, dict) else trace
    main_thread = _find_main_thread(events)
    if main_thread is None:
        logger.debug("No %s thread found in trace", MAIN_THREAD_NAME)
        return []

    thread_events = sorted(
        (e for e in events
         if (e.get("pid"), e.get("tid")) == main_thread and e.get("ph") == "X" and "ts" in e),
        key=lambda e: (e["ts"], -e.get("dur", 0)),
    )

    tasks: list[MainThreadTask] = []
    urls_by_task: dict[int, list[str]] = defaultdict(list)
    current_end = -1.0
    for event in thread_events:
        ts = event["ts"]
        dur = event.get("dur", 0)
        if event.get("name") in TOP_LEVEL_TASK_NAMES and ts >= current_end:
            tasks.append(MainThreadTask(start_time=ts / 1000, duration=dur / 1000))
            current_end = ts + dur
        if not tasks or ts >= current_end:
            continue
        for url in _event_urls(event):
            task_urls = urls_by_task[len(tasks) - 1]
            if url not in task_urls:
                task_urls.append(url)

    for index, urls in urls_by_task.items():
        tasks[index].attributable_urls = urls

    logger.debug("Parsed %d top-level main thread tasks", len(tasks))
    return tasks
