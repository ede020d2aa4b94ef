import unittest

from facade_finder.cost_summary import get_summaries
from facade_finder.models import MainThreadTask, NetworkRequest
from facade_finder.trace import parse_main_thread_tasks

SCRIPT = "https://www.youtube.com/s/player/base.js"


class TestGetSummaries(unittest.TestCase):
    def test_network_totals_and_first_times(self):
        summaries = get_summaries([
            NetworkRequest(url=SCRIPT, transfer_size=1000, start_time=300, response_received_time=350),
            NetworkRequest(url=SCRIPT, transfer_size=500, start_time=100, response_received_time=400),
            NetworkRequest(url="https://i.ytimg.com/a.jpg", transfer_size=200, start_time=50),
        ], [])

        script = summaries[SCRIPT]
        self.assertEqual(script.transfer_size, 1500)
        self.assertEqual(script.first_start_time, 100)
        self.assertEqual(script.first_content_available, 350)
        # No response time falls back to the start time
        self.assertEqual(summaries["https://i.ytimg.com/a.jpg"].first_content_available, 50)

    def test_fragments_share_one_url(self):
        summaries = get_summaries([
            NetworkRequest(url="https://a.example/x.js#one", transfer_size=10),
            NetworkRequest(url="https://a.example/x.js#two", transfer_size=20),
        ], [])
        self.assertEqual(list(summaries), ["https://a.example/x.js"])
        self.assertEqual(summaries["https://a.example/x.js"].transfer_size, 30)

    def test_blocking_time_counts_beyond_fifty_ms(self):
        summaries = get_summaries(
            [NetworkRequest(url=SCRIPT, transfer_size=1000, start_time=10)],
            [
                MainThreadTask(start_time=100, duration=120, attributable_urls=[SCRIPT]),
                MainThreadTask(start_time=300, duration=30, attributable_urls=[SCRIPT]),
                MainThreadTask(start_time=400, duration=500, attributable_urls=[]),
            ],
        )
        self.assertEqual(summaries[SCRIPT].main_thread_time, 150)
        self.assertEqual(summaries[SCRIPT].blocking_time, 70)

    def test_cpu_multiplier_scales_task_time(self):
        summaries = get_summaries(
            [],
            [MainThreadTask(start_time=0, duration=30, attributable_urls=[SCRIPT, "https://other/"])],
            cpu_multiplier=4,
        )
        self.assertEqual(summaries[SCRIPT].main_thread_time, 120)
        self.assertEqual(summaries[SCRIPT].blocking_time, 70)
        self.assertEqual(summaries[SCRIPT].transfer_size, 0)
        self.assertNotIn("https://other/", summaries)


class TestParseMainThreadTasks(unittest.TestCase):
    def trace(self):
        meta = [
            {"ph": "M", "name": "thread_name", "pid": 1, "tid": 10, "args": {"name": "CrRendererMain"}},
            {"ph": "M", "name": "thread_name", "pid": 1, "tid": 11, "args": {"name": "Compositor"}},
        ]
        events = [
            {"ph": "X", "name": "RunTask", "pid": 1, "tid": 10, "ts": 1000, "dur": 80000},
            {"ph": "X", "name": "EvaluateScript", "pid": 1, "tid": 10, "ts": 1500, "dur": 50000,
             "args": {"data": {"url": SCRIPT}}},
            {"ph": "X", "name": "FunctionCall", "pid": 1, "tid": 10, "ts": 2000, "dur": 1000,
             "args": {"data": {"stackTrace": [{"url": SCRIPT}, {"url": "https://i.ytimg.com/x.js"}]}}},
            # Nested RunTask folds into its parent
            {"ph": "X", "name": "RunTask", "pid": 1, "tid": 10, "ts": 60000, "dur": 1000},
            {"ph": "X", "name": "RunTask", "pid": 1, "tid": 10, "ts": 200000, "dur": 10000},
            {"ph": "X", "name": "RunTask", "pid": 1, "tid": 11, "ts": 300000, "dur": 90000},
        ]
        return {"traceEvents": meta + events}

    def test_top_level_tasks_with_urls(self):
        tasks = parse_main_thread_tasks(self.trace())

        self.assertEqual(len(tasks), 2)
        self.assertEqual(tasks[0].start_time, 1)
        self.assertEqual(tasks[0].duration, 80)
        self.assertEqual(tasks[0].attributable_urls, [SCRIPT, "https://i.ytimg.com/x.js"])
        self.assertEqual(tasks[1].start_time, 200)
        self.assertEqual(tasks[1].attributable_urls, [])

    def test_bare_event_list(self):
        self.assertEqual(len(parse_main_thread_tasks(self.trace()["traceEvents"])), 2)

    def test_trace_without_main_thread(self):
        self.assertEqual(parse_main_thread_tasks({"traceEvents": []}), [])


if __name__ == "__main__":
    unittest.main()
