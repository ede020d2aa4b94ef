import json
import unittest

from facade_finder.audit import audit_capture
from facade_finder.config import AuditSettings
from facade_finder.facades import OTHER_RESOURCES_LABEL
from facade_finder.models import (
    CaptureStatus,
    MainThreadTask,
    NetworkRequest,
    PageCapture,
    Product,
    ProductSummary,
    SiteInfo,
    URLCostSummary,
)
from facade_finder.report import (
    build_report,
    display_value,
    format_report,
    product_display_name,
    report_to_dict,
)
from facade_finder.third_party_db import ThirdPartyDatabase


class TestProductDisplayName(unittest.TestCase):
    def test_known_categories(self):
        self.assertEqual(product_display_name("YouTube Embedded Player", "video"),
                         "YouTube Embedded Player (Video)")
        self.assertEqual(product_display_name("Intercom Widget", "customer-success"),
                         "Intercom Widget (Customer Success)")
        self.assertEqual(product_display_name("Drift Live Chat", "marketing"),
                         "Drift Live Chat (Marketing)")

    def test_unknown_category_is_bare_name(self):
        self.assertEqual(product_display_name("Widget", "analytics"), "Widget")
        self.assertEqual(product_display_name("Widget", None), "Widget")

    def test_display_value_plural(self):
        self.assertEqual(display_value(1), "1 facade alternative available")
        self.assertEqual(display_value(3), "3 facade alternatives available")


class TestBuildReport(unittest.TestCase):
    def product_summary(self, sizes):
        summary = ProductSummary(
            product=Product(name="Vimeo Embedded Player", categories=("video",)),
            start_of_product_requests=120,
        )
        for i, size in enumerate(sizes):
            summary.add(URLCostSummary(url=f"https://f.vimeocdn.com/{i}", transfer_size=size,
                                       blocking_time=1))
        return summary

    def test_items_sorted_and_condensed(self):
        report = build_report("https://site.example/", [self.product_summary([100, 5000, 800, 4000, 900])])

        self.assertFalse(report.not_applicable)
        self.assertEqual(report.score, 0)
        self.assertEqual(report.display_value, "1 facade alternative available")
        row = report.rows[0]
        self.assertEqual(row.product, "Vimeo Embedded Player (Video)")
        self.assertEqual(row.transfer_size, 10800)
        self.assertEqual(row.blocking_time, 5)
        self.assertEqual([i.transfer_size for i in row.items], [5000, 4000, 1800])
        self.assertEqual(row.items[-1].url, OTHER_RESOURCES_LABEL)

    def test_empty_summaries_not_applicable(self):
        report = build_report("https://site.example/", [])
        self.assertTrue(report.not_applicable)
        self.assertEqual(report.score, 1)
        self.assertEqual(report.rows, [])
        self.assertIn("not applicable", format_report(report))

    def test_report_serializes_to_json(self):
        report = build_report("https://site.example/", [self.product_summary([5000])])
        data = json.loads(json.dumps(report_to_dict(report)))
        self.assertEqual(data["rows"][0]["product_name"], "Vimeo Embedded Player")
        self.assertIn("Vimeo Embedded Player (Video)", format_report(report))


class TestAuditCapture(unittest.TestCase):
    def setUp(self):
        self.db = ThirdPartyDatabase()

    def capture(self, url, requests, tasks=()):
        return PageCapture(
            site=SiteInfo(url=url, domain=""),
            status=CaptureStatus.SUCCESS,
            requested_url=url,
            final_url=url,
            requests=list(requests),
            tasks=list(tasks),
        )

    def test_embedded_video_on_third_party_page(self):
        capture = self.capture("https://blog.example/post", [
            NetworkRequest(url="https://blog.example/post", transfer_size=30000, start_time=0),
            NetworkRequest(url="https://www.youtube.com/embed/abc", transfer_size=50000,
                           start_time=100, response_received_time=200),
            NetworkRequest(url="https://www.youtube.com/s/player/base.js", transfer_size=20000,
                           start_time=300, response_received_time=350),
            NetworkRequest(url="https://i.ytimg.com/vi/abc/sddefault.webp", transfer_size=600,
                           start_time=320),
        ], [
            MainThreadTask(start_time=400, duration=110,
                           attributable_urls=["https://www.youtube.com/s/player/base.js"]),
        ])

        report = audit_capture(capture, self.db)

        self.assertEqual(len(report.rows), 1)
        row = report.rows[0]
        self.assertEqual(row.product, "YouTube Embedded Player (Video)")
        self.assertEqual(row.transfer_size, 70600)
        self.assertEqual(row.blocking_time, 60)
        self.assertEqual(row.start_of_product_requests, 200)
        self.assertEqual([i.transfer_size for i in row.items], [50000, 20000, 600])
        self.assertEqual(row.items[-1].url, OTHER_RESOURCES_LABEL)

    def test_simulated_throttling_multiplies_blocking_time(self):
        capture = self.capture("https://blog.example/post", [
            NetworkRequest(url="https://www.youtube.com/embed/abc", transfer_size=50000, start_time=100),
        ], [
            MainThreadTask(start_time=400, duration=20,
                           attributable_urls=["https://www.youtube.com/embed/abc"]),
        ])
        settings = AuditSettings(throttling_method="simulate", cpu_slowdown_multiplier=4)

        report = audit_capture(capture, self.db, settings)
        self.assertEqual(report.rows[0].blocking_time, 30)

    def test_first_party_page_is_not_applicable(self):
        capture = self.capture("https://www.youtube.com/watch?v=abc", [
            NetworkRequest(url="https://www.youtube.com/embed/abc", transfer_size=50000, start_time=100),
            NetworkRequest(url="https://i.ytimg.com/vi/abc/0.jpg", transfer_size=9000, start_time=300),
        ])
        report = audit_capture(capture, self.db)
        self.assertTrue(report.not_applicable)
        self.assertEqual(report.rows, [])


if __name__ == "__main__":
    unittest.main()
