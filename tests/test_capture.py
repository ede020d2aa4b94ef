import asyncio
import time
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from facade_finder.capture import capture_page
from facade_finder.config import FinderConfig
from facade_finder.models import CaptureStatus, SiteInfo


def _finished_request(url, sizes):
    request = MagicMock()
    request.url = url
    request.resource_type = "script"
    request.timing = {"startTime": time.time() * 1000 + 10, "responseStart": 5, "responseEnd": 8}
    request.sizes = sizes
    request.response = AsyncMock(return_value=None)
    return request


class TestCapturePage(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.config = FinderConfig()
        self.config.crawler.trace = False
        self.config.crawler.dwell_ms = 0
        self.site = SiteInfo(url="https://blog.example/", domain="blog.example")

        self.page = MagicMock()
        self.page.url = "https://blog.example/"
        self.context = MagicMock()
        self.context.new_page = AsyncMock(return_value=self.page)
        self.context.close = AsyncMock()
        self.browser = MagicMock()
        self.browser.new_context = AsyncMock(return_value=self.context)

    def _handler(self):
        event, handler = self.page.on.call_args.args
        self.assertEqual(event, "requestfinished")
        return handler

    async def test_late_requests_are_detached_and_cancelled(self):
        loaded = _finished_request(
            "https://www.youtube.com/embed/abc",
            AsyncMock(return_value={"responseBodySize": 900, "responseHeadersSize": 100}),
        )
        self.page.goto = AsyncMock(side_effect=lambda *a, **kw: self._handler()(loaded))

        async def never_sized():
            await asyncio.Event().wait()

        # A request that finishes while the context is closing
        late = _finished_request("https://i.ytimg.com/vi/abc/0.jpg", never_sized)
        detached_before_close = []

        def close_context():
            detached_before_close.append(self.page.remove_listener.called)
            self._handler()(late)

        self.context.close = AsyncMock(side_effect=close_context)

        created = []
        ensure_future = asyncio.ensure_future

        def track(coro):
            task = ensure_future(coro)
            created.append(task)
            return task

        with patch("facade_finder.capture.asyncio.ensure_future", side_effect=track):
            capture = await capture_page(self.browser, self.site, self.config)
        await asyncio.sleep(0)

        self.assertEqual(capture.status, CaptureStatus.SUCCESS)
        self.assertEqual([r.url for r in capture.requests], ["https://www.youtube.com/embed/abc"])
        self.assertEqual(capture.requests[0].transfer_size, 1000)
        self.page.remove_listener.assert_called_once_with("requestfinished", self._handler())
        self.assertEqual(detached_before_close, [True])
        self.assertEqual(len(created), 2)
        self.assertTrue(all(task.done() for task in created))
        self.assertTrue(created[1].cancelled())

    async def test_navigation_error_still_detaches_listener(self):
        self.page.goto = AsyncMock(side_effect=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))

        capture = await capture_page(self.browser, self.site, self.config)

        self.assertEqual(capture.status, CaptureStatus.ERROR)
        self.assertIn("ERR_NAME_NOT_RESOLVED", capture.error)
        self.page.remove_listener.assert_called_once_with("requestfinished", self._handler())
        self.context.close.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
