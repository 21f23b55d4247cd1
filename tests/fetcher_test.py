import io
import time
import unittest
from unittest.mock import MagicMock

import requests
from requests.adapters import BaseAdapter

from probe.core import MAX_REDIRECTS
from probe.fetcher import HeadProber, build_session


class SelfRedirectAdapter(BaseAdapter):
    """Answers every request with a 301 pointing back at the same URL."""

    def __init__(self, delay=0.0):
        super().__init__()
        self.delay = delay
        self.calls = 0

    def send(self, request, **kwargs):
        self.calls += 1
        time.sleep(self.delay)
        response = requests.Response()
        response.status_code = 301
        response.reason = "Moved Permanently"
        response.headers["Location"] = request.url
        response.url = request.url
        response.request = request
        response.raw = io.BytesIO(b"")
        response.connection = self
        return response

    def close(self):
        pass


class TestHeadProber(unittest.TestCase):
    def setUp(self):
        self.mock_http = MagicMock()
        self.prober = HeadProber(http=self.mock_http, timeout=3)

    def test_successful_probe(self):
        response = self.mock_http.head.return_value
        response.status_code = 301
        response.headers = {"Location": "https://example.netlify.app/", "X-NF-Request-Id": "abc"}
        response.url = "https://example.com"

        result = self.prober.head("https://example.com", user_agent="AuditBot/2.0", follow_redirects=False)

        self.mock_http.head.assert_called_once()
        args, kwargs = self.mock_http.head.call_args
        self.assertEqual(args, ("https://example.com",))
        self.assertEqual(kwargs["headers"], {"User-Agent": "AuditBot/2.0"})
        self.assertFalse(kwargs["allow_redirects"])
        self.assertEqual(kwargs["timeout"], 3)
        self.assertIn("response", kwargs["hooks"])
        self.assertEqual(result.status_code, 301)
        self.assertEqual(result.location, "https://example.netlify.app/")
        self.assertEqual(result.header("x-nf-request-id"), "abc")
        self.assertIsNone(result.header("cf-ray"))

    def test_final_url_defaults_to_request_url(self):
        response = self.mock_http.head.return_value
        response.status_code = 200
        response.headers = {}

        result = self.prober.head("https://example.com")

        self.assertEqual(result.final_url, "https://example.com")
        self.assertIsNone(result.location)

    def test_network_failures_return_none(self):
        for error in (
            requests.exceptions.Timeout("slow"),
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.TooManyRedirects("loop"),
        ):
            self.mock_http.head.side_effect = error
            self.assertIsNone(self.prober.head("https://example.com"))

    def test_unexpected_errors_propagate(self):
        self.mock_http.head.side_effect = RuntimeError("bug")
        with self.assertRaises(RuntimeError):
            self.prober.head("https://example.com")

    def test_injected_client_is_not_closed(self):
        self.prober.close()
        self.mock_http.close.assert_not_called()


class TestRedirectBudget(unittest.TestCase):

    def test_default_session_caps_redirects(self):
        prober = HeadProber()
        self.assertEqual(prober._http.max_redirects, MAX_REDIRECTS)
        prober.close()

    def test_redirect_loop_stops_at_hop_limit(self):
        session = build_session()
        adapter = SelfRedirectAdapter()
        session.mount("https://", adapter)

        result = HeadProber(http=session, timeout=5).head("https://loop.example.com/")

        self.assertIsNone(result)
        self.assertLessEqual(adapter.calls, MAX_REDIRECTS + 1)

    def test_slow_redirect_loop_stops_at_probe_deadline(self):
        """Scenario: every hop is well inside the timeout, the chain is not."""
        session = build_session(max_redirects=50)
        adapter = SelfRedirectAdapter(delay=0.05)
        session.mount("https://", adapter)

        start = time.time()
        result = HeadProber(http=session, timeout=0.2).head("https://loop.example.com/")
        elapsed = time.time() - start

        self.assertIsNone(result)
        self.assertLess(elapsed, 1.0)
        self.assertLess(adapter.calls, 50)

    def test_redirects_not_followed_when_disabled(self):
        session = build_session()
        adapter = SelfRedirectAdapter()
        session.mount("https://", adapter)

        result = HeadProber(http=session, timeout=5).head("https://loop.example.com/", follow_redirects=False)

        self.assertEqual(result.status_code, 301)
        self.assertEqual(result.location, "https://loop.example.com/")
        self.assertEqual(adapter.calls, 1)


if __name__ == "__main__":
    unittest.main()
