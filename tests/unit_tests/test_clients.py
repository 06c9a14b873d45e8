"""
Unit tests for ReleaseClient.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from clients import ReleaseClient
from errors import NetworkError


def response(status_code=200, json_data=None, text="", headers=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.headers = headers or {}
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


class TestReleaseClient(unittest.TestCase):
    """Test ReleaseClient REST API interactions."""

    def setUp(self):
        """Set up test fixtures."""
        self.client = ReleaseClient(max_retries=2)
        self.client.session = MagicMock()

    def test_client_initialization(self):
        """Test client is properly initialised."""
        client = ReleaseClient()
        self.assertEqual(client.repo, "actions/runner")
        self.assertEqual(client.timeout_s, 60)
        self.assertEqual(client.max_retries, 2)
        self.assertNotIn("Authorization", client.session.headers)

    def test_token_sets_authorization_header(self):
        client = ReleaseClient(token="ghp_test")
        self.assertEqual(client.session.headers["Authorization"], "Bearer ghp_test")

    def test_url_construction(self):
        """Test API URL construction."""
        url = self.client._url("repos/actions/runner/releases/latest")
        self.assertEqual(url, "https://api.github.com/repos/actions/runner/releases/latest")

    def test_get_latest_tag(self):
        self.client.session.get.return_value = response(
            200, {"tag_name": "v2.319.1", "draft": False, "prerelease": False}
        )

        self.assertEqual(self.client.get_latest_tag(), "v2.319.1")
        url = self.client.session.get.call_args[0][0]
        self.assertTrue(url.endswith("/repos/actions/runner/releases/latest"))

    def test_missing_tag_raises(self):
        self.client.session.get.return_value = response(200, {"name": "Release"})

        with self.assertRaises(NetworkError):
            self.client.get_latest_tag()

    def test_prerelease_rejected(self):
        self.client.session.get.return_value = response(
            200, {"tag_name": "v2.400.0-rc1", "prerelease": True}
        )

        with self.assertRaises(NetworkError):
            self.client.get_latest_tag()

    def test_not_found_raises(self):
        self.client.session.get.return_value = response(404, text="Not Found")

        with self.assertRaises(NetworkError) as ctx:
            self.client.get_latest_release()

        self.assertIn("404", str(ctx.exception))

    def test_invalid_json_raises(self):
        self.client.session.get.return_value = response(200, ValueError("bad json"))

        with self.assertRaises(NetworkError):
            self.client.get_latest_release()

    @patch("clients.time.sleep")
    def test_retry_on_transient_status(self, mock_sleep):
        """Transient 503s are retried with backoff."""
        self.client.session.get.side_effect = [
            response(503, text="unavailable"),
            response(200, {"tag_name": "v2.319.1"}),
        ]

        self.assertEqual(self.client.get_latest_tag(), "v2.319.1")
        self.assertEqual(mock_sleep.call_count, 1)

    @patch("clients.time.sleep")
    def test_unreachable_endpoint_raises(self, mock_sleep):
        """Connection errors become NetworkError once retries are exhausted."""
        self.client.session.get.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(NetworkError) as ctx:
            self.client.get_latest_tag()

        self.assertIn("refused", str(ctx.exception))
        self.assertEqual(self.client.session.get.call_count, 3)
        self.assertEqual(mock_sleep.call_count, 2)

    @patch("clients.time.sleep")
    def test_persistent_server_error(self, mock_sleep):
        """A 5xx that never clears is reported as a failure."""
        self.client.session.get.return_value = response(502, text="bad gateway")

        with self.assertRaises(NetworkError):
            self.client.get_latest_release()

    def test_retry_after_header(self):
        resp = response(429, headers={"Retry-After": "7"})
        self.assertEqual(self.client._calculate_delay(0, resp), 7.0)

    def test_backoff_is_exponential(self):
        self.assertEqual(self.client._calculate_delay(0), 2.0)
        self.assertEqual(self.client._calculate_delay(2), 8.0)


class TestDownload(unittest.TestCase):
    """Tests for ReleaseClient.download."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dest = Path(self._tmp.name) / "runner.tar.gz"
        self.client = ReleaseClient()
        self.client.session = MagicMock()

    def tearDown(self):
        self._tmp.cleanup()

    def streamed(self, status_code=200, chunks=()):
        resp = MagicMock()
        resp.status_code = status_code
        resp.iter_content.return_value = list(chunks)
        resp.__enter__.return_value = resp
        return resp

    def test_download_writes_file(self):
        self.client.session.get.return_value = self.streamed(200, [b"abc", b"", b"def"])

        path = self.client.download("https://example/runner.tar.gz", self.dest)

        self.assertEqual(path, self.dest)
        self.assertEqual(self.dest.read_bytes(), b"abcdef")
        self.assertTrue(self.client.session.get.call_args[1]["stream"])

    def test_download_http_error(self):
        self.client.session.get.return_value = self.streamed(404)

        with self.assertRaises(NetworkError):
            self.client.download("https://example/missing.tar.gz", self.dest)

    def test_download_connection_error(self):
        self.client.session.get.side_effect = requests.ConnectionError("reset")

        with self.assertRaises(NetworkError):
            self.client.download("https://example/runner.tar.gz", self.dest)


if __name__ == "__main__":
    unittest.main()
