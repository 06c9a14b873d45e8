"""
Unit tests for the disk space preflight.
"""

import tempfile
import unittest
from collections import namedtuple
from unittest.mock import patch

from disk import BYTES_PER_GB, check_free_space
from models import CheckStatus

Usage = namedtuple("Usage", ["total", "used", "free"])


def usage_gb(free_gb: float) -> Usage:
    free = int(free_gb * BYTES_PER_GB)
    return Usage(total=free * 2, used=free, free=free)


class TestCheckFreeSpace(unittest.TestCase):
    """Tests for check_free_space."""

    @patch("disk.shutil.disk_usage")
    def test_exactly_minimum_passes(self, mock_usage):
        mock_usage.return_value = usage_gb(5.0)

        result = check_free_space("/opt/runner", 5.0)

        self.assertEqual(result.status, CheckStatus.PASSED)
        self.assertEqual(result.details["free_gb"], 5.0)

    @patch("disk.shutil.disk_usage")
    def test_just_below_minimum_fails(self, mock_usage):
        mock_usage.return_value = usage_gb(5.0 - 0.01)

        result = check_free_space("/opt/runner", 5.0)

        self.assertEqual(result.status, CheckStatus.FAILED)
        self.assertAlmostEqual(result.details["free_gb"], 4.99, places=2)
        self.assertIn("Insufficient", result.message)

    @patch("disk.shutil.disk_usage")
    def test_unknown_free_space_fails_closed(self, mock_usage):
        mock_usage.side_effect = OSError("No such device")

        result = check_free_space("/opt/runner", 5.0)

        self.assertEqual(result.status, CheckStatus.FAILED)
        self.assertIsNone(result.details["free_gb"])

    @patch("disk.shutil.disk_usage")
    def test_default_minimum_is_five_gb(self, mock_usage):
        mock_usage.return_value = usage_gb(4.0)

        self.assertFalse(check_free_space("/opt/runner").passed)

    def test_real_volume(self):
        with tempfile.TemporaryDirectory() as tmp:
            self.assertTrue(check_free_space(tmp, 0.0).passed)


if __name__ == "__main__":
    unittest.main()
