"""
Unit tests for configuration.
"""

import unittest
from argparse import Namespace
from pathlib import Path

from config import DEFAULT_STATE_FILES, UpgraderConfig
from models import UpgradePlan


class TestUpgraderConfig(unittest.TestCase):
    """Test UpgraderConfig data model."""

    def test_config_defaults(self):
        """Test default configuration values."""
        config = UpgraderConfig(install_path="/opt/actions-runner")
        self.assertEqual(config.install_path, "/opt/actions-runner")
        self.assertIsNone(config.target_version)
        self.assertFalse(config.force)
        self.assertFalse(config.skip_backup)
        self.assertFalse(config.dry_run)
        self.assertEqual(config.max_wait_minutes, 30)
        self.assertEqual(config.min_free_gb, 5.0)
        self.assertEqual(config.poll_interval, 5)
        self.assertEqual(config.max_retries, 2)
        self.assertTrue(config.use_sudo)
        self.assertIn(".credentials", config.state_files)
        self.assertFalse(config.verbose)

    def test_config_from_args(self):
        """Test creating config from command-line arguments."""
        args = Namespace(
            path="/opt/actions-runner",
            version="2.319.1",
            force=True,
            skip_backup=False,
            dry_run=True,
            max_wait_minutes=45.0,
            min_free_gb=2.0,
            poll_interval=10,
            backup_dir="/var/backups/runner",
            report_dir=None,
            github_token="ghp_test",
            no_sudo=True,
            verbose=True,
            rollback=False,
        )

        config = UpgraderConfig.from_args(args)

        self.assertEqual(config.install_path, "/opt/actions-runner")
        self.assertEqual(config.target_version, "2.319.1")
        self.assertTrue(config.force)
        self.assertTrue(config.dry_run)
        self.assertEqual(config.max_wait_minutes, 45.0)
        self.assertEqual(config.min_free_gb, 2.0)
        self.assertEqual(config.poll_interval, 10)
        self.assertEqual(config.backup_dir, "/var/backups/runner")
        self.assertEqual(config.github_token, "ghp_test")
        self.assertFalse(config.use_sudo)
        self.assertTrue(config.verbose)
        self.assertFalse(config.rollback)
        self.assertEqual(config.state_files, DEFAULT_STATE_FILES)

    def test_installation_path_is_absolute(self):
        config = UpgraderConfig(install_path="actions-runner")
        self.assertTrue(config.installation().path.is_absolute())
        self.assertEqual(config.installation().name, "actions-runner")

    def test_default_backup_root_is_sibling(self):
        config = UpgraderConfig(install_path="/opt/actions-runner")
        self.assertEqual(config.backup_root(), Path("/opt/actions-runner-backups"))

    def test_explicit_backup_root(self):
        config = UpgraderConfig(install_path="/opt/actions-runner", backup_dir="/srv/b")
        self.assertEqual(config.backup_root(), Path("/srv/b"))

    def test_to_plan(self):
        config = UpgraderConfig(
            install_path="/opt/actions-runner",
            target_version="2.319.1",
            skip_backup=True,
            max_wait_minutes=0,
        )

        self.assertEqual(
            config.to_plan(),
            UpgradePlan(
                target_version="2.319.1",
                force=False,
                skip_backup=True,
                dry_run=False,
                max_wait_minutes=0,
            ),
        )


if __name__ == "__main__":
    unittest.main()
