"""
Unit tests for data models.
"""

import unittest
from datetime import datetime
from pathlib import Path

from models import (
    Backup,
    BusySignal,
    CheckResult,
    CheckStatus,
    FailureKind,
    Installation,
    ServiceState,
    UpgradeOutcome,
    UpgradeStage,
)


class TestBusySignal(unittest.TestCase):
    """Test BusySignal evaluation."""

    def test_stopped_service_never_busy(self):
        signal = BusySignal(ServiceState.STOPPED, True, 99.0)
        self.assertFalse(signal.busy)

    def test_unknown_service_never_busy(self):
        signal = BusySignal(ServiceState.UNKNOWN, True, 99.0)
        self.assertFalse(signal.busy)

    def test_worker_present(self):
        signal = BusySignal(ServiceState.RUNNING, True, 0.0)
        self.assertTrue(signal.busy)

    def test_cpu_above_threshold(self):
        self.assertTrue(BusySignal(ServiceState.RUNNING, False, 25.1).busy)

    def test_cpu_at_threshold_is_idle(self):
        self.assertFalse(BusySignal(ServiceState.RUNNING, False, 25.0).busy)


class TestCheckResult(unittest.TestCase):
    """Test CheckResult data model."""

    def test_check_result_creation(self):
        """Test creating a check result."""
        result = CheckResult(
            check_name="disk_space",
            status=CheckStatus.PASSED,
            message="Enough space",
            details={"free_gb": 12.0},
        )

        self.assertEqual(result.check_name, "disk_space")
        self.assertTrue(result.passed)
        self.assertEqual(result.details["free_gb"], 12.0)

    def test_warning_still_passes(self):
        result = CheckResult("installation", CheckStatus.WARNING, "odd")
        self.assertTrue(result.passed)

    def test_to_dict(self):
        """Test converting check result to dictionary."""
        result = CheckResult("installation", CheckStatus.FAILED, "Missing run.sh")

        result_dict = result.to_dict()

        self.assertEqual(result_dict["check_name"], "installation")
        self.assertEqual(result_dict["status"], "failed")
        self.assertEqual(result_dict["details"], {})
        self.assertIn("timestamp", result_dict)


class TestBackup(unittest.TestCase):
    """Test Backup metadata conversion."""

    def test_from_dict_restores_fields(self):
        created = datetime(2024, 5, 1, 12, 30, 0)
        backup = Backup(
            created_at=created,
            source_installation_path=Path("/opt/actions-runner"),
            path=Path("/opt/actions-runner-backups/backup-20240501-123000"),
            files=(".runner", ".credentials"),
            installed_version="2.317.0",
        )

        loaded = Backup.from_dict(backup.path, backup.to_dict())

        self.assertEqual(loaded, backup)


class TestUpgradeStage(unittest.TestCase):
    def test_terminal_stages(self):
        self.assertTrue(UpgradeStage.ROLLED_BACK.is_terminal)
        self.assertTrue(UpgradeStage.DRY_RUN_COMPLETE.is_terminal)
        self.assertFalse(UpgradeStage.INSTALL.is_terminal)
        self.assertFalse(UpgradeStage.ROLLBACK.is_terminal)


class TestUpgradeOutcome(unittest.TestCase):
    """Test UpgradeOutcome data model."""

    def test_success_exit_codes(self):
        for stage in (
            UpgradeStage.SUCCEEDED,
            UpgradeStage.SKIPPED_UP_TO_DATE,
            UpgradeStage.DRY_RUN_COMPLETE,
        ):
            self.assertEqual(UpgradeOutcome(stage, "/opt/r").exit_code, 0)

    def test_failure_exit_codes(self):
        for stage in (UpgradeStage.FAILED, UpgradeStage.ROLLED_BACK):
            self.assertEqual(UpgradeOutcome(stage, "/opt/r").exit_code, 1)

    def test_to_dict(self):
        """Test converting outcome to dictionary."""
        outcome = UpgradeOutcome(
            stage=UpgradeStage.ROLLED_BACK,
            installation_path="/opt/actions-runner",
            installed_version="2.317.0",
            target_version="2.319.1",
            error_kind=FailureKind.VERIFICATION_ERROR,
            error_message="Missing bin/Runner.Worker",
            start_time=1000.0,
            end_time=1060.0,
            duration_seconds=60.0,
            stages_visited=[UpgradeStage.PREFLIGHT, UpgradeStage.ROLLED_BACK],
        )

        outcome_dict = outcome.to_dict()

        self.assertEqual(outcome_dict["stage"], "rolled_back")
        self.assertEqual(outcome_dict["error_kind"], "verification_error")
        self.assertEqual(outcome_dict["stages_visited"], ["preflight", "rolled_back"])
        self.assertEqual(outcome_dict["exit_code"], 1)
        self.assertIsNotNone(outcome_dict["start_time"])


class TestInstallation(unittest.TestCase):
    def test_manifest_path(self):
        inst = Installation(path=Path("/opt/actions-runner"))
        self.assertEqual(
            inst.manifest_path, Path("/opt/actions-runner/runner-manifest.json")
        )


if __name__ == "__main__":
    unittest.main()
