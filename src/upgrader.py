"""
Upgrade orchestration for a single self-hosted runner installation.

The orchestrator sequences preflight, version resolution, idle wait, backup,
stop, install, verify, start, and rolls back when install or verify fails.
It is the only component with branching failure policy; the components it
drives raise typed errors and never decide the outcome of a run.

Concurrent runs against the same installation are not locked against each
other; callers must serialize them.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from backup import BackupManager
from busy import BusyDetector, IdleWaiter
from clients import ReleaseClient
from config import UpgraderConfig
from disk import check_free_space
from errors import (
    BusyTimeoutError,
    InstallError,
    InsufficientDiskError,
    NoBackupToRestoreError,
    PathNotFoundError,
    RollbackError,
    ServiceError,
    UpgradeError,
    VerificationError,
)
from installer import Installer
from models import (
    Backup,
    CheckResult,
    CheckStatus,
    FailureKind,
    Installation,
    UpgradeOutcome,
    UpgradePlan,
    UpgradeStage,
    WaitOutcome,
)
from rollback import RollbackManager
from service import ServiceController
from verifier import InstallationVerifier
from versions import VersionResolver, strip_version_prefix

logger = logging.getLogger(__name__)


class RunnerUpgrader:
    """Upgrades one runner installation through a fixed sequence of stages."""

    def __init__(
        self,
        config: UpgraderConfig,
        installation: Optional[Installation] = None,
        client: Optional[ReleaseClient] = None,
        service: Optional[ServiceController] = None,
        resolver: Optional[VersionResolver] = None,
        detector: Optional[BusyDetector] = None,
        idle_waiter: Optional[IdleWaiter] = None,
        backups: Optional[BackupManager] = None,
        rollback_manager: Optional[RollbackManager] = None,
        installer: Optional[Installer] = None,
        verifier: Optional[InstallationVerifier] = None,
    ):
        """
        Initialize the upgrader.

        Every collaborator defaults to the production implementation built
        from `config`; tests pass their own. Dry-run is decided per run by
        the plan, so the default collaborators are built without a dry-run
        mode of their own.

        Args:
            config: Upgrader configuration
            installation: Installation to upgrade (default: from config)
            client: Release metadata/artifact client
            service: Runner service controller
            resolver: Version resolver
            detector: Busy detector
            idle_waiter: Idle waiter wrapping the detector
            backups: Backup manager
            rollback_manager: Rollback manager
            installer: Release installer
            verifier: Post-install verifier
        """
        self.config = config
        self.installation = installation or config.installation()

        self.client = client or ReleaseClient(
            repo=config.release_repo,
            api_base=config.api_base,
            token=config.github_token,
            timeout_s=config.request_timeout,
            max_retries=config.max_retries,
        )
        self.service = service or ServiceController(
            use_sudo=config.use_sudo,
            timeout=config.service_timeout,
        )
        self.resolver = resolver or VersionResolver(self.client)
        self.detector = detector or BusyDetector(
            self.installation,
            self.service,
            cpu_threshold=config.cpu_threshold,
            cpu_sample_seconds=config.cpu_sample_seconds,
        )
        self.idle_waiter = idle_waiter or IdleWaiter(
            self.detector, poll_interval=config.poll_interval
        )
        self.backups = backups or BackupManager(
            config.backup_root(), config.state_files
        )
        self.rollback_manager = rollback_manager or RollbackManager(
            self.service, self.backups
        )
        self.installer = installer or Installer(
            self.client, config.download_url_template
        )
        self.verifier = verifier or InstallationVerifier(config.required_files)

        # Read-only for observers.
        self.stage: UpgradeStage = UpgradeStage.PREFLIGHT
        self.last_error_kind: Optional[FailureKind] = None
        self.stages_visited: List[UpgradeStage] = []
        self.outcome: Optional[UpgradeOutcome] = None

        self.run_start_time: Optional[float] = None
        self.run_end_time: Optional[float] = None
        self._installed_version: Optional[str] = None
        self._target_version: Optional[str] = None
        self._backup: Optional[Backup] = None

    def _enter(self, stage: UpgradeStage) -> None:
        self.stage = stage
        self.stages_visited.append(stage)
        logger.info(f"--- {stage.value.upper()} ---")

    def run(self, plan: Optional[UpgradePlan] = None) -> UpgradeOutcome:
        """
        Execute one upgrade run.

        Args:
            plan: Upgrade plan (default: derived from the configuration)

        Returns:
            UpgradeOutcome with the terminal stage
        """
        plan = plan or self.config.to_plan()
        self.run_start_time = time.time()
        self.stages_visited = []
        self.last_error_kind = None
        self._installed_version = None
        self._target_version = None
        self._backup = None

        self._log_header(plan)

        error: Optional[UpgradeError] = None
        try:
            stage, error = self._execute(plan)
        except RollbackError as e:
            stage, error = UpgradeStage.FAILED, e
            logger.critical("=" * 70)
            logger.critical("ROLLBACK FAILED - MANUAL INTERVENTION REQUIRED")
            logger.critical(f"Error: {e}")
            if e.backup_path:
                logger.critical(f"Restore the state files by hand from: {e.backup_path}")
            logger.critical("=" * 70)
        except UpgradeError as e:
            stage, error = UpgradeStage.FAILED, e
            logger.error(f"Upgrade FAILED ({e.kind.value}): {e}")

        return self._finish(plan, stage, error)

    def _execute(
        self, plan: UpgradePlan
    ) -> Tuple[UpgradeStage, Optional[UpgradeError]]:
        inst = self.installation

        self._enter(UpgradeStage.PREFLIGHT)
        if not inst.path.is_dir():
            raise PathNotFoundError(f"Installation path not found: {inst.path}")
        disk = check_free_space(inst.path, self.config.min_free_gb)
        if not disk.passed:
            raise InsufficientDiskError(disk.message)
        logger.info(f"✓ {disk.message}")

        self._enter(UpgradeStage.RESOLVE_VERSIONS)
        installed = self.resolver.get_installed_version(inst)
        self._installed_version = installed
        target = self.resolver.get_target_version(plan.target_version)
        self._target_version = target
        logger.info(f"Installed version: {installed}")
        logger.info(f"Target version:    {target}")

        version = strip_version_prefix(target)
        if installed == version:
            if not plan.force:
                logger.info(f"[-] Runner is up to date ({installed})")
                return UpgradeStage.SKIPPED_UP_TO_DATE, None
            logger.warning(f"Runner already at {target}; reinstalling (--force)")

        self._wait_for_idle(plan)

        if plan.skip_backup:
            logger.warning(
                "Backup skipped (--skip-backup); a failed install cannot be rolled back"
            )
        elif plan.dry_run:
            self._enter(UpgradeStage.BACKUP)
            logger.info(
                f"DRY RUN: Would back up {', '.join(self.backups.state_files)} "
                f"to {self.backups.backup_root}"
            )
        else:
            self._enter(UpgradeStage.BACKUP)
            self._backup = self.backups.create_backup(inst, installed)

        self._enter(UpgradeStage.STOP)
        if plan.dry_run:
            logger.info("DRY RUN: Would stop runner service")
        else:
            self.service.stop(inst)

        self._enter(UpgradeStage.INSTALL)
        if plan.dry_run:
            logger.info(f"DRY RUN: Would install runner {target} into {inst.path}")
        else:
            try:
                self.installer.install(inst, version)
            except Exception as e:
                error = e if isinstance(e, InstallError) else InstallError(str(e))
                logger.error(f"Install FAILED: {error}")
                return self._rollback(error)

        self._enter(UpgradeStage.VERIFY)
        try:
            result = self.verifier.verify(inst)
        except Exception as e:
            result = CheckResult(
                "installation", CheckStatus.FAILED, f"Verification could not run: {e}"
            )
        if plan.dry_run:
            logger.info(f"DRY RUN: Current installation check: {result.message}")
        elif not result.passed:
            return self._rollback(VerificationError(result.message))

        self._enter(UpgradeStage.START)
        if plan.dry_run:
            logger.info("DRY RUN: Would start runner service")
            return UpgradeStage.DRY_RUN_COMPLETE, None
        try:
            self.service.start(inst)
        except UpgradeError:
            raise
        except Exception as e:
            raise ServiceError(f"Service start failed: {e}") from e

        new_version = self.resolver.get_installed_version(inst)
        logger.info(f"✓ Runner upgraded {installed} -> {new_version}")
        return UpgradeStage.SUCCEEDED, None

    def _wait_for_idle(self, plan: UpgradePlan) -> None:
        """
        Raises:
            BusyTimeoutError: If the runner stays busy and force is not set
        """
        self._enter(UpgradeStage.BUSY_CHECK)
        signal = self.detector.sample_busy()
        if not signal.busy:
            logger.info(f"Runner is idle (service={signal.service_state.value})")
            return

        self._enter(UpgradeStage.IDLE_WAIT)
        if plan.dry_run:
            logger.info(
                f"DRY RUN: Runner is busy; would wait up to {plan.max_wait_minutes} min for it to go idle"
            )
            return

        outcome = self.idle_waiter.wait_until_idle(plan.max_wait_minutes)
        if outcome == WaitOutcome.IDLE:
            return
        if not plan.force:
            raise BusyTimeoutError(
                f"Runner still busy after {plan.max_wait_minutes} minute(s)"
            )
        logger.warning(
            "Runner still busy; proceeding anyway (--force), the running job will be interrupted"
        )

    def _rollback(
        self, cause: UpgradeError
    ) -> Tuple[UpgradeStage, Optional[UpgradeError]]:
        """
        Raises:
            RollbackError: If the restore itself fails
        """
        self._enter(UpgradeStage.ROLLBACK)
        if self._backup is None:
            logger.critical(
                f"{cause.kind.value}: no backup to restore; installation at "
                f"{self.installation.path} left as-is - MANUAL INTERVENTION REQUIRED"
            )
            return UpgradeStage.FAILED, NoBackupToRestoreError(
                f"{cause} (no backup to restore; installation left as-is)"
            )

        logger.warning(f"Rolling back using backup {self._backup.path}")
        self.rollback_manager.rollback(self._backup, self.installation)
        logger.warning("Rollback COMPLETED; state files restored, service restarted")
        return UpgradeStage.ROLLED_BACK, cause

    def _finish(
        self,
        plan: UpgradePlan,
        stage: UpgradeStage,
        error: Optional[UpgradeError],
    ) -> UpgradeOutcome:
        self.run_end_time = time.time()
        self.stage = stage
        self.stages_visited.append(stage)
        self.last_error_kind = error.kind if error else None

        backup_path = None
        if self._backup is not None:
            backup_path = str(self._backup.path)
        elif isinstance(error, RollbackError):
            backup_path = error.backup_path

        self.outcome = UpgradeOutcome(
            stage=stage,
            installation_path=str(self.installation.path),
            installed_version=self._installed_version,
            target_version=self._target_version,
            error_kind=self.last_error_kind,
            error_message=str(error) if error else None,
            backup_path=backup_path,
            dry_run=plan.dry_run,
            start_time=self.run_start_time,
            end_time=self.run_end_time,
            duration_seconds=self.run_end_time - self.run_start_time,
            stages_visited=list(self.stages_visited),
        )
        self._print_report()
        if self.config.report_dir:
            try:
                self._export_results_json()
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Could not export report to {self.config.report_dir}: {e}")
        return self.outcome

    def _log_header(self, plan: UpgradePlan) -> None:
        logger.info("=" * 70)
        logger.info("Self-hosted Runner Upgrade")
        logger.info("=" * 70)
        logger.info(f"Installation: {self.installation.path}")
        logger.info(f"Target version: {plan.target_version or 'latest'}")
        logger.info(f"Dry run: {plan.dry_run}")
        logger.info(f"Force: {plan.force}")
        logger.info(f"Skip backup: {plan.skip_backup}")
        logger.info(f"Max wait: {plan.max_wait_minutes} min")
        logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 70)

    def _format_duration(self, seconds: float) -> str:
        if seconds < 60:
            return f"{seconds:.1f}s"
        mins, secs = divmod(int(round(seconds)), 60)
        return f"{mins}m {secs:02d}s"

    def _print_report(self):
        """Print run summary."""
        o = self.outcome

        logger.info("")
        logger.info("=" * 70)
        logger.info("UPGRADE REPORT")
        logger.info("=" * 70)
        logger.info(
            f"Start time:      {datetime.fromtimestamp(o.start_time).strftime('%Y-%m-%d %H:%M:%S')}"
        )
        logger.info(
            f"End time:        {datetime.fromtimestamp(o.end_time).strftime('%Y-%m-%d %H:%M:%S')}"
        )
        logger.info(f"Total duration:  {self._format_duration(o.duration_seconds)}")
        logger.info("-" * 40)
        logger.info(f"{'Result':<16}: {o.stage.value}")
        logger.info(f"{'Installed':<16}: {o.installed_version or 'N/A'}")
        logger.info(f"{'Target':<16}: {o.target_version or 'N/A'}")
        if o.backup_path:
            logger.info(f"{'Backup':<16}: {o.backup_path}")
        if o.error_kind:
            logger.info(f"{'Error kind':<16}: {o.error_kind.value}")
            logger.info(f"{'Error':<16}: {o.error_message}")
        logger.info(f"{'Stages':<16}: {' -> '.join(s.value for s in o.stages_visited)}")
        logger.info(f"{'Exit code':<16}: {o.exit_code}")
        logger.info("=" * 70)

    def _export_results_json(self):
        """Export the run outcome to a JSON file for further processing."""
        report_dir = Path(self.config.report_dir)
        report_dir.mkdir(parents=True, exist_ok=True)
        filename = (
            report_dir
            / f"upgrade-report-{datetime.now().strftime('%Y%m%d-%H%M%S')}.json"
        )
        with open(filename, "w") as f:
            json.dump(self.outcome.to_dict(), f, indent=2)
        logger.info(f"Detailed report exported to: {filename}")
