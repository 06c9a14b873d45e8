"""Console entry point for the self-hosted runner upgrader CLI."""

from __future__ import annotations

import argparse
import logging
import os
from typing import List

from backup import BackupManager
from config import UpgraderConfig
from errors import RollbackError
from log_utils import setup_logging
from rollback import RollbackManager
from service import ServiceController
from upgrader import RunnerUpgrader

logger = logging.getLogger(__name__)

# The one place the environment is consulted.
INSTALL_DIR_ENV = "RUNNER_INSTALL_DIR"
DEFAULT_INSTALL_DIR = "~/actions-runner"


def default_install_path() -> str:
    return os.environ.get(INSTALL_DIR_ENV) or os.path.expanduser(DEFAULT_INSTALL_DIR)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Self-hosted CI runner upgrade & rollback CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  # Dry-run upgrade to the latest release\n"
            "  runner-upgrade --path ~/actions-runner --dry-run\n\n"
            "  # Upgrade to a pinned version, waiting up to 60 minutes for the current job\n"
            "  runner-upgrade --version 2.319.1 --max-wait-minutes 60\n\n"
            "  # Restore the most recent state backup\n"
            "  runner-upgrade --rollback"
        ),
    )
    parser.add_argument(
        "--path",
        default=None,
        help=f"Runner installation directory (default: ${INSTALL_DIR_ENV} or {DEFAULT_INSTALL_DIR})",
    )
    parser.add_argument(
        "--version", help="Install this exact version instead of the latest release"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Upgrade even if the runner stays busy or is already at the target version",
    )
    parser.add_argument(
        "--skip-backup",
        action="store_true",
        help="Do not snapshot state files (a failed install cannot be rolled back)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Simulate / only check")
    parser.add_argument(
        "--max-wait-minutes",
        type=float,
        default=30,
        help="How long to wait for the runner to finish its current job (default: 30)",
    )
    parser.add_argument("--min-free-gb", type=float, default=5.0)
    parser.add_argument("--poll-interval", type=int, default=5)
    parser.add_argument("--backup-dir", help="Where to keep state snapshots")
    parser.add_argument("--report-dir", help="Write a JSON run report into this directory")
    parser.add_argument("--github-token", help="API token for release lookups")
    parser.add_argument(
        "--no-sudo", action="store_true", help="Run svc.sh without sudo on Linux"
    )
    parser.add_argument(
        "--rollback",
        action="store_true",
        help="Restore the most recent state backup instead of upgrading",
    )
    parser.add_argument("--verbose", action="store_true")
    return parser


def run_rollback(config: UpgraderConfig) -> int:
    """Restore the newest backup of the configured installation."""
    installation = config.installation()
    service = ServiceController(
        dry_run=config.dry_run, use_sudo=config.use_sudo, timeout=config.service_timeout
    )
    manager = RollbackManager(
        service,
        BackupManager(config.backup_root(), config.state_files),
        dry_run=config.dry_run,
    )
    try:
        backup = manager.restore_latest(installation)
    except RollbackError as e:
        logger.critical(f"Rollback FAILED - MANUAL INTERVENTION REQUIRED: {e}")
        return 1
    logger.info(f"Rollback from {backup.path} completed")
    return 0


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)
    if not args.path:
        args.path = default_install_path()

    log_file = "runner-rollback.log" if args.rollback else "runner-upgrade.log"
    setup_logging(verbose=args.verbose, log_file=log_file)

    config = UpgraderConfig.from_args(args)

    if config.rollback:
        return run_rollback(config)

    outcome = RunnerUpgrader(config).run()
    return outcome.exit_code
