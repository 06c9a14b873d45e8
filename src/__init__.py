"""
Self-hosted CI Runner Upgrade Tool.
"""

from backup import BackupManager
from busy import BusyDetector, IdleWaiter
from clients import ReleaseClient
from config import UpgraderConfig
from installer import Installer
from log_utils import setup_logging
from models import Backup, Installation, UpgradeOutcome, UpgradePlan, UpgradeStage
from rollback import RollbackManager
from service import ServiceController
from upgrader import RunnerUpgrader
from verifier import InstallationVerifier
from versions import VersionResolver

__all__ = [
    "BackupManager",
    "BusyDetector",
    "IdleWaiter",
    "ReleaseClient",
    "UpgraderConfig",
    "Installer",
    "setup_logging",
    "Backup",
    "Installation",
    "UpgradeOutcome",
    "UpgradePlan",
    "UpgradeStage",
    "RollbackManager",
    "ServiceController",
    "RunnerUpgrader",
    "InstallationVerifier",
    "VersionResolver",
]
