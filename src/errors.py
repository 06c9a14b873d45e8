"""
Exception types raised by the runner upgrader components.

Each error carries the FailureKind the orchestrator reports when the run ends
on it.
"""

from typing import Optional

from models import FailureKind


class UpgradeError(Exception):
    """Base class for all upgrade failures."""

    kind: FailureKind = FailureKind.INSTALL_ERROR


class PathNotFoundError(UpgradeError):
    kind = FailureKind.PATH_NOT_FOUND


class InsufficientDiskError(UpgradeError):
    kind = FailureKind.INSUFFICIENT_DISK


class NetworkError(UpgradeError):
    """Release metadata or artifact could not be fetched."""

    kind = FailureKind.NETWORK_ERROR


class BusyTimeoutError(UpgradeError):
    kind = FailureKind.BUSY_TIMEOUT


class BackupError(UpgradeError):
    kind = FailureKind.BACKUP_ERROR


class ServiceError(UpgradeError):
    """svc.sh failed or timed out."""

    kind = FailureKind.SERVICE_ERROR


class InstallError(UpgradeError):
    kind = FailureKind.INSTALL_ERROR


class VerificationError(UpgradeError):
    kind = FailureKind.VERIFICATION_ERROR


class NoBackupToRestoreError(UpgradeError):
    kind = FailureKind.NO_BACKUP_TO_RESTORE


class RollbackError(UpgradeError):
    """
    Restoring the backup failed.

    No further automated recovery is attempted once this is raised; the
    installation must be repaired by hand from ``backup_path``.
    """

    kind = FailureKind.ROLLBACK_ERROR

    def __init__(self, message: str, backup_path: Optional[str] = None):
        super().__init__(message)
        self.backup_path = backup_path
