"""
Rollback of a runner installation to its last state snapshot.

This module handles restoring the allow-listed state files captured by the
BackupManager and bringing the runner service back up. A failure here is the
one condition the upgrader cannot recover from on its own: the installation
is flagged as inconsistent and the error is escalated verbatim.
"""

import json
import logging
import shutil
from datetime import datetime
from typing import Optional

from backup import BackupManager
from errors import RollbackError, ServiceError
from models import Backup, Installation
from service import ServiceController

logger = logging.getLogger(__name__)

INCONSISTENT_MARKER = ".upgrade-inconsistent"


class RollbackManager:
    """Restores state snapshots into an installation."""

    def __init__(
        self,
        service: ServiceController,
        backups: Optional[BackupManager] = None,
        dry_run: bool = False,
    ):
        """
        Args:
            service: Controller used to restart the runner after restore
            backups: Needed only to look up the latest snapshot
            dry_run: If True, only log what would be restored
        """
        self.service = service
        self.backups = backups
        self.dry_run = dry_run

    def restore(self, backup: Backup, installation: Installation) -> None:
        """
        Copy every captured file back to its original relative path.

        Idempotent: restoring the same backup twice yields the same end state.

        Args:
            backup: Snapshot to restore
            installation: Installation to restore into

        Raises:
            RollbackError: If any file cannot be restored
        """
        if self.dry_run:
            for rel in backup.files:
                logger.info(f"DRY RUN: Would restore {rel} from {backup.path}")
            return

        logger.warning(
            f"Restoring {len(backup.files)} file(s) from {backup.path} into {installation.path}"
        )
        restored = []
        try:
            for rel in backup.files:
                src = backup.path / rel
                dst = installation.path / rel
                dst.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dst)
                restored.append(rel)
        except OSError as e:
            self._flag_inconsistent(installation, backup, restored, str(e))
            raise RollbackError(
                f"Restore from {backup.path} failed after {len(restored)}/{len(backup.files)} file(s): {e}",
                backup_path=str(backup.path),
            ) from e

        marker = installation.path / INCONSISTENT_MARKER
        if marker.exists():
            marker.unlink()
        logger.warning(f"Restore COMPLETED from {backup.path}")

    def rollback(self, backup: Backup, installation: Installation) -> None:
        """
        Restore `backup` and start the runner service.

        Raises:
            RollbackError: If the restore or the restart fails
        """
        self.restore(backup, installation)
        try:
            self.service.start(installation)
        except ServiceError as e:
            raise RollbackError(
                f"State restored but the service failed to start: {e}",
                backup_path=str(backup.path),
            ) from e

    def restore_latest(self, installation: Installation) -> Backup:
        """
        Stop the service, restore the newest snapshot, start the service.

        Returns:
            The restored Backup

        Raises:
            RollbackError: If there is nothing to restore or the restore fails
        """
        backup = self.backups.latest_backup(installation) if self.backups else None
        if backup is None:
            raise RollbackError(f"No backup found for {installation.path}")

        logger.info(
            f"Latest backup: {backup.path} (created {backup.created_at:%Y-%m-%d %H:%M:%S}, "
            f"version {backup.installed_version})"
        )
        try:
            self.service.stop(installation)
        except ServiceError as e:
            raise RollbackError(
                f"Cannot stop service before restore: {e}", backup_path=str(backup.path)
            ) from e

        self.rollback(backup, installation)
        return backup

    def _flag_inconsistent(
        self, installation: Installation, backup: Backup, restored, error: str
    ) -> None:
        marker = installation.path / INCONSISTENT_MARKER
        payload = {
            "flagged_at": datetime.now().isoformat(),
            "backup_path": str(backup.path),
            "restored_files": list(restored),
            "expected_files": list(backup.files),
            "error": error,
        }
        try:
            with open(marker, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            logger.critical(f"Installation flagged inconsistent: {marker}")
        except OSError as e:
            logger.critical(f"Could not write inconsistency marker {marker}: {e}")
