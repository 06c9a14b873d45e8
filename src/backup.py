"""
Snapshots of the runner's registration and credential state.

Only a fixed allow-list of state files is captured. The binary payload is
replaced wholesale by the installer and is not considered state.
"""

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from config import DEFAULT_STATE_FILES
from errors import BackupError
from models import UNKNOWN_VERSION, Backup, Installation

logger = logging.getLogger(__name__)

METADATA_FILE = "backup.json"
SNAPSHOT_PREFIX = "backup-"


class BackupManager:
    """Creates and looks up state snapshots of an installation."""

    def __init__(
        self, backup_root: Path, state_files: Iterable[str] = DEFAULT_STATE_FILES
    ):
        """
        Args:
            backup_root: Directory under which timestamped snapshots are created
            state_files: Allow-list of paths, relative to the installation root
        """
        self.backup_root = Path(backup_root)
        self.state_files = tuple(state_files)

    def _new_snapshot_dir(self, created_at: datetime) -> Path:
        base = f"{SNAPSHOT_PREFIX}{created_at.strftime('%Y%m%d-%H%M%S')}"
        candidate = self.backup_root / base
        suffix = 1
        while candidate.exists():
            candidate = self.backup_root / f"{base}-{suffix}"
            suffix += 1
        candidate.mkdir(parents=True)
        return candidate

    def create_backup(
        self, installation: Installation, installed_version: str = UNKNOWN_VERSION
    ) -> Backup:
        """
        Copy the allow-listed state files into a new snapshot directory.

        Allow-listed files that do not exist are skipped with a warning; a
        runner that never registered has nothing to preserve.

        Args:
            installation: Installation to snapshot
            installed_version: Version recorded in the snapshot metadata

        Returns:
            The created Backup

        Raises:
            BackupError: If the snapshot cannot be written
        """
        created_at = datetime.now()
        try:
            snapshot = self._new_snapshot_dir(created_at)
        except OSError as e:
            raise BackupError(f"Cannot create backup directory under {self.backup_root}: {e}") from e

        captured: List[str] = []
        try:
            for rel in self.state_files:
                src = installation.path / rel
                if not src.is_file():
                    logger.warning(f"Backup: {rel} not present in {installation.path}; skipped")
                    continue
                dst = snapshot / rel
                dst.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dst)
                captured.append(rel)
                logger.debug(f"Backup: captured {rel}")

            backup = Backup(
                created_at=created_at,
                source_installation_path=installation.path,
                path=snapshot,
                files=tuple(captured),
                installed_version=installed_version,
            )
            with open(snapshot / METADATA_FILE, "w", encoding="utf-8") as f:
                json.dump(backup.to_dict(), f, indent=2)
        except OSError as e:
            shutil.rmtree(snapshot, ignore_errors=True)
            raise BackupError(f"Backup to {snapshot} failed: {e}") from e

        if not captured:
            logger.warning("Backup contains no state files (runner never registered?)")
        logger.info(f"Backup created at {snapshot} ({len(captured)} file(s))")
        return backup

    def list_backups(self, installation: Installation) -> List[Backup]:
        """All readable snapshots of `installation`, oldest first."""
        if not self.backup_root.is_dir():
            return []

        backups: List[Backup] = []
        for entry in self.backup_root.iterdir():
            meta = entry / METADATA_FILE
            if not entry.name.startswith(SNAPSHOT_PREFIX) or not meta.is_file():
                continue
            try:
                with open(meta, "r", encoding="utf-8") as f:
                    backup = Backup.from_dict(entry, json.load(f))
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Ignoring unreadable backup {entry}: {e}")
                continue
            if backup.source_installation_path == installation.path:
                backups.append(backup)

        return sorted(backups, key=lambda b: b.created_at)

    def latest_backup(self, installation: Installation) -> Optional[Backup]:
        """Most recent snapshot of `installation`, or None."""
        backups = self.list_backups(installation)
        return backups[-1] if backups else None
