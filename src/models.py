"""
Data models for the self-hosted runner upgrader.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

UNKNOWN_VERSION = "unknown"


class ServiceState(Enum):
    """State of the runner's background service."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class CheckStatus(Enum):
    """Status codes for preflight and verification checks."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class WaitOutcome(Enum):
    """Result of waiting for the runner to go idle."""

    IDLE = "idle"
    TIMED_OUT = "timed_out"


class UpgradeStage(Enum):
    """Stages of a single upgrade run."""

    PREFLIGHT = "preflight"
    RESOLVE_VERSIONS = "resolve_versions"
    BUSY_CHECK = "busy_check"
    IDLE_WAIT = "idle_wait"
    BACKUP = "backup"
    STOP = "stop"
    INSTALL = "install"
    VERIFY = "verify"
    ROLLBACK = "rollback"
    START = "start"
    # terminal
    SUCCEEDED = "succeeded"
    SKIPPED_UP_TO_DATE = "skipped_up_to_date"
    DRY_RUN_COMPLETE = "dry_run_complete"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES


TERMINAL_STAGES = frozenset(
    {
        UpgradeStage.SUCCEEDED,
        UpgradeStage.SKIPPED_UP_TO_DATE,
        UpgradeStage.DRY_RUN_COMPLETE,
        UpgradeStage.FAILED,
        UpgradeStage.ROLLED_BACK,
    }
)

SUCCESS_STAGES = frozenset(
    {
        UpgradeStage.SUCCEEDED,
        UpgradeStage.SKIPPED_UP_TO_DATE,
        UpgradeStage.DRY_RUN_COMPLETE,
    }
)


class FailureKind(Enum):
    """Kinds of failure an upgrade run can end with."""

    PATH_NOT_FOUND = "path_not_found"
    INSUFFICIENT_DISK = "insufficient_disk"
    NETWORK_ERROR = "network_error"
    BUSY_TIMEOUT = "busy_timeout"
    BACKUP_ERROR = "backup_error"
    SERVICE_ERROR = "service_error"
    INSTALL_ERROR = "install_error"
    VERIFICATION_ERROR = "verification_error"
    ROLLBACK_ERROR = "rollback_error"
    NO_BACKUP_TO_RESTORE = "no_backup_to_restore"


@dataclass
class Installation:
    """On-disk runner deployment."""

    path: Path  # absolute installation root
    manifest_name: str = "runner-manifest.json"

    @property
    def manifest_path(self) -> Path:
        return self.path / self.manifest_name

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class UpgradePlan:
    """Immutable input to one upgrade run."""

    target_version: Optional[str] = None  # None means "resolve latest"
    force: bool = False
    skip_backup: bool = False
    dry_run: bool = False
    max_wait_minutes: float = 30


@dataclass(frozen=True)
class Backup:
    """Timestamped snapshot of the runner's allow-listed state files."""

    created_at: datetime
    source_installation_path: Path
    path: Path  # snapshot directory
    files: Tuple[str, ...] = ()
    installed_version: str = UNKNOWN_VERSION

    def to_dict(self) -> Dict:
        """Convert to dictionary for the snapshot metadata file."""
        return {
            "created_at": self.created_at.isoformat(),
            "source_installation_path": str(self.source_installation_path),
            "files": list(self.files),
            "installed_version": self.installed_version,
        }

    @classmethod
    def from_dict(cls, path: Path, data: Dict) -> "Backup":
        return cls(
            created_at=datetime.fromisoformat(data["created_at"]),
            source_installation_path=Path(data["source_installation_path"]),
            path=path,
            files=tuple(data.get("files", [])),
            installed_version=data.get("installed_version", UNKNOWN_VERSION),
        )


@dataclass(frozen=True)
class BusySignal:
    """Point-in-time sample of whether the runner is executing a job."""

    service_state: ServiceState
    worker_process_present: bool
    cpu_utilization_percent: float
    cpu_threshold: float = 25.0

    @property
    def busy(self) -> bool:
        if self.service_state != ServiceState.RUNNING:
            return False
        return (
            self.worker_process_present
            or self.cpu_utilization_percent > self.cpu_threshold
        )


class CheckResult:
    """Result of a single named check."""

    def __init__(
        self,
        check_name: str,
        status: CheckStatus,
        message: str,
        details: Optional[Dict] = None,
    ):
        self.check_name = check_name
        self.status = status
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now()

    @property
    def passed(self) -> bool:
        """Warnings do not fail a check."""
        return self.status != CheckStatus.FAILED

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging/reporting."""
        return {
            "check_name": self.check_name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class UpgradeOutcome:
    """Result of an upgrade run."""

    stage: UpgradeStage  # terminal stage
    installation_path: str
    installed_version: Optional[str] = None
    target_version: Optional[str] = None
    error_kind: Optional[FailureKind] = None
    error_message: Optional[str] = None
    backup_path: Optional[str] = None
    dry_run: bool = False
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration_seconds: Optional[float] = None
    stages_visited: list = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage in SUCCESS_STAGES

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def to_dict(self) -> Dict:
        return {
            "stage": self.stage.value,
            "installation_path": self.installation_path,
            "installed_version": self.installed_version,
            "target_version": self.target_version,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "backup_path": self.backup_path,
            "dry_run": self.dry_run,
            "start_time": (
                datetime.fromtimestamp(self.start_time).isoformat()
                if self.start_time
                else None
            ),
            "end_time": (
                datetime.fromtimestamp(self.end_time).isoformat()
                if self.end_time
                else None
            ),
            "duration_seconds": self.duration_seconds,
            "stages_visited": [s.value for s in self.stages_visited],
            "exit_code": self.exit_code,
        }
