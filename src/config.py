"""
Configuration management for the self-hosted runner upgrader.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from models import Installation, UpgradePlan

DEFAULT_STATE_FILES: Tuple[str, ...] = (
    ".runner",
    ".credentials",
    ".credentials_rsaparams",
    ".env",
    ".path",
    ".service",
)

DEFAULT_REQUIRED_FILES: Tuple[str, ...] = (
    "config.sh",
    "run.sh",
    "bin/Runner.Listener",
    "bin/Runner.Worker",
)

DEFAULT_DOWNLOAD_URL_TEMPLATE = (
    "https://github.com/{repo}/releases/download/v{version}/{artifact}"
)


@dataclass
class UpgraderConfig:
    """Configuration for runner upgrade operations."""

    install_path: str
    target_version: Optional[str] = None
    force: bool = False
    skip_backup: bool = False
    dry_run: bool = False
    max_wait_minutes: float = 30
    min_free_gb: float = 5.0
    poll_interval: int = 5
    cpu_threshold: float = 25.0
    cpu_sample_seconds: float = 1.0
    backup_dir: Optional[str] = None
    report_dir: Optional[str] = None
    release_repo: str = "actions/runner"
    api_base: str = "https://api.github.com"
    download_url_template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE
    github_token: Optional[str] = None
    use_sudo: bool = True
    service_timeout: int = 120
    request_timeout: int = 60
    max_retries: int = 2
    manifest_name: str = "runner-manifest.json"
    state_files: Tuple[str, ...] = DEFAULT_STATE_FILES
    required_files: Tuple[str, ...] = DEFAULT_REQUIRED_FILES
    verbose: bool = False
    rollback: bool = False

    @classmethod
    def from_args(cls, args) -> "UpgraderConfig":
        """
        Create configuration from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            UpgraderConfig instance
        """
        return cls(
            install_path=args.path,
            target_version=args.version,
            force=args.force,
            skip_backup=args.skip_backup,
            dry_run=args.dry_run,
            max_wait_minutes=args.max_wait_minutes,
            min_free_gb=args.min_free_gb,
            poll_interval=args.poll_interval,
            backup_dir=args.backup_dir,
            report_dir=args.report_dir,
            github_token=args.github_token,
            use_sudo=not args.no_sudo,
            verbose=args.verbose,
            rollback=args.rollback,
        )

    def installation(self) -> Installation:
        """Build the Installation this configuration targets."""
        return Installation(
            path=Path(self.install_path).expanduser().absolute(),
            manifest_name=self.manifest_name,
        )

    def backup_root(self) -> Path:
        """Directory holding snapshots; defaults to a sibling of the install."""
        if self.backup_dir:
            return Path(self.backup_dir).expanduser().absolute()
        install = self.installation().path
        return install.parent / f"{install.name}-backups"

    def to_plan(self) -> UpgradePlan:
        return UpgradePlan(
            target_version=self.target_version,
            force=self.force,
            skip_backup=self.skip_backup,
            dry_run=self.dry_run,
            max_wait_minutes=self.max_wait_minutes,
        )
