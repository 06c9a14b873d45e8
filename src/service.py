"""
Background-service control for the runner via its bundled svc.sh script.
"""

import logging
import os
import platform
import subprocess
from typing import List

from errors import ServiceError
from models import Installation, ServiceState

logger = logging.getLogger(__name__)

SERVICE_SCRIPT = "svc.sh"
# Written by `svc.sh install`; holds the registered service name.
SERVICE_FILE = ".service"


class ServiceController:
    """Stops, starts and queries the runner's service registration."""

    def __init__(self, dry_run: bool = False, use_sudo: bool = True, timeout: int = 120):
        """
        Args:
            dry_run: If True, stop/start only log what would happen
            use_sudo: Run svc.sh through sudo on Linux when not root
            timeout: Seconds before an svc.sh invocation is abandoned
        """
        self.dry_run = dry_run
        self.use_sudo = use_sudo
        self.timeout = timeout

    def _command(self, installation: Installation, action: str) -> List[str]:
        cmd = [f"./{SERVICE_SCRIPT}", action]
        needs_sudo = (
            self.use_sudo
            and platform.system() == "Linux"
            and hasattr(os, "geteuid")
            and os.geteuid() != 0
        )
        if needs_sudo:
            cmd = ["sudo", "-n"] + cmd
        return cmd

    def _run(self, installation: Installation, action: str) -> subprocess.CompletedProcess:
        cmd = self._command(installation, action)
        logger.debug(f"Running {' '.join(cmd)} in {installation.path}")
        try:
            return subprocess.run(
                cmd,
                cwd=str(installation.path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ServiceError(f"{SERVICE_SCRIPT} {action} timed out after {self.timeout}s") from e
        except OSError as e:
            raise ServiceError(f"Cannot run {SERVICE_SCRIPT} {action}: {e}") from e

    def is_installed(self, installation: Installation) -> bool:
        """True if svc.sh exists and a service has been registered with it."""
        return (installation.path / SERVICE_SCRIPT).is_file() and (
            installation.path / SERVICE_FILE
        ).is_file()

    def status(self, installation: Installation) -> ServiceState:
        """
        Query the current service state.

        Never raises: anything that cannot be interpreted is UNKNOWN.

        Args:
            installation: Installation whose service is queried

        Returns:
            ServiceState
        """
        if not self.is_installed(installation):
            return ServiceState.UNKNOWN
        try:
            result = self._run(installation, "status")
        except ServiceError as e:
            logger.warning(f"Service status query failed: {e}")
            return ServiceState.UNKNOWN
        return parse_status_output(result.stdout + result.stderr)

    def stop(self, installation: Installation) -> None:
        """
        Stop the runner service. Stopping a stopped service is a success.

        Raises:
            ServiceError: If svc.sh stop fails
        """
        self._transition(installation, "stop", ServiceState.STOPPED)

    def start(self, installation: Installation) -> None:
        """
        Start the runner service. Starting a running service is a success.

        Raises:
            ServiceError: If svc.sh start fails
        """
        self._transition(installation, "start", ServiceState.RUNNING)

    def _transition(
        self, installation: Installation, action: str, desired: ServiceState
    ) -> None:
        if not self.is_installed(installation):
            logger.warning(
                f"No service registered for {installation.path}; skipping {action}"
            )
            return

        state = self.status(installation)
        if state == desired:
            logger.info(f"Service already {desired.value}; nothing to {action}")
            return

        if self.dry_run:
            logger.info(
                f"DRY RUN: Would {action} runner service (current state={state.value})"
            )
            return

        logger.info(f"Service {action}: current state={state.value}")
        result = self._run(installation, action)
        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise ServiceError(
                f"{SERVICE_SCRIPT} {action} exited {result.returncode}: {output[:200]}"
            )
        logger.info(f"Service {action} completed")


def parse_status_output(output: str) -> ServiceState:
    """
    Interpret `svc.sh status` output (systemd on Linux, launchd on macOS).

    Args:
        output: Combined stdout/stderr of svc.sh status

    Returns:
        ServiceState
    """
    text = output.lower()
    if "not installed" in text:
        return ServiceState.UNKNOWN
    if "active (running)" in text or "started:" in text:
        return ServiceState.RUNNING
    if "inactive" in text or "stopped" in text or "failed" in text or "dead" in text:
        return ServiceState.STOPPED
    return ServiceState.UNKNOWN
