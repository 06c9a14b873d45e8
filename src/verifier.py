"""
Post-install verification of a runner installation.
"""

import logging
from typing import Iterable

from config import DEFAULT_REQUIRED_FILES
from models import CheckResult, CheckStatus, Installation

logger = logging.getLogger(__name__)


class InstallationVerifier:
    """Checks that an installation contains its required entry points."""

    def __init__(self, required_files: Iterable[str] = DEFAULT_REQUIRED_FILES):
        self.required_files = tuple(required_files)

    def verify(self, installation: Installation) -> CheckResult:
        """
        Check every required file exists.

        Args:
            installation: Installation to verify

        Returns:
            CheckResult; FAILED lists details["missing_files"]
        """
        missing = [
            rel for rel in self.required_files if not (installation.path / rel).is_file()
        ]
        if missing:
            logger.error(f"Verification FAILED, missing: {', '.join(missing)}")
            return CheckResult(
                check_name="installation",
                status=CheckStatus.FAILED,
                message=f"Missing required file(s): {', '.join(missing)}",
                details={"missing_files": missing},
            )

        logger.info(f"✓ Installation verified ({len(self.required_files)} entry points present)")
        return CheckResult(
            check_name="installation",
            status=CheckStatus.PASSED,
            message="All required files present",
            details={"missing_files": []},
        )
