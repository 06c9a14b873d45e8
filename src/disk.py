"""
Free-space preflight for the installation volume.
"""

import logging
import shutil
from pathlib import Path

from models import CheckResult, CheckStatus

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024**3
DEFAULT_MINIMUM_GB = 5.0


def check_free_space(path: Path, minimum_gb: float = DEFAULT_MINIMUM_GB) -> CheckResult:
    """
    Check that the volume holding `path` has at least `minimum_gb` free.

    Fails closed: if free space cannot be determined the check fails.

    Args:
        path: Any path on the volume to check
        minimum_gb: Required free space in GiB

    Returns:
        CheckResult with details["free_gb"] when known
    """
    try:
        usage = shutil.disk_usage(str(path))
    except OSError as e:
        logger.error(f"Cannot determine free space for {path}: {e}")
        return CheckResult(
            check_name="disk_space",
            status=CheckStatus.FAILED,
            message=f"Cannot determine free space: {e}",
            details={"free_gb": None, "minimum_gb": minimum_gb},
        )

    free_gb = usage.free / BYTES_PER_GB
    if free_gb < minimum_gb:
        return CheckResult(
            check_name="disk_space",
            status=CheckStatus.FAILED,
            message=f"Insufficient disk space. Required: {minimum_gb}GB, Available: {free_gb:.2f}GB",
            details={"free_gb": free_gb, "minimum_gb": minimum_gb},
        )

    return CheckResult(
        check_name="disk_space",
        status=CheckStatus.PASSED,
        message=f"Available disk space: {free_gb:.2f}GB",
        details={"free_gb": free_gb, "minimum_gb": minimum_gb},
    )
