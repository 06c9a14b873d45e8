"""
Installed and target version resolution.
"""

import json
import logging
from typing import Optional

from clients import ReleaseClient
from errors import NetworkError
from models import UNKNOWN_VERSION, Installation

logger = logging.getLogger(__name__)


def strip_version_prefix(tag: str) -> str:
    """Strip a single leading 'v' from a release tag ("v2.319.1" -> "2.319.1")."""
    tag = tag.strip()
    if tag[:1] in ("v", "V"):
        return tag[1:]
    return tag


class VersionResolver:
    """Determines the installed and the target runner version."""

    def __init__(self, client: ReleaseClient):
        self.client = client

    def get_installed_version(self, installation: Installation) -> str:
        """
        Read the installed version from the installation's manifest.

        A missing or malformed manifest is not fatal: the version is reported
        as "unknown" and the runner is always upgraded.

        Args:
            installation: Installation to inspect

        Returns:
            Version string or UNKNOWN_VERSION
        """
        manifest = installation.manifest_path
        try:
            with open(manifest, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info(f"No manifest at {manifest}; installed version unknown")
            return UNKNOWN_VERSION
        except (OSError, ValueError) as e:
            logger.warning(f"Cannot read manifest {manifest}: {e}")
            return UNKNOWN_VERSION

        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version.strip():
            logger.warning(f"Manifest {manifest} has no usable version field")
            return UNKNOWN_VERSION
        return strip_version_prefix(version)

    def get_target_version(self, pinned: Optional[str] = None) -> str:
        """
        Determine the version to install.

        Args:
            pinned: Explicit version; returned verbatim without a network call

        Returns:
            Target version string

        Raises:
            NetworkError: If the latest release cannot be determined
        """
        if pinned:
            logger.info(f"Using pinned target version {pinned}")
            return pinned

        logger.info("Fetching latest runner version from release endpoint...")
        tag = self.client.get_latest_tag()
        version = strip_version_prefix(tag)
        if not version:
            raise NetworkError(f"Latest release tag '{tag}' is not a usable version")
        logger.info(f"Latest runner version: {version}")
        return version
