"""
Download and installation of a runner release into an existing installation.
"""

import json
import logging
import os
import platform
import shutil
import stat
import tarfile
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from clients import ReleaseClient
from config import DEFAULT_DOWNLOAD_URL_TEMPLATE
from errors import InstallError, NetworkError
from models import Installation
from versions import strip_version_prefix

logger = logging.getLogger(__name__)

OS_NAMES = {"Linux": "linux", "Darwin": "osx"}
ARCH_NAMES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
}
EXECUTABLES = ("config.sh", "run.sh")


def platform_artifact(
    version: str, system: Optional[str] = None, machine: Optional[str] = None
) -> str:
    """
    Name of the release artifact for this host.

    Args:
        version: Runner version ("v" prefix optional)
        system: platform.system() override
        machine: platform.machine() override

    Returns:
        Artifact file name, e.g. actions-runner-linux-x64-2.319.1.tar.gz

    Raises:
        InstallError: If the platform has no published artifact
    """
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()
    os_name = OS_NAMES.get(system)
    arch = ARCH_NAMES.get(machine)
    if not os_name or not arch:
        raise InstallError(f"Unsupported platform: {system}/{machine}")
    return f"actions-runner-{os_name}-{arch}-{strip_version_prefix(version)}.tar.gz"


class Installer:
    """Replaces an installation's payload with a downloaded release."""

    def __init__(
        self,
        client: ReleaseClient,
        download_url_template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE,
        dry_run: bool = False,
    ):
        self.client = client
        self.download_url_template = download_url_template
        self.dry_run = dry_run

    def download_url(self, version: str, artifact: str) -> str:
        return self.download_url_template.format(
            repo=self.client.repo, version=strip_version_prefix(version), artifact=artifact
        )

    def install(self, installation: Installation, target_version: str) -> None:
        """
        Download `target_version` and swap it into the installation.

        The downloaded archive and the staging directory are removed whether
        the install succeeds or not.

        Args:
            installation: Installation to update in place
            target_version: Version to install

        Raises:
            InstallError: On any download, extraction or swap failure
        """
        target_version = strip_version_prefix(target_version)
        artifact = platform_artifact(target_version)
        url = self.download_url(target_version, artifact)

        if self.dry_run:
            logger.info(f"DRY RUN: Would download {url}")
            logger.info(f"DRY RUN: Would install {target_version} into {installation.path}")
            return

        download_dir = Path(tempfile.mkdtemp(prefix="runner-download-"))
        staging: Optional[Path] = None
        try:
            archive = self.client.download(url, download_dir / artifact)
            staging = Path(
                tempfile.mkdtemp(
                    prefix=f".{installation.name}-staging-", dir=str(installation.path.parent)
                )
            )
            self._extract(archive, staging)
            shipped_manifest = (staging / installation.manifest_name).exists()
            self._swap_in(staging, installation)
            if not shipped_manifest:
                self._write_manifest(installation, target_version)
            self._mark_executable(installation)
        except InstallError:
            raise
        except NetworkError as e:
            raise InstallError(f"Download of {artifact} failed: {e}") from e
        except (OSError, tarfile.TarError) as e:
            raise InstallError(f"Install of {target_version} failed: {e}") from e
        finally:
            shutil.rmtree(download_dir, ignore_errors=True)
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            logger.info("Cleaned up installation files")

        logger.info(f"Installed runner {target_version} into {installation.path}")

    def _extract(self, archive: Path, dest: Path) -> None:
        logger.info(f"Extracting {archive.name}...")
        with tarfile.open(archive, "r:*") as tar:
            members = tar.getmembers()
            root = dest.resolve()
            for member in members:
                target = (dest / member.name).resolve()
                if target != root and root not in target.parents:
                    raise InstallError(f"Archive member escapes install root: {member.name}")
                if member.issym() or member.islnk():
                    base = target.parent if member.issym() else dest
                    link_target = (base / member.linkname).resolve()
                    if root not in link_target.parents and link_target != root:
                        raise InstallError(f"Archive link escapes install root: {member.name}")
                if member.isdev():
                    raise InstallError(f"Archive contains device file: {member.name}")
            if hasattr(tarfile, "data_filter"):
                tar.extractall(str(dest), members=members, filter="data")
            else:
                tar.extractall(str(dest), members=members)
        if not any(dest.iterdir()):
            raise InstallError(f"Archive {archive.name} is empty")

    def _swap_in(self, staging: Path, installation: Installation) -> None:
        """
        Move each top-level entry of `staging` into the installation.

        Displaced entries are parked in a sibling directory and moved back if
        the swap fails part way.
        """
        parked = Path(
            tempfile.mkdtemp(
                prefix=f".{installation.name}-previous-", dir=str(installation.path.parent)
            )
        )
        moved: List[Tuple[Path, Optional[Path]]] = []
        try:
            for entry in sorted(staging.iterdir()):
                target = installation.path / entry.name
                parked_entry: Optional[Path] = None
                if target.exists() or target.is_symlink():
                    parked_entry = parked / entry.name
                    os.replace(target, parked_entry)
                moved.append((target, parked_entry))
                os.replace(entry, target)
        except OSError:
            logger.error("Swap failed; putting displaced files back")
            self._unswap(moved)
            raise
        finally:
            shutil.rmtree(parked, ignore_errors=True)

    def _unswap(self, moved: List[Tuple[Path, Optional[Path]]]) -> None:
        for target, parked_entry in reversed(moved):
            try:
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                elif target.exists() or target.is_symlink():
                    target.unlink()
                if parked_entry is not None and (
                    parked_entry.exists() or parked_entry.is_symlink()
                ):
                    os.replace(parked_entry, target)
            except OSError as e:
                logger.error(f"Could not restore {target}: {e}")

    def _write_manifest(self, installation: Installation, version: str) -> None:
        with open(installation.manifest_path, "w", encoding="utf-8") as f:
            json.dump({"version": version}, f, indent=2)
        logger.debug(f"Wrote manifest {installation.manifest_path} ({version})")

    def _mark_executable(self, installation: Installation) -> None:
        for name in EXECUTABLES:
            script = installation.path / name
            if script.is_file():
                mode = script.stat().st_mode
                script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
