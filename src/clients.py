"""
REST client for the runner release-metadata endpoint (GitHub Releases API).
"""

import logging
import time
from pathlib import Path
from typing import Dict, Optional

import requests

from errors import NetworkError

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"


class ReleaseClient:
    """REST client for runner release metadata and artifact downloads."""

    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        repo: str = "actions/runner",
        api_base: str = API_BASE,
        token: Optional[str] = None,
        timeout_s: int = 60,
        max_retries: int = 2,
        base_delay: float = 2.0,
    ):
        """
        Initialize the release client.

        Args:
            repo: owner/name of the repository publishing runner releases
            api_base: Base URL of the releases API
            token: Optional API token (raises the anonymous rate limit)
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
        """
        self.repo = repo
        self.api_base = api_base.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay

        self.session = requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        """Construct full API URL from path."""
        return f"{self.api_base}/{path.lstrip('/')}"

    def _request_with_retry(self, url: str, **kwargs) -> requests.Response:
        """
        Execute a GET request with exponential backoff for transient errors.

        Args:
            url: Request URL
            **kwargs: Additional request parameters

        Returns:
            The final response (retryable statuses exhausted or not)

        Raises:
            NetworkError: If the endpoint stays unreachable
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = self.session.get(url, timeout=self.timeout_s, **kwargs)
            except requests.RequestException as e:
                last_error = str(e)
                if attempt < self.max_retries:
                    delay = self._calculate_delay(attempt)
                    logger.warning(
                        f"Request error: {e}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                    )
                    time.sleep(delay)
                continue

            if (
                resp.status_code in self.RETRYABLE_STATUS_CODES
                and attempt < self.max_retries
            ):
                delay = self._calculate_delay(attempt, resp)
                logger.warning(
                    f"Retryable error {resp.status_code}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = f"HTTP {resp.status_code}: {resp.text[:200]}"
                time.sleep(delay)
                continue

            return resp

        raise NetworkError(f"Release endpoint unreachable: {last_error}")

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return min(float(resp.headers["Retry-After"]), 60.0)
            except ValueError:
                pass
        return min(self.base_delay * (2**attempt), 60.0)

    def get_latest_release(self) -> Dict:
        """
        Get metadata of the newest stable release.

        Returns:
            Release metadata as dictionary

        Raises:
            NetworkError: If the endpoint is unreachable or answers badly
        """
        url = self._url(f"repos/{self.repo}/releases/latest")
        resp = self._request_with_retry(url)
        if resp.status_code != 200:
            raise NetworkError(
                f"Get latest release failed ({resp.status_code}): {resp.text[:200]}"
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError(f"Latest release response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise NetworkError(f"Latest release returned unexpected response: {data}")
        return data

    def get_latest_tag(self) -> str:
        """
        Get the tag name of the newest stable release.

        Raises:
            NetworkError: If no usable tag is returned
        """
        data = self.get_latest_release()
        if data.get("draft") or data.get("prerelease"):
            raise NetworkError(f"Latest release {data.get('tag_name')} is not stable")
        tag = str(data.get("tag_name") or "").strip()
        if not tag:
            raise NetworkError("Latest release has no tag name")
        return tag

    def download(self, url: str, dest: Path, chunk_size: int = 1024 * 1024) -> Path:
        """
        Stream a release artifact to a local file.

        Args:
            url: Artifact download URL
            dest: Destination file path
            chunk_size: Bytes per streamed chunk

        Returns:
            The destination path

        Raises:
            NetworkError: If the download fails
        """
        logger.info(f"Downloading {url}")
        try:
            with self.session.get(
                url, timeout=self.timeout_s, stream=True, allow_redirects=True
            ) as resp:
                if resp.status_code != 200:
                    raise NetworkError(
                        f"Download failed ({resp.status_code}): {url}"
                    )
                with open(dest, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=chunk_size):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise NetworkError(f"Download failed: {e}") from e

        logger.info(f"Downloaded {dest.name} ({dest.stat().st_size} bytes)")
        return dest
