"""
Best-effort push of snapshots to a remote REST endpoint.

The remote copy is never required for correctness: callers log and ignore
RemoteSyncError. Server errors and timeouts are retried with exponential
backoff; client errors are not.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Optional

import requests
from requests.exceptions import RequestException

from contact_vault import __version__
from contact_vault.backup.snapshot import Snapshot

# Retry configuration
MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 1.0  # seconds
MAX_RETRY_DELAY = 30.0  # seconds

# HTTP timeout configuration
DEFAULT_TIMEOUT = 10.0  # seconds

DEFAULT_TOKEN_ENV = "CONTACT_VAULT_REMOTE_TOKEN"

logger = logging.getLogger(__name__)


class RemoteSyncError(Exception):
    """Raised when a snapshot could not be pushed to the remote endpoint."""

    pass


class RemoteSyncClient:
    """
    POSTs snapshot JSON to ``url``.

    Attributes:
        url: Endpoint receiving snapshots, or None to disable syncing
        token_env: Environment variable holding the bearer token
        timeout: Per-request timeout in seconds
        max_retries: Attempts before giving up
    """

    def __init__(
        self,
        url: Optional[str],
        token_env: str = DEFAULT_TOKEN_ENV,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.token_env = token_env
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"contact-vault/{__version__}",
        }
        token = os.environ.get(self.token_env)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def push(self, snapshot: Snapshot) -> dict[str, Any]:
        """
        Send a snapshot to the remote endpoint.

        Blocking; async callers run it with ``asyncio.to_thread``.

        Returns:
            The decoded JSON response body ({} when the body is empty or not JSON)

        Raises:
            RemoteSyncError: If syncing is disabled or every attempt failed
        """
        if not self.url:
            raise RemoteSyncError("Remote sync is not configured")

        delay = INITIAL_RETRY_DELAY
        payload = snapshot.to_dict()

        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    f"Pushing {snapshot.record_count} contact(s) to {self.url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                response = self._session.post(
                    self.url,
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                response.raise_for_status()

            except requests.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else None

                if status_code and status_code >= 500 and attempt < self.max_retries - 1:
                    logger.warning(
                        f"Server error ({status_code}) from remote sync, "
                        f"retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, MAX_RETRY_DELAY)
                    continue

                raise RemoteSyncError(f"Remote sync rejected: {e}") from e

            except requests.Timeout as e:
                if attempt < self.max_retries - 1:
                    logger.warning(f"Remote sync timed out, retrying in {delay:.1f}s")
                    time.sleep(delay)
                    delay = min(delay * 2, MAX_RETRY_DELAY)
                    continue
                raise RemoteSyncError(
                    f"Remote sync timed out after {self.max_retries} attempts"
                ) from e

            except RequestException as e:
                raise RemoteSyncError(f"Remote sync failed: {e}") from e

            logger.info(f"Pushed {snapshot.record_count} contact(s) to remote")
            try:
                body = response.json()
            except ValueError:
                return {}
            return body if isinstance(body, dict) else {}

        raise RemoteSyncError(f"Remote sync failed after {self.max_retries} attempts")

    def close(self) -> None:
        self._session.close()


__all__ = ["RemoteSyncClient", "RemoteSyncError", "DEFAULT_TOKEN_ENV"]
