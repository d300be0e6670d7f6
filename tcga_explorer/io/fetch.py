"""Resource fetching with a bounded retry policy.

Remote resources are downloaded with requests; local paths and
``file://`` URLs are read directly so offline cohorts use the same path.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import requests

from tcga_explorer.pipeline.config import RetryPolicy
from tcga_explorer.pipeline.errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


class ResourceFetcher:
    """Fetch a resource as bytes, retrying on failure.

    Parameters
    ----------
    retry : RetryPolicy, optional
        Attempt count and fixed delay between attempts
    session : requests.Session, optional
        HTTP session (default: a new session)
    timeout : float
        Per-request timeout in seconds
    sleep : Callable[[float], None]
        Sleep function between attempts

    Example
    -------
    >>> fetcher = ResourceFetcher(RetryPolicy(max_attempts=3, backoff_seconds=5))
    >>> payload = fetcher.fetch("https://example.org/TCGA-BRCA.survival.tsv")
    """

    def __init__(
        self,
        retry: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.retry = retry or RetryPolicy()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.sleep = sleep

    def fetch(self, url: str) -> bytes:
        """Return the content at ``url``.

        Raises
        ------
        FetchError
            After ``retry.max_attempts`` failed attempts
        """
        delays = self.retry.delays()
        attempts = self.retry.max_attempts
        last_error = ""

        for attempt in range(1, attempts + 1):
            logger.info("Fetching %s (attempt %d/%d)", url, attempt, attempts)
            try:
                content = self._fetch_once(url)
                logger.info("Fetched %s (%d bytes)", url, len(content))
                return content
            except (requests.RequestException, OSError) as e:
                last_error = str(e)
                logger.warning("Fetch attempt %d failed for %s: %s", attempt, url, e)
                if attempt < attempts:
                    self.sleep(delays[attempt - 1])

        logger.error("Failed to fetch after %d attempts: %s", attempts, url)
        raise FetchError(url, attempts, last_error)

    def _fetch_once(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        if parsed.scheme == "file":
            return Path(parsed.path).read_bytes()
        return Path(url).read_bytes()
