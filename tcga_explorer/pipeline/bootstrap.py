"""One-time startup checks run before the orchestrator starts."""

import importlib.util
import logging
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import urlparse

import requests

from .config import PipelineConfig

logger = logging.getLogger(__name__)

REQUIRED_MODULES = ("numpy", "pandas", "scipy", "joblib", "requests", "yaml")

CONNECTIVITY_TIMEOUT = 10


def verify_environment(modules: Iterable[str] = REQUIRED_MODULES) -> List[str]:
    """Return the subset of ``modules`` that cannot be imported."""
    missing = [name for name in modules if importlib.util.find_spec(name) is None]
    for name in missing:
        logger.error("Required module not installed: %s", name)
    return missing


def remote_hosts(config: PipelineConfig) -> List[str]:
    """Base URLs of the http(s) sources acquisition would download from."""
    if not config.download_data:
        return []
    hosts = []
    for template in config.sources.values():
        parsed = urlparse(template)
        if parsed.scheme in ("http", "https"):
            base = f"{parsed.scheme}://{parsed.netloc}/"
            if base not in hosts:
                hosts.append(base)
    return hosts


def check_connectivity(
    config: PipelineConfig,
    session: Optional[requests.Session] = None,
    timeout: float = CONNECTIVITY_TIMEOUT,
) -> List[str]:
    """Probe each remote source host once before acquisition.

    Any HTTP response counts as reachable; only connection-level errors do
    not. Unreachable hosts are logged as warnings, since per-unit download
    retries still apply.

    Parameters
    ----------
    config : PipelineConfig
        Run configuration whose sources are checked
    session : requests.Session, optional
        HTTP session (default: a new session)
    timeout : float
        Per-request timeout in seconds

    Returns
    -------
    List[str]
        Hosts that could not be reached (empty when all sources are local)
    """
    hosts = remote_hosts(config)
    if not hosts:
        return []

    session = session or requests.Session()
    unreachable = []
    for host in hosts:
        try:
            session.head(host, timeout=timeout, allow_redirects=True)
            logger.info("Connection available: %s", host)
        except requests.RequestException as e:
            logger.warning("No connection to %s: %s", host, e)
            unreachable.append(host)
    return unreachable


def prepare_output_tree(config: PipelineConfig) -> List[Path]:
    """Create the output directories used by a run."""
    created = []
    for directory in (config.output_dir, config.artifact_dir, config.summary_dir, config.log_dir):
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug("Created directory: %s", directory)
            created.append(directory)
    return created
