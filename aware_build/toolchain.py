"""Bootstrap of tool binaries that are fetched rather than restored."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import requests
from requests import Session
from requests.exceptions import RequestException

from .errors import BuildError

logger = logging.getLogger(__name__)


class DownloadError(BuildError):
    """Raised when a tool binary cannot be downloaded."""


def download_if_missing(
    url: str,
    destination: Path,
    *,
    label: Optional[str] = None,
    session: Optional[Session] = None,
    timeout: float = 60,
) -> bool:
    """Download ``url`` to ``destination`` unless the file already exists.

    Returns ``True`` when a download happened. The file is written to a
    temporary sibling first so that an interrupted transfer never leaves a
    truncated binary behind.
    """

    name = label or destination.name
    if destination.exists():
        logger.debug("%s already present at %s", name, destination)
        return False

    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    request_session = session or requests.Session()
    logger.info("Downloading %s from %s", name, url)
    try:
        with request_session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with partial.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        handle.write(chunk)
    except RequestException as exc:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Failed to download {name} from {url}: {exc}") from exc
    partial.replace(destination)
    return True
