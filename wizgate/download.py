#!/usr/bin/env python3
"""
wizgate HTTP fetcher

Streams one URL to one file. Nothing is retried; the caller decides what a
failure means. A destination file only exists after a call returns
normally, so a failed or interrupted download never leaves partial content
behind for a later stage to trust.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import urlsplit

import requests

from wizgate import __version__
from wizgate.config import WizGateConfig
from wizgate.errors import DownloadInterruptedError, NetworkError
from wizgate.logging import redact_url

logger = logging.getLogger(__name__)

HTTP_OK = 200


@dataclass(frozen=True)
class DownloadTarget:
    """One download: where it comes from and where it lands."""
    url: str
    destination: Path


def _proxies_for(url: str, config: WizGateConfig) -> Dict[str, str]:
    host = urlsplit(url).hostname or ""
    proxy = config.proxy.for_host(host)
    if proxy is None:
        # Explicit empty mapping so requests does not fall back to *_PROXY env vars
        return {"http": "", "https": ""}
    logger.debug("Using proxy %s for %s", redact_url(proxy), host)
    return {"http": proxy, "https": proxy}


def _remove_partial(destination: Path) -> None:
    try:
        destination.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove partial download %s: %s", destination, e)


def download_file(
    url: str,
    destination: Union[str, Path],
    config: Optional[WizGateConfig] = None,
) -> Path:
    """Download *url* to *destination*.

    Args:
        url: HTTPS URL to fetch.
        destination: File to write. Parent directories are created.
        config: Timeouts, chunk size and proxy settings. Defaults apply if None.

    Returns:
        The destination path.

    Raises:
        NetworkError: Connection failure, timeout, or a status other than 200.
        DownloadInterruptedError: The body stream failed part way through.
    """
    config = config or WizGateConfig()
    target = DownloadTarget(url=url, destination=Path(destination))
    settings = config.download
    safe_url = redact_url(target.url)

    logger.debug("Downloading %s to %s", safe_url, target.destination)

    try:
        response = requests.get(
            target.url,
            stream=True,
            timeout=settings.timeout,
            proxies=_proxies_for(target.url, config),
            headers={"User-Agent": f"{settings.user_agent}/{__version__}"},
        )
    except requests.RequestException as e:
        raise NetworkError(f"Failed to connect to {safe_url}: {e}", url=safe_url) from e

    with response:
        if response.status_code != HTTP_OK:
            raise NetworkError(
                f"Download failed with HTTP code: {response.status_code}",
                url=safe_url,
                status_code=response.status_code,
            )

        target.destination.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with open(target.destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=settings.chunk_size):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        except requests.RequestException as e:
            _remove_partial(target.destination)
            raise DownloadInterruptedError(
                f"Download of {safe_url} interrupted after {written} bytes: {e}"
            ) from e
        except BaseException:
            _remove_partial(target.destination)
            raise

    logger.debug("Downloaded %d bytes to %s", written, target.destination)
    return target.destination
