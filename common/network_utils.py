# common/network_utils.py
# -*- coding: utf-8 -*-
"""
Network-related utility functions.
"""
import logging
from typing import Optional

import requests

from settings.config_models import BootstrapSettings

from .command_utils import get_symbols, log_step

module_logger = logging.getLogger(__name__)

USER_AGENT = "host-bootstrap/1.0"


def fetch_url(
    url: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
    timeout: Optional[float] = None,
) -> bytes:
    """
    Downloads `url` over HTTP(S) and returns the body.

    Args:
        url: The address to fetch.
        settings: Settings of the current run; supplies the default timeout.
        current_logger: Optional logger instance.
        timeout: Per-request timeout in seconds, overriding the settings.

    Returns:
        The response body.

    Raises:
        requests.RequestException: Connection problems, timeouts and
            non-2xx responses.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = get_symbols(settings)
    if timeout is None:
        timeout = settings.http_timeout_seconds if settings else 30

    log_step(
        f"{symbols.get('gear', '⚙️')} Fetching {url}",
        "debug",
        logger_to_use,
        settings,
    )
    response = requests.get(
        url, timeout=timeout, headers={"User-Agent": USER_AGENT}
    )
    response.raise_for_status()
    if not response.content:
        raise requests.RequestException(f"Empty response body from {url}")
    return response.content
