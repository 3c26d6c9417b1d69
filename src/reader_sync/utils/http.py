"""Shared HTTP session setup."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__

USER_AGENT = f"reader-sync/{__version__} (+https://github.com/reader-sync/reader-sync)"


def create_session(retry_attempts: int = 3, user_agent: str = USER_AGENT) -> requests.Session:
    """Create HTTP session with retry strategy."""
    session = requests.Session()

    # Configure retry strategy
    retry_strategy = Retry(
        total=retry_attempts,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update({
        'User-Agent': user_agent
    })

    return session
