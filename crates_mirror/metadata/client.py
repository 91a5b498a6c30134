#!/usr/bin/env python3

import time
import logging
import requests
from typing import Callable, Optional
from urllib.parse import quote

from ..sync.models import MetadataFetchError

logger = logging.getLogger(__name__)

class RateLimiter:
    """Enforces a minimum delay between the starts of consecutive requests.

    Meant for a single caller issuing requests one after another; there is
    no locking.
    """

    def __init__(self, delay_seconds: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.delay_seconds = delay_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_start: Optional[float] = None

    def wait(self) -> None:
        if self._last_start is not None:
            remaining = self.delay_seconds - (self._clock() - self._last_start)
            if remaining > 0:
                self._sleep(remaining)
        self._last_start = self._clock()

class MetadataClient:
    def __init__(self, api_url: str, user_agent: str, delay_seconds: float,
                 timeout: float = 30.0, session: Optional[requests.Session] = None,
                 rate_limiter: Optional[RateLimiter] = None):
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter(delay_seconds)
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'application/json',
        })

    def fetch(self, name: str) -> Optional[str]:
        """Return the repository URL a crate declares, or None if it has none"""
        url = f"{self.api_url}/crates/{quote(name, safe='')}"

        self.rate_limiter.wait()
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise MetadataFetchError(name, str(e)) from e
        except ValueError as e:
            raise MetadataFetchError(name, f"invalid JSON in response: {e}") from e

        crate = data.get('crate') if isinstance(data, dict) else None
        if not isinstance(crate, dict):
            raise MetadataFetchError(name, "response has no 'crate' object")

        repository = crate.get('repository')
        if not isinstance(repository, str) or not repository.strip():
            return None

        return repository.strip()

    def close(self) -> None:
        self.session.close()
