"""
HTTP access for live API sources.

Every request carries an explicit timeout. Transport errors, 429 and 5xx
answers are retried a bounded number of times with exponential backoff
inside one refresh attempt; the scheduler handles the longer-term retry.
"""

from typing import Any

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from pharma_kg.config import Settings, settings


def is_retryable(exc: BaseException) -> bool:
    """Transport failures and server-side statuses are worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class Fetcher:
    """Fetch JSON documents from source endpoints."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        config: Settings | None = None,
        wait: wait_base | None = None,
    ):
        self.config = config or settings
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=self.config.http_timeout,
            follow_redirects=True,
        )
        self.wait = wait if wait is not None else wait_exponential(multiplier=1, min=2, max=30)

    def get_json(self, url: str, token: str | None = None) -> Any:
        """
        GET a URL and decode the JSON body.

        Args:
            url: Endpoint URL
            token: Optional bearer token

        Returns:
            Decoded JSON body

        Raises:
            httpx.HTTPStatusError: Non-2xx answer after all attempts
            httpx.HTTPError: Transport failure after all attempts
            ValueError: Body is not JSON
        """
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        retrying = Retrying(
            stop=stop_after_attempt(self.config.http_retries),
            wait=self.wait,
            retry=retry_if_exception(is_retryable),
            reraise=True,
        )
        response = retrying(self._get, url, headers)
        return response.json()

    def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        response = self.client.get(url, headers=headers, timeout=self.config.http_timeout)
        response.raise_for_status()
        return response

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
