"""Shared HTTP plumbing for the vendor API clients."""

import logging
from typing import Any

import httpx

from theset.domain.exceptions import ExternalServiceError, RateLimitExceededError

logger = logging.getLogger(__name__)


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class BaseApiClient:
    """Lazy httpx client plus vendor-error mapping.

    Hey future me - every vendor call funnels through _request() so the error
    taxonomy stays uniform: 429 -> RateLimitExceededError, other non-2xx and
    transport failures (timeouts, DNS, resets) -> ExternalServiceError. The
    orchestration loops catch those per item and keep going.
    """

    SERVICE_NAME = "external"
    API_BASE_URL = ""

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE_URL,
                headers=self._default_headers(),
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return decoded JSON (None on 404 when allowed)."""
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s request timed out: %s", self.SERVICE_NAME, url)
            raise ExternalServiceError(self.SERVICE_NAME, f"timeout on {url}") from e
        except httpx.TransportError as e:
            logger.warning(
                "%s transport error on %s: %s", self.SERVICE_NAME, url, e
            )
            raise ExternalServiceError(self.SERVICE_NAME, str(e)) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                "%s rate limited on %s (retry after %s)",
                self.SERVICE_NAME,
                url,
                retry_after,
                extra={"service": self.SERVICE_NAME, "retry_after": retry_after},
            )
            raise RateLimitExceededError(self.SERVICE_NAME, retry_after)
        if response.is_error:
            raise ExternalServiceError(
                self.SERVICE_NAME,
                f"{response.status_code} on {url}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()
