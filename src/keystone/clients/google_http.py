"""
Shared async HTTP plumbing for the Google REST APIs.

Retry strategy (per request):
- 2xx: return the JSON body
- 4xx (except 429): fail immediately, no retry
- 429 / 5xx / transport errors and timeouts: retry with exponential backoff
"""

from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import wrap_http_error


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class GoogleAPIClient:
    """
    Bearer-authenticated JSON client bound to one Google API base URL.

    Subclasses set `service` ('gmail' / 'sheets') and `base_url`.
    """

    service: str = 'google'
    base_url: str = ''

    def __init__(
        self,
        access_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            access_token: OAuth access token from the credential guard
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={'Authorization': f'Bearer {access_token}'},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _get_once(self, path: str, params: dict[str, Any] | None) -> dict[str, Any]:
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a JSON resource, translating failures into the service's ClientError."""
        try:
            return await self._get_once(path, params)
        except (httpx.HTTPError, ValueError) as e:
            raise wrap_http_error(e, self.service, context={'path': path}) from e

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

