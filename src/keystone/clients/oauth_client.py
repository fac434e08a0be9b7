"""
Google OAuth token endpoint client.

Only the refresh_token grant is used; the initial authorization-code exchange
belongs to the sign-in flow, which writes the first StoredCredential.
"""

import httpx
import structlog
from pydantic import ValidationError

from ..errors import TokenRefreshError
from ..models.credentials import TokenGrant

logger = structlog.get_logger(__name__)

TOKEN_URL = 'https://oauth2.googleapis.com/token'


def _error_reason(response: httpx.Response) -> str:
    """OAuth error code from an error body; anything but a JSON object is unknown_error."""
    try:
        body = response.json()
    except ValueError:
        return 'unknown_error'
    if not isinstance(body, dict):
        return 'unknown_error'
    return str(body.get('error') or 'unknown_error')


class GoogleOAuthClient:
    """Exchanges a refresh token for a fresh access token."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        POST a refresh_token grant.

        Not retried: a rotated refresh token may already be spent, and the
        caller must fail loudly instead of retrying with it.

        Raises:
            TokenRefreshError: on transport failure, non-2xx, or a malformed body
        """
        try:
            response = await self._client.post(
                TOKEN_URL,
                data={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'refresh_token': refresh_token,
                    'grant_type': 'refresh_token',
                },
            )
        except httpx.HTTPError as e:
            raise TokenRefreshError(
                f'Token endpoint unreachable: {e}', context={'error_type': type(e).__name__}
            ) from e

        if response.is_error:
            reason = _error_reason(response)
            logger.error('oauth_client.refresh_rejected', status_code=response.status_code, reason=reason)
            raise TokenRefreshError(
                f'Token refresh failed: {reason}',
                context={'status_code': response.status_code},
            )

        try:
            return TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenRefreshError('Token endpoint returned a malformed response') from e

    async def close(self) -> None:
        await self._client.aclose()
