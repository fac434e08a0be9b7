"""
Single-flight credential refresh.

The provider may rotate the refresh token on every refresh, which invalidates
the old one. Two concurrent refreshes with the same token can therefore leave
the store holding a dead token, so concurrent callers inside one process share
a single in-flight lookup instead of each refreshing.

The in-flight task is owned by the guard instance; create one guard per
process and reuse it. It does not coordinate across processes or hosts. For
that, replace it with a store-level advisory lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from .errors import MissingCredentialError
from .logging import get_logger
from .models.credentials import AccessGrant, StoredCredential, TokenGrant

logger = get_logger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


class CredentialStore(Protocol):
    async def get_credential(self) -> StoredCredential | None: ...

    async def save_credential(self, credential: StoredCredential) -> None: ...


class TokenRefresher(Protocol):
    async def refresh(self, refresh_token: str) -> TokenGrant: ...


class CredentialRefreshGuard:
    """
    Hands out a valid access token, refreshing at most once at a time.

    Usage:
        guard = CredentialRefreshGuard(repository, GoogleOAuthClient(...))
        grant = await guard.get_valid_access_token()
    """

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        refresh_buffer: timedelta = DEFAULT_REFRESH_BUFFER,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.refresher = refresher
        self.refresh_buffer = refresh_buffer
        self.clock = clock
        self._inflight: asyncio.Task[AccessGrant] | None = None

    async def get_valid_access_token(self) -> AccessGrant:
        """
        Return a token valid for at least the refresh buffer.

        Callers arriving while a lookup is in flight await the same task.

        Raises:
            MissingCredentialError: nothing is stored
            TokenRefreshError: the provider rejected the refresh
        """
        if self._inflight is None:
            task = asyncio.ensure_future(self._resolve())
            task.add_done_callback(self._clear_inflight)
            self._inflight = task
        else:
            logger.debug('credentials.joined_inflight_refresh')
        # Shielded so one cancelled caller does not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    def _clear_inflight(self, task: asyncio.Task[AccessGrant]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _resolve(self) -> AccessGrant:
        credential = await self.store.get_credential()
        if credential is None:
            raise MissingCredentialError('No stored OAuth credential; sign in first')

        now = self.clock()
        if not credential.expires_within(self.refresh_buffer, now):
            return AccessGrant(
                access_token=credential.access_token,
                owner_email=credential.owner_email,
            )

        logger.info('credentials.refreshing', expires_at=credential.expires_at.isoformat())
        grant = await self.refresher.refresh(credential.refresh_token)

        refreshed = StoredCredential(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or credential.refresh_token,
            expires_at=now + timedelta(seconds=grant.expires_in),
            owner_email=credential.owner_email,
        )
        await self.store.save_credential(refreshed)

        logger.info(
            'credentials.refreshed',
            expires_at=refreshed.expires_at.isoformat(),
            rotated=grant.refresh_token is not None,
        )
        return AccessGrant(access_token=refreshed.access_token, owner_email=refreshed.owner_email)
