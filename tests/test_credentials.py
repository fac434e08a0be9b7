"""
Tests for CredentialRefreshGuard.

Uses an in-memory store and an AsyncMock refresher; no network.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from keystone.credentials import CredentialRefreshGuard
from keystone.errors import MissingCredentialError, TokenRefreshError
from keystone.models.credentials import StoredCredential, TokenGrant

NOW = datetime(2026, 3, 10, 12, 0, 0)


class InMemoryStore:
    def __init__(self, credential: StoredCredential | None = None):
        self.credential = credential
        self.saved: list[StoredCredential] = []

    async def get_credential(self):
        return self.credential

    async def save_credential(self, credential):
        self.credential = credential
        self.saved.append(credential)


def _credential(expires_in: timedelta) -> StoredCredential:
    return StoredCredential(
        refresh_token='refresh-1',
        access_token='access-1',
        expires_at=NOW + expires_in,
        owner_email='me@keystone.test',
    )


def _slow_refresher(grant: TokenGrant, delay: float = 0.05) -> AsyncMock:
    async def _refresh(refresh_token):
        await asyncio.sleep(delay)
        return grant

    return AsyncMock(refresh=AsyncMock(side_effect=_refresh))


class TestValidToken:
    @pytest.mark.asyncio
    async def test_fresh_token_returned_without_refresh(self):
        store = InMemoryStore(_credential(timedelta(hours=1)))
        refresher = AsyncMock()
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        grant = await guard.get_valid_access_token()

        assert grant.access_token == 'access-1'
        assert grant.owner_email == 'me@keystone.test'
        refresher.refresh.assert_not_called()
        assert store.saved == []

    @pytest.mark.asyncio
    async def test_token_inside_buffer_is_refreshed(self):
        store = InMemoryStore(_credential(timedelta(minutes=4)))
        refresher = AsyncMock()
        refresher.refresh.return_value = TokenGrant(access_token='access-2', expires_in=3600)
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        grant = await guard.get_valid_access_token()

        assert grant.access_token == 'access-2'
        refresher.refresh.assert_awaited_once_with('refresh-1')


class TestRefresh:
    @pytest.mark.asyncio
    async def test_expiry_computed_from_clock(self):
        store = InMemoryStore(_credential(timedelta(seconds=-10)))
        refresher = AsyncMock()
        refresher.refresh.return_value = TokenGrant(access_token='access-2', expires_in=3600)
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        await guard.get_valid_access_token()

        assert store.credential.expires_at == NOW + timedelta(seconds=3600)
        assert store.credential.access_token == 'access-2'

    @pytest.mark.asyncio
    async def test_keeps_refresh_token_when_not_rotated(self):
        store = InMemoryStore(_credential(timedelta(0)))
        refresher = AsyncMock()
        refresher.refresh.return_value = TokenGrant(access_token='access-2', expires_in=3600)
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        await guard.get_valid_access_token()

        assert store.credential.refresh_token == 'refresh-1'

    @pytest.mark.asyncio
    async def test_stores_rotated_refresh_token(self):
        store = InMemoryStore(_credential(timedelta(0)))
        refresher = AsyncMock()
        refresher.refresh.return_value = TokenGrant(
            access_token='access-2', expires_in=3600, refresh_token='refresh-2'
        )
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        await guard.get_valid_access_token()

        assert store.credential.refresh_token == 'refresh-2'

    @pytest.mark.asyncio
    async def test_missing_credential_raises(self):
        guard = CredentialRefreshGuard(InMemoryStore(None), AsyncMock(), clock=lambda: NOW)

        with pytest.raises(MissingCredentialError):
            await guard.get_valid_access_token()

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates_and_store_untouched(self):
        store = InMemoryStore(_credential(timedelta(0)))
        refresher = AsyncMock()
        refresher.refresh.side_effect = TokenRefreshError('invalid_grant')
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        with pytest.raises(TokenRefreshError):
            await guard.get_valid_access_token()

        assert store.saved == []
        assert store.credential.access_token == 'access-1'


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        store = InMemoryStore(_credential(timedelta(0)))
        refresher = _slow_refresher(
            TokenGrant(access_token='access-2', expires_in=3600, refresh_token='refresh-2')
        )
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        grants = await asyncio.gather(*(guard.get_valid_access_token() for _ in range(5)))

        assert refresher.refresh.await_count == 1
        assert {g.access_token for g in grants} == {'access-2'}
        assert len(store.saved) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_all_see_failure(self):
        store = InMemoryStore(_credential(timedelta(0)))
        refresher = AsyncMock()

        async def _fail(refresh_token):
            await asyncio.sleep(0.01)
            raise TokenRefreshError('invalid_grant')

        refresher.refresh.side_effect = _fail
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        outcomes = await asyncio.gather(
            guard.get_valid_access_token(),
            guard.get_valid_access_token(),
            return_exceptions=True,
        )

        assert all(isinstance(o, TokenRefreshError) for o in outcomes)
        assert refresher.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_later_call_starts_new_lookup(self):
        store = InMemoryStore(_credential(timedelta(0)))
        refresher = AsyncMock()
        refresher.refresh.return_value = TokenGrant(access_token='access-2', expires_in=3600)
        guard = CredentialRefreshGuard(store, refresher, clock=lambda: NOW)

        await guard.get_valid_access_token()
        # Refreshed token is now valid, so the second call must not refresh again
        second = await guard.get_valid_access_token()

        assert second.access_token == 'access-2'
        assert refresher.refresh.await_count == 1
        assert guard._inflight is None
