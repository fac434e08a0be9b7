"""Tests for GoogleOAuthClient (refresh_token grant)."""

from urllib.parse import parse_qs

import httpx
import pytest

from keystone.clients.oauth_client import TOKEN_URL, GoogleOAuthClient
from keystone.errors import TokenRefreshError


def _client(handler) -> GoogleOAuthClient:
    return GoogleOAuthClient('client-id', 'client-secret', transport=httpx.MockTransport(handler))


class TestRefresh:
    @pytest.mark.asyncio
    async def test_posts_form_and_parses_grant(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen['url'] = str(request.url)
            seen['form'] = parse_qs(request.content.decode())
            return httpx.Response(200, json={
                'access_token': 'new-access',
                'expires_in': 3599,
                'scope': 'https://www.googleapis.com/auth/gmail.readonly',
                'token_type': 'Bearer',
            })

        client = _client(handler)
        try:
            grant = await client.refresh('refresh-1')
        finally:
            await client.close()

        assert seen['url'] == TOKEN_URL
        assert seen['form']['grant_type'] == ['refresh_token']
        assert seen['form']['refresh_token'] == ['refresh-1']
        assert seen['form']['client_id'] == ['client-id']
        assert grant.access_token == 'new-access'
        assert grant.expires_in == 3599
        assert grant.refresh_token is None

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_returned(self):
        def handler(request):
            return httpx.Response(200, json={
                'access_token': 'a', 'expires_in': 3600, 'refresh_token': 'refresh-2',
            })

        client = _client(handler)
        try:
            grant = await client.refresh('refresh-1')
        finally:
            await client.close()

        assert grant.refresh_token == 'refresh-2'

    @pytest.mark.asyncio
    async def test_rejected_grant_raises_with_reason(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={'error': 'invalid_grant'})

        client = _client(handler)
        try:
            with pytest.raises(TokenRefreshError) as exc_info:
                await client.refresh('spent-token')
        finally:
            await client.close()

        assert 'invalid_grant' in exc_info.value.message
        assert exc_info.value.context['status_code'] == 400
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text='Bad Gateway')

        client = _client(handler)
        try:
            with pytest.raises(TokenRefreshError, match='unknown_error'):
                await client.refresh('refresh-1')
        finally:
            await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize('body', [['bad'], 'invalid_grant', None, {'error': None}])
    async def test_error_body_not_an_object(self, body):
        def handler(request):
            return httpx.Response(400, json=body)

        client = _client(handler)
        try:
            with pytest.raises(TokenRefreshError, match='unknown_error') as exc_info:
                await client.refresh('refresh-1')
        finally:
            await client.close()

        assert exc_info.value.context['status_code'] == 400

    @pytest.mark.asyncio
    async def test_malformed_success_body(self):
        def handler(request):
            return httpx.Response(200, json={'token_type': 'Bearer'})

        client = _client(handler)
        try:
            with pytest.raises(TokenRefreshError, match='malformed'):
                await client.refresh('refresh-1')
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        client = _client(handler)
        try:
            with pytest.raises(TokenRefreshError, match='unreachable'):
                await client.refresh('refresh-1')
        finally:
            await client.close()
