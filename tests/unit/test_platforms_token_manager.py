"""Unit tests for the bearer-token lifecycle manager."""

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from inkbridge.platforms.exceptions import NoAccessTokenError, TokenRefreshFailedError
from inkbridge.platforms.models import CredentialState
from inkbridge.platforms.token_manager import (
    DEFAULT_SCOPE,
    BearerAuth,
    TokenManager,
    TokenState,
    build_authorize_url,
    build_token_url,
    exchange_code,
)

NOW = 1_000_000.0


def token_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_manager(credential: CredentialState, handler=None, **kwargs) -> TokenManager:
    client = token_client(handler) if handler else None
    return TokenManager(
        "client-1",
        credential,
        http_client=client,
        clock=lambda: NOW,
        **kwargs,
    )


class TestUrls:
    """Tests for Microsoft identity platform URLs."""

    def test_token_url_default_tenant(self):
        """Test that the common tenant is used by default."""
        assert build_token_url() == "https://login.microsoftonline.com/common/oauth2/v2.0/token"
        assert "/contoso/" in build_token_url("contoso")

    def test_authorize_url(self):
        """Test authorization URL parameters."""
        url = build_authorize_url("client-1", "contoso")
        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert parsed.path == "/contoso/oauth2/v2.0/authorize"
        assert params["client_id"] == ["client-1"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == [DEFAULT_SCOPE]
        assert params["redirect_uri"] == ["http://localhost:3847/callback"]


class TestTokenState:
    """Tests for freshness evaluation."""

    def test_fresh_outside_safety_margin(self):
        """Test a token with plenty of lifetime left."""
        manager = make_manager(CredentialState(access_token="at", expires_at=NOW + 600))

        assert manager.state == TokenState.FRESH

    def test_stale_inside_safety_margin(self):
        """Test that a token expiring within the margin is stale."""
        manager = make_manager(CredentialState(access_token="at", expires_at=NOW + 30))

        assert manager.state == TokenState.STALE

    def test_unknown_expiry_is_stale(self):
        """Test that a token without expiry information is stale."""
        manager = make_manager(CredentialState(access_token="at"))

        assert manager.state == TokenState.STALE


class TestEnsureValid:
    """Tests for TokenManager.ensure_valid."""

    @pytest.mark.asyncio
    async def test_fresh_token_returned_without_request(self):
        """Test that no refresh happens for a fresh token."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        manager = make_manager(
            CredentialState(access_token="at", expires_at=NOW + 600, refresh_token="rt"),
            handler,
        )

        assert await manager.ensure_valid() == "at"
        assert calls == []

    @pytest.mark.asyncio
    async def test_stale_token_refreshed(self):
        """Test a refresh_token grant and the atomic credential update."""
        seen = {}

        def handler(request):
            seen.update(parse_qs(request.content.decode()))
            return httpx.Response(
                200,
                json={"access_token": "new-at", "refresh_token": "new-rt", "expires_in": 3600},
            )

        manager = make_manager(
            CredentialState(access_token="old", refresh_token="rt", client_secret="s3cret"),
            handler,
        )

        assert await manager.ensure_valid() == "new-at"
        assert seen["grant_type"] == ["refresh_token"]
        assert seen["refresh_token"] == ["rt"]
        assert seen["client_secret"] == ["s3cret"]
        assert manager.credential.access_token == "new-at"
        assert manager.credential.refresh_token == "new-rt"
        assert manager.credential.expires_at == NOW + 3600
        assert manager.state == TokenState.FRESH

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(self):
        """Test that a response without refresh_token keeps the old one."""
        manager = make_manager(
            CredentialState(refresh_token="rt"),
            lambda request: httpx.Response(200, json={"access_token": "at2"}),
        )

        await manager.ensure_valid()

        assert manager.credential.refresh_token == "rt"
        assert manager.credential.expires_at == NOW + 3600

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        """Test that parallel ensure_valid calls trigger a single request."""
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"access_token": "shared", "expires_in": 3600})

        manager = make_manager(CredentialState(refresh_token="rt"), handler)

        tokens = await asyncio.gather(*(manager.ensure_valid() for _ in range(5)))

        assert tokens == ["shared"] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed_once_for_concurrent_callers(self):
        """Test three callers racing on a token 30s from expiry."""
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"access_token": "renewed", "expires_in": 3600})

        manager = make_manager(
            CredentialState(access_token="old", refresh_token="rt", expires_at=NOW + 30),
            handler,
        )

        tokens = await asyncio.gather(*(manager.ensure_valid() for _ in range(3)))

        assert tokens == ["renewed"] * 3
        assert len(calls) == 1
        assert manager.state == TokenState.FRESH
        assert manager.credential.expires_at == NOW + 3600

    @pytest.mark.asyncio
    async def test_no_token_at_all(self):
        """Test the error when there is nothing to use or refresh."""
        manager = make_manager(CredentialState())

        with pytest.raises(NoAccessTokenError):
            await manager.ensure_valid()

    @pytest.mark.asyncio
    async def test_stale_token_without_refresh_used_as_is(self):
        """Test that a configured token is still returned when it cannot be renewed."""
        manager = make_manager(CredentialState(access_token="static"))

        assert await manager.ensure_valid() == "static"

    @pytest.mark.asyncio
    async def test_refresh_rejected(self):
        """Test that an error status raises and keeps the old credential."""
        manager = make_manager(
            CredentialState(access_token="old", refresh_token="rt"),
            lambda request: httpx.Response(400, json={"error": "invalid_grant"}),
        )

        with pytest.raises(TokenRefreshFailedError) as exc_info:
            await manager.ensure_valid()

        assert exc_info.value.status_code == 400
        assert manager.credential.access_token == "old"

    @pytest.mark.asyncio
    async def test_refresh_transport_error(self):
        """Test that network failures become TokenRefreshFailedError."""

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        manager = make_manager(CredentialState(refresh_token="rt"), handler)

        with pytest.raises(TokenRefreshFailedError):
            await manager.refresh()

    @pytest.mark.asyncio
    async def test_refresh_can_be_retried(self):
        """Test that a failed refresh does not poison later attempts."""
        responses = [
            httpx.Response(503),
            httpx.Response(200, json={"access_token": "ok", "expires_in": 60}),
        ]
        manager = make_manager(CredentialState(refresh_token="rt"), lambda r: responses.pop(0))

        with pytest.raises(TokenRefreshFailedError):
            await manager.refresh()
        assert await manager.refresh() == "ok"


class TestExchangeCode:
    """Tests for the authorization code exchange."""

    @pytest.mark.asyncio
    async def test_exchange_success(self):
        """Test redeeming a code."""
        seen = {}

        def handler(request):
            seen.update(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt"})

        tokens = await exchange_code("client-1", "the-code", http_client=token_client(handler))

        assert tokens["refresh_token"] == "rt"
        assert seen["grant_type"] == ["authorization_code"]
        assert seen["code"] == ["the-code"]

    @pytest.mark.asyncio
    async def test_exchange_error(self):
        """Test that an error payload raises with its description."""

        def handler(request):
            return httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "Code expired"}
            )

        with pytest.raises(TokenRefreshFailedError, match="Code expired"):
            await exchange_code("client-1", "old", http_client=token_client(handler))


class TestBearerAuth:
    """Tests for the httpx auth flow."""

    @pytest.mark.asyncio
    async def test_sets_authorization_header(self):
        """Test that requests carry the managed token."""
        headers = {}

        def handler(request):
            headers["authorization"] = request.headers.get("Authorization")
            return httpx.Response(200, json={})

        manager = make_manager(CredentialState(access_token="at", expires_at=NOW + 600))
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), auth=BearerAuth(manager)
        ) as client:
            await client.get("https://graph.example/me")

        assert headers["authorization"] == "Bearer at"
