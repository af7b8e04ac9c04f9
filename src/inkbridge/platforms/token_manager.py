"""Bearer-token lifecycle for OAuth-backed adapters."""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Callable
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

import httpx

from inkbridge.platforms.exceptions import NoAccessTokenError, TokenRefreshFailedError
from inkbridge.platforms.models import CredentialState

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 60.0
DEFAULT_EXPIRES_IN = 3600
DEFAULT_TENANT = "common"
DEFAULT_SCOPE = "Chat.ReadWrite ChatMessage.Send offline_access"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
AUTHORIZE_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize"
DEFAULT_REDIRECT_URI = "http://localhost:3847/callback"


def build_token_url(tenant_id: Optional[str] = None) -> str:
    """Token endpoint of the Microsoft identity platform for a tenant."""
    return TOKEN_URL_TEMPLATE.format(tenant=tenant_id or DEFAULT_TENANT)


def build_authorize_url(
    client_id: str,
    tenant_id: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
    scope: str = DEFAULT_SCOPE,
) -> str:
    """Browser URL that starts the authorization code flow."""
    params = urlencode(
        {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": scope,
            "response_mode": "query",
        }
    )
    return f"{AUTHORIZE_URL_TEMPLATE.format(tenant=tenant_id or DEFAULT_TENANT)}?{params}"


async def exchange_code(
    client_id: str,
    code: str,
    tenant_id: Optional[str] = None,
    redirect_uri: str = DEFAULT_REDIRECT_URI,
    client_secret: Optional[str] = None,
    scope: str = DEFAULT_SCOPE,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """Redeem an authorization code for access and refresh tokens.

    Returns:
        The token endpoint's JSON response

    Raises:
        TokenRefreshFailedError: If the endpoint rejects the code
    """
    data = {
        "client_id": client_id,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "scope": scope,
    }
    if client_secret:
        data["client_secret"] = client_secret

    url = build_token_url(tenant_id)
    try:
        if http_client is not None:
            response = await http_client.post(url, data=data)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(url, data=data)
    except httpx.HTTPError as e:
        raise TokenRefreshFailedError(f"Code exchange request failed: {e}") from e

    try:
        payload = response.json()
    except ValueError:
        payload = {}

    if response.status_code >= 400 or payload.get("error"):
        detail = payload.get("error_description") or payload.get("error") or response.text
        raise TokenRefreshFailedError(
            f"Code exchange failed: {detail}", status_code=response.status_code
        )
    return payload


class TokenState(str, Enum):
    """Validity of the held access token."""

    FRESH = "fresh"
    STALE = "stale"


class TokenManager:
    """Issues a valid bearer token on demand, refreshing before expiry.

    Features:
    - Safety margin: a token expiring within ``safety_margin`` seconds is stale
    - Coalescing: concurrent callers share one in-flight refresh
    - Atomic update: access token, refresh token and expiry are replaced together
    - Without a refresh token the configured access token is used as-is

    Each manager belongs to exactly one adapter instance.
    """

    def __init__(
        self,
        client_id: str,
        credential: CredentialState,
        tenant_id: Optional[str] = None,
        scope: str = DEFAULT_SCOPE,
        token_url: Optional[str] = None,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token manager.

        Args:
            client_id: OAuth application (client) ID
            credential: Initial credential state
            tenant_id: Directory tenant, defaults to "common"
            scope: Space-separated scopes requested on refresh
            token_url: Override for the token endpoint
            safety_margin: Seconds before expiry at which a token turns stale
            http_client: Client used for refresh calls (one is created per call if None)
            clock: Wall-clock time source in epoch seconds
        """
        self._client_id = client_id
        self._credential = credential
        self._scope = scope
        self._token_url = token_url or build_token_url(tenant_id)
        self._safety_margin = safety_margin
        self._http_client = http_client
        self._clock = clock
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def credential(self) -> CredentialState:
        """Current credential snapshot."""
        return self._credential

    @property
    def token_url(self) -> str:
        return self._token_url

    @property
    def state(self) -> TokenState:
        """Fresh if the token is valid for longer than the safety margin."""
        cred = self._credential
        if cred.access_token and self._clock() < cred.expires_at - self._safety_margin:
            return TokenState.FRESH
        return TokenState.STALE

    @property
    def can_refresh(self) -> bool:
        return bool(self._credential.refresh_token and self._client_id)

    async def ensure_valid(self) -> str:
        """Get an access token that is safe to send now.

        Returns:
            Bearer access token

        Raises:
            NoAccessTokenError: If no token is held and none can be obtained
            TokenRefreshFailedError: If a required refresh failed
        """
        if self.state == TokenState.FRESH:
            return self._credential.access_token  # type: ignore[return-value]

        if self.can_refresh:
            return await self.refresh()

        if not self._credential.access_token:
            raise NoAccessTokenError("No access token available")

        # No way to renew: the configured token may still be accepted
        return self._credential.access_token

    async def refresh(self) -> str:
        """Refresh the access token, joining a refresh already in flight."""
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._refresh())
            self._refresh_task = task

        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._refresh_task is task:
                self._refresh_task = None

    async def _refresh(self) -> str:
        """Perform one refresh_token grant against the token endpoint."""
        cred = self._credential
        if not cred.refresh_token or not self._client_id:
            raise TokenRefreshFailedError("Cannot refresh token: missing refresh_token or client_id")

        data = {
            "client_id": self._client_id,
            "grant_type": "refresh_token",
            "refresh_token": cred.refresh_token,
            "scope": self._scope,
        }
        if cred.client_secret:
            data["client_secret"] = cred.client_secret

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self._token_url, data=data)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(self._token_url, data=data)
        except httpx.HTTPError as e:
            logger.error(f"Token refresh request failed: {e}")
            raise TokenRefreshFailedError(f"Token refresh request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Token refresh rejected ({response.status_code}): {response.text}")
            raise TokenRefreshFailedError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenRefreshFailedError("Token endpoint returned invalid JSON") from e

        access_token = payload.get("access_token")
        if not access_token:
            raise TokenRefreshFailedError("Token endpoint returned no access_token")

        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
        self._credential = cred.model_copy(
            update={
                "access_token": access_token,
                "refresh_token": payload.get("refresh_token") or cred.refresh_token,
                "expires_at": self._clock() + float(expires_in),
            }
        )
        logger.info("Token refreshed successfully")
        return access_token


class BearerAuth(httpx.Auth):
    """httpx auth flow that asks a TokenManager for a token before every request."""

    def __init__(self, manager: TokenManager):
        self._manager = manager

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self._manager.ensure_valid()
        request.headers["Authorization"] = f"Bearer {token}"
        yield request
