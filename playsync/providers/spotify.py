"""Spotify Web API playback provider."""

import logging
import time
from typing import Any, Callable

import httpx

from ..config import SpotifyConfig
from ..errors import (
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
)
from ..events import now_ms
from .base import PlaybackProvider, PlaybackState

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def _parse_retry_after(value: str | None) -> float | None:
    """Retry-After in seconds, or None when absent or not a number."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class SpotifyProvider(PlaybackProvider):
    """Controls a Spotify Connect player through the Web API.

    Holds a short-lived access token and renews it with the refresh-token
    grant, either shortly before it expires or once after a 401.
    """

    def __init__(
        self,
        config: SpotifyConfig,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the Spotify provider.

        Args:
            config: Spotify credentials and endpoints.
            http_client: Optional preconfigured client (used by tests).
            clock: Millisecond wall clock used to stamp samples.
        """
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock

        self._access_token: str | None = config.access_token or None
        self._refresh_token: str | None = config.refresh_token or None
        # monotonic deadline; None means "valid until the API says otherwise"
        self._token_expires_at: float | None = None

    @property
    def name(self) -> str:
        return "spotify"

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _token_is_stale(self) -> bool:
        if not self._access_token:
            return True
        if self._token_expires_at is None:
            return False
        return time.monotonic() >= self._token_expires_at - TOKEN_EXPIRY_MARGIN_SECONDS

    async def refresh_access_token(self) -> str:
        """Exchange the refresh token for a new access token.

        Returns:
            The new access token.

        Raises:
            ProviderAuthError: If no refresh token is configured or Spotify
                rejects it.
        """
        if not self._refresh_token or not self.config.client_id:
            raise ProviderAuthError("Cannot refresh token: client_id and refresh_token required")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token,
        }
        auth = None
        if self.config.client_secret:
            auth = (self.config.client_id, self.config.client_secret)
        else:
            # PKCE clients authenticate with the client id alone
            data["client_id"] = self.config.client_id

        client = self._get_client()
        try:
            response = await client.post(self.config.token_url, data=data, auth=auth)
        except httpx.TransportError as e:
            raise ProviderNetworkError(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            raise ProviderAuthError(
                f"Token refresh rejected: HTTP {response.status_code}: {response.text}"
            )

        try:
            body = response.json()
            self._access_token = body["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderAuthError(f"Unexpected token response: {response.text}") from e
        expires_in = body.get("expires_in")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            self._token_expires_at = time.monotonic() + expires_in
        else:
            self._token_expires_at = None
        # Spotify may rotate the refresh token
        if body.get("refresh_token"):
            self._refresh_token = body["refresh_token"]

        logger.info("Spotify access token refreshed")
        return self._access_token

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        """Send an authenticated Web API request.

        Args:
            method: HTTP method.
            path: Path below the API base URL, e.g. "/me/player".
            params: Optional query parameters.
            json_body: Optional JSON body.

        Returns:
            The successful response.

        Raises:
            ProviderError: On any failure, mapped to a subclass where possible.
        """
        if self._token_is_stale():
            await self.refresh_access_token()

        url = f"{self.config.api_base_url.rstrip('/')}{path}"
        client = self._get_client()

        for attempt in range(2):
            headers = {"Authorization": f"Bearer {self._access_token}"}
            try:
                response = await client.request(
                    method, url, params=params, json=json_body, headers=headers
                )
            except httpx.TransportError as e:
                raise ProviderNetworkError(f"{method} {path} failed: {e}") from e

            if response.status_code == 401 and attempt == 0:
                logger.info("Spotify returned 401, refreshing access token")
                await self.refresh_access_token()
                continue
            break

        if response.status_code in (200, 202, 204):
            return response
        if response.status_code == 401:
            raise ProviderAuthError(f"{method} {path}: unauthorized after token refresh")
        if response.status_code == 429:
            raise ProviderRateLimitError(
                f"{method} {path}: rate limited",
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        raise ProviderError(f"{method} {path}: HTTP {response.status_code}: {response.text}")

    def _device_params(self) -> dict[str, Any]:
        if self.config.device_id:
            return {"device_id": self.config.device_id}
        return {}

    async def get_current_playback(self) -> PlaybackState:
        response = await self._request("GET", "/me/player")
        sampled_at = self._clock()

        if response.status_code == 204 or not response.content:
            return PlaybackState(None, False, 0, sampled_at)

        try:
            data = response.json() or {}
        except ValueError as e:
            raise ProviderError(f"GET /me/player: invalid JSON body: {e}") from e
        if not isinstance(data, dict):
            raise ProviderError("GET /me/player: unexpected response body")
        item = data.get("item") or {}
        device = data.get("device") or {}
        return PlaybackState(
            track_uri=item.get("uri"),
            is_playing=bool(data.get("is_playing", False)),
            position_ms=int(data.get("progress_ms") or 0),
            sampled_at_ms=sampled_at,
            device_id=device.get("id"),
        )

    async def start_playback(self, uri: str, position_ms: int) -> None:
        await self._request(
            "PUT",
            "/me/player/play",
            params=self._device_params(),
            json_body={"uris": [uri], "position_ms": position_ms},
        )

    async def seek(self, position_ms: int) -> None:
        params = {"position_ms": position_ms, **self._device_params()}
        await self._request("PUT", "/me/player/seek", params=params)

    async def resume(self) -> None:
        await self._request("PUT", "/me/player/play", params=self._device_params())

    async def pause(self) -> None:
        await self._request("PUT", "/me/player/pause", params=self._device_params())
