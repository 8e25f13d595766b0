from typing import Any, Dict, Optional

import httpx

from utils.logger import log_debug, log_info

from .auth import SpotifyAuth
from .exceptions import AuthenticationError, SpotifyAPIError
from .token_manager import TokenInfo, TokenManager


DEFAULT_API_BASE_URL = "https://api.spotify.com"


class SpotifyClient:
    """Thin Spotify Web API client around a single reusable httpx.Client.

    Attaches the bearer token to every request and refreshes it when it is about
    to expire, or once after a 401. Nothing else is retried: a failed request is
    reported to the caller as SpotifyAPIError.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        auth: Optional[SpotifyAuth] = None,
        token_manager: Optional[TokenManager] = None,
        token: Optional[TokenInfo] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or {}
        self.auth = auth
        if token_manager is None:
            token_manager = auth.token_manager if auth is not None else TokenManager(
                cache_path=self.config.get("token_cache_path", "token_cache.json")
            )
        self.token_manager = token_manager
        self._token: Optional[TokenInfo] = token
        self._http = httpx.Client(
            timeout=float(self.config.get("http_timeout", 30.0)),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return str(self.config.get("spotify_api_base_url") or DEFAULT_API_BASE_URL).rstrip("/")

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SpotifyClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -----------------
    # Token management
    # -----------------

    def set_token(self, token: TokenInfo) -> None:
        self._token = token

    def get_token(self) -> TokenInfo:
        if self._token is None:
            self._token = self.token_manager.load()

        if not self.token_manager.is_expired(self._token):
            return self._token

        log_info("Spotify access token expired; refreshing.")
        return self._refresh()

    def _can_refresh(self) -> bool:
        return (
            self.auth is not None
            and self._token is not None
            and bool(self._token.refresh_token)
            and bool(self.config.get("spotify_auto_refresh", True))
        )

    def _refresh(self) -> TokenInfo:
        if not bool(self.config.get("spotify_auto_refresh", True)):
            raise AuthenticationError("Spotify token expired and spotify_auto_refresh is disabled.")
        if self._token is None or not self._token.refresh_token:
            raise AuthenticationError("Spotify token expired and no refresh_token is available.")
        if self.auth is None:
            raise AuthenticationError("Spotify token expired and no authenticator is configured to refresh it.")

        self._token = self.auth.refresh_access_token(refresh_token=self._token.refresh_token)
        return self._token

    # -----------------
    # HTTP helpers
    # -----------------

    def _resolve(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def _send(self, url: str, token: TokenInfo, params: Optional[Dict[str, Any]]) -> httpx.Response:
        try:
            return self._http.get(
                url,
                params=params,
                headers={"Authorization": token.authorization_header},
            )
        except httpx.HTTPError as e:
            raise SpotifyAPIError(f"Spotify API request failed: {e}") from e

    def get_json(self, url: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a Web API URL (absolute or relative to the API base) and return the JSON object."""

        url = self._resolve(url)
        log_debug(f"GET {url}")

        resp = self._send(url, self.get_token(), params)

        # 401: token revoked or expired server-side; refresh once.
        if resp.status_code == 401 and self._can_refresh():
            log_info("Spotify rejected the access token; refreshing and retrying once.")
            resp = self._send(url, self._refresh(), params)

        if resp.status_code >= 400:
            raise SpotifyAPIError(
                f"Spotify API error {resp.status_code} for {url}: {resp.text}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise SpotifyAPIError(
                f"Spotify API response was not JSON (status {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
            ) from e

        if not isinstance(payload, dict):
            raise SpotifyAPIError(f"Spotify API response was not an object: {payload!r}", status_code=resp.status_code)

        return payload
