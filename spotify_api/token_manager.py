import json
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import TokenCacheError, TokenDecodeError, TokenNotFoundError


DEFAULT_TOKEN_CACHE_PATH = "token_cache.json"


@dataclass(frozen=True)
class TokenInfo:
    """Canonical token payload stored by TokenManager."""

    access_token: str
    token_type: str
    expires_at: float
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional on refresh)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in") or 0)

        return TokenInfo(
            access_token=str(payload.get("access_token", "")),
            token_type=str(payload.get("token_type", "Bearer")),
            expires_at=now_ts + expires_in,
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TokenInfo":
        return TokenInfo(
            access_token=str(data.get("access_token", "")),
            token_type=str(data.get("token_type") or "Bearer"),
            expires_at=float(data.get("expires_at", 0)),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }

    @property
    def authorization_header(self) -> str:
        # Spotify answers with "Bearer" but some proxies lowercase it.
        token_type = "Bearer" if self.token_type.lower() == "bearer" else self.token_type
        return f"{token_type} {self.access_token}"


class TokenManager:
    """Reads and writes the single cached OAuth token file."""

    def __init__(self, *, cache_path: str = DEFAULT_TOKEN_CACHE_PATH):
        self.cache_path = cache_path

    def ensure_cache_dir(self) -> None:
        cache_dir = os.path.dirname(self.cache_path)
        if cache_dir:
            os.makedirs(cache_dir, exist_ok=True)

    def load(self) -> TokenInfo:
        """Load the cached token.

        Raises TokenNotFoundError if nothing is cached and TokenDecodeError if the
        file cannot be parsed into a token. Either way the caller falls back to
        the interactive flow.
        """
        if not os.path.exists(self.cache_path):
            raise TokenNotFoundError(f"No cached token at {self.cache_path}")

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise TokenDecodeError(f"Failed to read token cache {self.cache_path}: {e}") from e

        if not isinstance(data, dict):
            raise TokenDecodeError(f"Token cache {self.cache_path} does not hold a JSON object")

        try:
            token = TokenInfo.from_dict(data)
        except (TypeError, ValueError) as e:
            raise TokenDecodeError(f"Token cache {self.cache_path} is malformed: {e}") from e

        if not token.access_token:
            raise TokenDecodeError(f"Token cache {self.cache_path} has no access_token")

        return token

    def save(self, token: TokenInfo) -> None:
        """Persist token info to disk, readable by the owner only."""
        try:
            self.ensure_cache_dir()
            fd = os.open(self.cache_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token.to_dict(), f, indent=2)
            # O_CREAT's mode is ignored for pre-existing files.
            os.chmod(self.cache_path, 0o600)
        except OSError as e:
            raise TokenCacheError(f"Failed to save token cache {self.cache_path}: {e}") from e

    def clear(self) -> bool:
        try:
            if os.path.exists(self.cache_path):
                os.remove(self.cache_path)
            return True
        except OSError:
            return False

    @staticmethod
    def is_expired(token: TokenInfo, *, skew_seconds: int = 60) -> bool:
        return time.time() >= float(token.expires_at) - float(skew_seconds)
