"""Spotify Web API access for library backups (OAuth authorization code flow)."""

from .auth import CallbackListener, SpotifyAuth
from .client import SpotifyClient
from .data_loader import SpotifyDataLoader
from .paginator import fetch_all_pages
from .token_manager import TokenInfo, TokenManager

__all__ = [
    "CallbackListener",
    "SpotifyAuth",
    "SpotifyClient",
    "SpotifyDataLoader",
    "TokenInfo",
    "TokenManager",
    "fetch_all_pages",
]
