from typing import Any, Dict, List, Optional

from utils.logger import log_info

from .client import SpotifyClient
from .paginator import fetch_all_pages


class SpotifyDataLoader:
    """High-level helpers for extracting playlists and tracks from Spotify.

    Every collection is fetched in full through ``fetch_all_pages`` and the raw
    API objects are projected onto the fields we back up:

      - playlist: id, name
      - item: added_at, track (album, artists, external ids/urls, ...)

    Unknown provider fields are dropped and missing ones get neutral defaults,
    so backups keep a stable shape across API changes.
    """

    def __init__(self, client: SpotifyClient, config: Optional[Dict[str, Any]] = None):
        self.client = client
        self.config = config if config is not None else getattr(client, "config", {}) or {}

    @property
    def base_url(self) -> str:
        return str(self.config.get("spotify_api_base_url") or "https://api.spotify.com").rstrip("/")

    def list_all_playlists(self) -> List[Dict[str, Any]]:
        limit = int(self.config.get("playlist_page_limit", 50))
        url = f"{self.base_url}/v1/me/playlists?offset=0&limit={limit}"

        def progress(count: int, _page: Dict[str, Any]) -> None:
            log_info(f"Fetched {count} playlists")

        items = fetch_all_pages(self.client, url, limit=limit, on_progress=progress)
        return [self._project_playlist(p) for p in items]

    def load_playlist_tracks(self, playlist: Dict[str, Any]) -> List[Dict[str, Any]]:
        limit = int(self.config.get("playlist_tracks_page_limit", 100))
        name = playlist.get("name", "")
        url = f"{self.base_url}/v1/playlists/{playlist.get('id', '')}/tracks?offset=0&limit={limit}"

        def progress(count: int, page: Dict[str, Any]) -> None:
            page_count = len(page.get("items") or [])
            log_info(f"Fetched {page_count} tracks for playlist {name}. Total tracks: {count}")

        items = fetch_all_pages(self.client, url, limit=limit, on_progress=progress)
        return [self._project_item(i) for i in items]

    def load_saved_tracks(self) -> List[Dict[str, Any]]:
        """Return the user's saved tracks (Liked Songs).

        Besides the cursor, paging also stops at the first short page.
        """
        limit = int(self.config.get("saved_tracks_page_limit", 50))
        url = f"{self.base_url}/v1/me/tracks?offset=0&limit={limit}"

        def progress(count: int, _page: Dict[str, Any]) -> None:
            log_info(f"Fetched {count} saved tracks")

        items = fetch_all_pages(self.client, url, limit=limit, stop_on_short_page=True, on_progress=progress)
        return [self._project_item(i) for i in items]

    # -----------------
    # Projection
    # -----------------

    @staticmethod
    def _project_playlist(obj: Any) -> Dict[str, Any]:
        obj = obj if isinstance(obj, dict) else {}
        return {"name": _str(obj.get("name")), "id": _str(obj.get("id"))}

    @classmethod
    def _project_item(cls, obj: Any) -> Dict[str, Any]:
        obj = obj if isinstance(obj, dict) else {}
        track = obj.get("track")
        return {
            "added_at": _str(obj.get("added_at")),
            # Removed/unavailable tracks come back as null.
            "track": cls._project_track(track) if isinstance(track, dict) else None,
        }

    @classmethod
    def _project_track(cls, track: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "album": cls._project_album(_dict(track.get("album"))),
            "artists": [cls._project_artist(_dict(a)) for a in _list(track.get("artists"))],
            "disc_number": _int(track.get("disc_number")),
            "duration_ms": _int(track.get("duration_ms")),
            "explicit": _bool(track.get("explicit")),
            "external_ids": {"isrc": _str(_dict(track.get("external_ids")).get("isrc"))},
            "external_urls": _external_urls(track),
            "href": _str(track.get("href")),
            "id": _str(track.get("id")),
            "is_local": _bool(track.get("is_local")),
            "name": _str(track.get("name")),
            "popularity": _int(track.get("popularity")),
            "preview_url": _str(track.get("preview_url")),
            "track_number": _int(track.get("track_number")),
            "type": _str(track.get("type")),
            "uri": _str(track.get("uri")),
        }

    @classmethod
    def _project_album(cls, album: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "album_group": _str(album.get("album_group")),
            "album_type": _str(album.get("album_type")),
            "artists": [cls._project_artist(_dict(a)) for a in _list(album.get("artists"))],
            "external_urls": _external_urls(album),
            "href": _str(album.get("href")),
            "id": _str(album.get("id")),
            "images": [
                {"height": _int(img.get("height")), "url": _str(img.get("url")), "width": _int(img.get("width"))}
                for img in map(_dict, _list(album.get("images")))
            ],
            "name": _str(album.get("name")),
            "release_date": _str(album.get("release_date")),
            "release_date_precision": _str(album.get("release_date_precision")),
            "total_tracks": _int(album.get("total_tracks")),
            "type": _str(album.get("type")),
            "uri": _str(album.get("uri")),
        }

    @staticmethod
    def _project_artist(artist: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "external_urls": _external_urls(artist),
            "href": _str(artist.get("href")),
            "id": _str(artist.get("id")),
            "name": _str(artist.get("name")),
            "type": _str(artist.get("type")),
            "uri": _str(artist.get("uri")),
        }


def _external_urls(obj: Dict[str, Any]) -> Dict[str, str]:
    return {"spotify": _str(_dict(obj.get("external_urls")).get("spotify"))}


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False
