import time
from typing import Any, Callable, Dict

from tqdm import tqdm

from managers.backup_manager import write_backup
from spotify_api.data_loader import SpotifyDataLoader
from spotify_api.exceptions import SpotifyAPIError
from utils.logger import log_info, log_success, log_warning

SAVED_TRACKS_NAME = "saved_tracks"


def run_backup(
    config: Dict[str, Any],
    loader: SpotifyDataLoader,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """
    Back up every playlist and the saved tracks of the signed-in user.

    Failing to list playlists or to fetch saved tracks is fatal and propagates.
    A single playlist whose tracks cannot be fetched is logged and skipped.

    Returns:
        Dict with the playlist count, written file paths and skipped playlist names
    """
    backup_dir = config.get("backup_dir", "backups")
    sleep_between = float(config.get("sleep_between", 2))

    results: Dict[str, Any] = {"playlists": 0, "written": [], "skipped": [], "saved_tracks": 0}

    playlists = loader.list_all_playlists()
    results["playlists"] = len(playlists)
    log_info(f"Found {len(playlists)} playlists")

    with tqdm(
        total=len(playlists),
        desc="Backing up",
        unit="playlist",
        disable=not config.get("show_progress", True),
    ) as pbar:
        for playlist in playlists:
            name = playlist.get("name", "")
            try:
                tracks = loader.load_playlist_tracks(playlist)
            except SpotifyAPIError as e:
                log_warning(f"Error fetching tracks for playlist {name}: {e}")
                results["skipped"].append(name)
                pbar.update(1)
                continue

            results["written"].append(write_backup(name, tracks, backup_dir))
            pbar.update(1)
            # Fixed pause; not derived from rate-limit headers.
            sleep(sleep_between)

    saved_tracks = loader.load_saved_tracks()
    results["saved_tracks"] = len(saved_tracks)
    results["written"].append(write_backup(SAVED_TRACKS_NAME, saved_tracks, backup_dir))

    log_success(
        f"Backup complete: {len(results['written'])} files written to {backup_dir}, "
        f"{len(results['skipped'])} playlists skipped"
    )
    return results
