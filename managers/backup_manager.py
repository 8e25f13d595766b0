import json
import os
import posixpath
import re
from typing import Any

from spotify_api.exceptions import BackupWriteError
from utils.logger import log_debug

# Default backup directory
BACKUP_DIR = "backups"

_UNSAFE_RUN = re.compile(r"[^a-zA-Z0-9_]+")


def safe_filename(name: str) -> str:
    """
    Turn an entity name into a filesystem-safe file stem.

    The name is path-normalised first (so "" becomes "."), then every run of
    characters outside [A-Za-z0-9_] collapses into a single "-":

        "My Playlist #1!" -> "My-Playlist-1-"

    Distinct names can map to the same stem; the later write wins.
    """
    cleaned = posixpath.normpath(name or "")
    return _UNSAFE_RUN.sub("-", cleaned)


def ensure_backup_dir(backup_dir: str = BACKUP_DIR) -> None:
    """Ensure the backup directory exists."""
    try:
        os.makedirs(backup_dir, exist_ok=True)
    except OSError as e:
        raise BackupWriteError(f"Error creating backups folder {backup_dir}: {e}") from e


def backup_path_for(name: str, backup_dir: str = BACKUP_DIR) -> str:
    return os.path.join(backup_dir, f"{safe_filename(name)}.json")


def write_backup(name: str, data: Any, backup_dir: str = BACKUP_DIR) -> str:
    """
    Write `data` as pretty-printed JSON to <backup_dir>/<safe name>.json.

    Args:
        name: Entity name (playlist name, "saved_tracks")
        data: JSON-serialisable collection
        backup_dir: Target directory, created if missing

    Returns:
        Path of the written file
    """
    try:
        payload = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise BackupWriteError(f"Error serialising backup data for {name!r}: {e}") from e

    ensure_backup_dir(backup_dir)
    path = backup_path_for(name, backup_dir)

    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(payload)
    except OSError as e:
        raise BackupWriteError(f"Error writing JSON data to {path}: {e}") from e

    log_debug(f"Wrote {path}")
    return path
