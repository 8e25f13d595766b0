import argparse
import sys
from typing import Any, Dict, Optional

import questionary

from config import CONFIG_PATH, ENV_FILE, load_config, load_credentials
from managers.export_manager import run_backup
from spotify_api.auth import SpotifyAuth
from spotify_api.client import SpotifyClient
from spotify_api.data_loader import SpotifyDataLoader
from spotify_api.exceptions import SpotifyBackupError, TokenCacheError
from spotify_api.token_manager import TokenInfo, TokenManager
from utils.logger import setup_logging, log_info, log_success, log_error


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Back up your Spotify playlists and saved tracks as JSON files."
    )
    parser.add_argument("--config", default=CONFIG_PATH, help=f"Config file (default: {CONFIG_PATH})")
    parser.add_argument("--env-file", default=ENV_FILE, help=f"File holding SPOTIFY_CLIENT_ID/SECRET (default: {ENV_FILE})")
    parser.add_argument("--backup-dir", help="Override the backup directory")
    parser.add_argument("--no-browser", action="store_true", help="Never open a browser for authorization")
    parser.add_argument("--reauth", action="store_true", help="Discard the cached token and authorize again")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _should_open_browser(config: Dict[str, Any], no_browser: bool) -> bool:
    if no_browser or not config.get("open_browser", True):
        return False
    if not sys.stdin.isatty():
        return True
    return bool(questionary.confirm("Open the authorize URL in your default browser?", default=True).ask())


def acquire_token(config: Dict[str, Any], auth: SpotifyAuth, *, no_browser: bool = False) -> Optional[TokenInfo]:
    """
    Return the cached token, or run the interactive authorization flow.

    Returns None when the flow ran and the process should stop afterwards.
    """
    try:
        return auth.token_manager.load()
    except TokenCacheError as e:
        log_info(f"No usable cached token ({e}); starting Spotify authorization.")

    token = auth.authorize_interactively(open_browser=_should_open_browser(config, no_browser))
    log_success("Authorization successful. Token saved.")

    if config.get("exit_after_auth", True):
        log_info("Run the backup again to fetch your library with the new token.")
        return None
    return token


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except SpotifyBackupError as e:
        setup_logging()
        log_error(str(e))
        return 1

    if args.backup_dir:
        config["backup_dir"] = args.backup_dir
    if args.verbose:
        config["log_level"] = "DEBUG"

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)

    try:
        client_id, client_secret = load_credentials(args.env_file)

        token_manager = TokenManager(cache_path=config["token_cache_path"])
        if args.reauth:
            token_manager.clear()

        auth = SpotifyAuth(config, client_id=client_id, client_secret=client_secret, token_manager=token_manager)
        token = acquire_token(config, auth, no_browser=args.no_browser)
        if token is None:
            return 0

        with SpotifyClient(config, auth=auth, token=token) as client:
            run_backup(config, SpotifyDataLoader(client, config))
    except SpotifyBackupError as e:
        log_error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
