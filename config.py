import json
import os
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from spotify_api.exceptions import ConfigError

CONFIG_PATH = "config.json"
ENV_FILE = ".env"

CLIENT_ID_ENV = "SPOTIFY_CLIENT_ID"
CLIENT_SECRET_ENV = "SPOTIFY_CLIENT_SECRET"

# Default configuration values
DEFAULT_CONFIG = {
    "backup_dir": "backups",
    "token_cache_path": "token_cache.json",

    # Pause after each playlist backup to stay clear of rate limiting.
    "sleep_between": 2,

    # Page sizes (Spotify caps: playlists 50, playlist tracks 100, saved tracks 50)
    "playlist_page_limit": 50,
    "playlist_tracks_page_limit": 100,
    "saved_tracks_page_limit": 50,

    # Spotify Web API (OAuth authorization code)
    "spotify_redirect_uri": "http://localhost:8080/callback",
    "spotify_scopes": [
        "playlist-read-private",
        "user-library-read",
    ],
    "spotify_callback_timeout": 300,
    "spotify_auto_refresh": True,
    "spotify_api_base_url": "https://api.spotify.com",
    "spotify_accounts_base_url": "https://accounts.spotify.com",
    "http_timeout": 30.0,

    # Interactive auth behaviour
    "open_browser": True,
    "exit_after_auth": True,

    # Output
    "show_progress": True,
    "log_level": "INFO",
    "log_file": "",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "backup_dir": {"type": str, "required": True},
    "token_cache_path": {"type": str, "required": True},
    "sleep_between": {"type": (int, float), "required": True, "min": 0, "max": 60},
    "playlist_page_limit": {"type": int, "required": True, "min": 1, "max": 50},
    "playlist_tracks_page_limit": {"type": int, "required": True, "min": 1, "max": 100},
    "saved_tracks_page_limit": {"type": int, "required": True, "min": 1, "max": 50},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": True, "element_type": str},
    "spotify_callback_timeout": {"type": (int, float), "required": False, "min": 1, "max": 3600},
    "spotify_auto_refresh": {"type": bool, "required": False},
    "spotify_api_base_url": {"type": str, "required": True},
    "spotify_accounts_base_url": {"type": str, "required": True},
    "http_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
    "open_browser": {"type": bool, "required": False},
    "exit_after_auth": {"type": bool, "required": False},
    "show_progress": {"type": bool, "required": False},
    "log_level": {
        "type": str,
        "required": False,
        "choices": ["DEBUG", "INFO", "WARNING", "ERROR"],
    },
    "log_file": {"type": str, "required": False},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields.

    A missing file is not an error: the defaults alone are a working setup.
    Malformed JSON or values that fail validation raise ConfigError.
    """
    config: Dict[str, Any] = {}

    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except ValueError as e:
            raise ConfigError(f"Config file {path} contains invalid JSON: {e}") from e
        except OSError as e:
            raise ConfigError(f"Could not read config file {path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object.")

    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    is_valid, errors = validate_config(config)
    if not is_valid:
        raise ConfigError(f"Invalid configuration: {'; '.join(errors)}")

    return config


def validate_config(config: Dict[str, Any]) -> Tuple[bool, list]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        expected_type = rules.get("type")
        # bool is an int subclass; don't let True pass as a number.
        if expected_type and (
            not isinstance(value, expected_type)
            or (isinstance(value, bool) and bool not in _as_tuple(expected_type))
        ):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def _as_tuple(expected_type) -> tuple:
    return expected_type if isinstance(expected_type, tuple) else (expected_type,)


def load_credentials(env_file: Optional[str] = ENV_FILE) -> Tuple[str, str]:
    """Load the Spotify client id/secret from the environment (.env file first).

    Values already present in the process environment win over the file.
    """
    if env_file:
        load_dotenv(env_file)

    client_id = (os.getenv(CLIENT_ID_ENV) or "").strip()
    client_secret = (os.getenv(CLIENT_SECRET_ENV) or "").strip()

    missing = [name for name, value in ((CLIENT_ID_ENV, client_id), (CLIENT_SECRET_ENV, client_secret)) if not value]
    if missing:
        raise ConfigError(
            f"Missing {', '.join(missing)}. Add them to {env_file or 'the environment'} "
            "(see https://developer.spotify.com/dashboard)."
        )

    return client_id, client_secret
