from typing import Optional


class SpotifyBackupError(RuntimeError):
    """Base class for every error raised by the backup tool."""


class ConfigError(SpotifyBackupError):
    """Configuration or credentials are missing or malformed."""


class TokenCacheError(SpotifyBackupError):
    """The token cache could not be read or written."""


class TokenNotFoundError(TokenCacheError):
    """No cached token exists yet."""


class TokenDecodeError(TokenCacheError):
    """The cached token file exists but does not hold a usable token."""


class AuthenticationError(SpotifyBackupError):
    """The OAuth authorization-code flow failed."""


class StateMismatchError(AuthenticationError):
    """The callback's state parameter differs from the one we issued."""


class SpotifyAPIError(SpotifyBackupError):
    """A Web API request failed at the transport, HTTP or decoding level."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackupWriteError(SpotifyBackupError):
    """A backup file or the backup directory could not be written."""
