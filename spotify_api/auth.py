import secrets
import time
import urllib.parse
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, Iterable, Optional

import httpx

from utils.logger import log_debug, log_info, log_warning

from .exceptions import AuthenticationError, StateMismatchError
from .token_manager import TokenInfo, TokenManager

DEFAULT_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"

_CALLBACK_PAGE = (
    "<html><body><h2>Spotify authorization received.</h2>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
).encode("utf-8")


def _callback_params(query: str) -> Dict[str, str]:
    qs = urllib.parse.parse_qs(query)
    out: Dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = str(qs[key][0])
    return out


class _CallbackHandler(BaseHTTPRequestHandler):
    server_version = "SpotifyBackupCallback/1.0"

    def do_GET(self):  # noqa: N802
        parsed = urllib.parse.urlparse(self.path)
        if parsed.path != self.server.callback_path:  # type: ignore[attr-defined]
            self.send_error(404)
            return

        self.server.callback_params = _callback_params(parsed.query)  # type: ignore[attr-defined]

        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(_CALLBACK_PAGE)))
        self.end_headers()
        self.wfile.write(_CALLBACK_PAGE)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        log_debug(f"callback listener: {format % args}")


class CallbackListener:
    """One-shot local HTTP listener for the OAuth redirect.

    The socket is bound on __enter__ and released on __exit__, so it only lives
    for the single request/response exchange with the browser:

        with CallbackListener("http://localhost:8080/callback") as listener:
            params = listener.wait()
    """

    def __init__(self, redirect_uri: str, *, timeout: float = 300.0):
        parsed = urllib.parse.urlparse(str(redirect_uri or "").strip())
        if parsed.scheme != "http":
            raise AuthenticationError(f"Redirect URI must be a local http:// URL, got {redirect_uri!r}")

        host = parsed.hostname or "localhost"
        if host not in ("localhost", "127.0.0.1"):
            raise AuthenticationError(f"Redirect URI host must be localhost or 127.0.0.1, got {host!r}")

        self.host = host
        self.requested_port = parsed.port if parsed.port is not None else 80
        self.path = parsed.path or "/"
        self.timeout = float(timeout)
        self._server: Optional[HTTPServer] = None

    def __enter__(self) -> "CallbackListener":
        try:
            server = HTTPServer((self.host, self.requested_port), _CallbackHandler)
        except OSError as e:
            raise AuthenticationError(
                f"Could not listen for the OAuth callback on {self.host}:{self.requested_port}: {e}"
            ) from e

        server.callback_path = self.path  # type: ignore[attr-defined]
        server.callback_params = None  # type: ignore[attr-defined]
        self._server = server
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._server is not None:
            self._server.server_close()
            self._server = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self.requested_port
        return int(self._server.server_address[1])

    def wait(self) -> Dict[str, str]:
        """Block until the provider redirects back, returning the query parameters."""

        if self._server is None:
            raise RuntimeError("CallbackListener.wait() called outside its 'with' block")

        deadline = time.monotonic() + self.timeout
        while self._server.callback_params is None:  # type: ignore[attr-defined]
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AuthenticationError(
                    f"Timed out after {self.timeout:.0f}s waiting for the Spotify authorization callback."
                )
            self._server.timeout = min(1.0, remaining)
            self._server.handle_request()

        return dict(self._server.callback_params)  # type: ignore[attr-defined]


class SpotifyAuth:
    """Spotify OAuth (Authorization Code with client secret) helper."""

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        client_id: str,
        client_secret: str,
        token_manager: Optional[TokenManager] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or {}
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_manager = token_manager or TokenManager(
            cache_path=self.config.get("token_cache_path", "token_cache.json")
        )
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        redirect_uri = str(self.config.get("spotify_redirect_uri", "")).strip()
        if not redirect_uri:
            raise AuthenticationError("Missing spotify_redirect_uri in config")
        return redirect_uri

    @property
    def accounts_base_url(self) -> str:
        return str(self.config.get("spotify_accounts_base_url") or DEFAULT_ACCOUNTS_BASE_URL).rstrip("/")

    @property
    def token_url(self) -> str:
        return f"{self.accounts_base_url}/api/token"

    def get_authorize_url(self, *, state: str, scopes: Optional[Iterable[str]] = None) -> str:
        scope_list = list(scopes if scopes is not None else self.config.get("spotify_scopes", []))
        scope_str = " ".join([str(s).strip() for s in scope_list if str(s).strip()])

        params: Dict[str, str] = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": str(state),
        }
        if scope_str:
            params["scope"] = scope_str

        return f"{self.accounts_base_url}/authorize?{urllib.parse.urlencode(params)}"

    def begin_authorization(self) -> Dict[str, str]:
        """Return {auth_url, state} for starting the browser flow."""

        state = secrets.token_urlsafe(16).rstrip("=")
        return {"auth_url": self.get_authorize_url(state=state), "state": state}

    def complete_authorization(self, callback: Dict[str, str], *, expected_state: str) -> TokenInfo:
        """Validate the redirect parameters and exchange the code for a token.

        The state check happens before anything else, so a forged callback never
        reaches the token endpoint or the cache.
        """

        received_state = callback.get("state", "")
        if not secrets.compare_digest(str(received_state).encode("utf-8"), str(expected_state).encode("utf-8")):
            raise StateMismatchError(f"Invalid state received: {received_state!r}")

        if callback.get("error"):
            raise AuthenticationError(f"Spotify returned an error: {callback['error']}")

        code = callback.get("code", "")
        if not code:
            raise AuthenticationError("Callback did not include an authorization code")

        return self.exchange_code_for_token(code=code)

    def authorize_interactively(self, *, open_browser: bool = False) -> TokenInfo:
        """Run the whole browser flow: print URL, wait for the redirect, exchange the code."""

        flow = self.begin_authorization()
        timeout = float(self.config.get("spotify_callback_timeout", 300))

        # Bind before showing the URL so a fast redirect can't arrive early.
        with CallbackListener(self.redirect_uri, timeout=timeout) as listener:
            log_info("Visit the following URL to authorize the app:")
            log_info(flow["auth_url"])
            if open_browser:
                try:
                    webbrowser.open(flow["auth_url"])
                except webbrowser.Error as e:
                    log_warning(f"Could not open a browser: {e}")

            log_info(f"Waiting for the authorization callback on {listener.host}:{listener.port} ...")
            callback = listener.wait()

        return self.complete_authorization(callback, expected_state=flow["state"])

    def exchange_code_for_token(self, *, code: str) -> TokenInfo:
        payload = self._post_form(
            self.token_url,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
        )
        token = self._token_from_payload(payload)
        if not token.access_token:
            raise AuthenticationError(f"Spotify token exchange failed: {payload}")

        self.token_manager.save(token)
        return token

    def refresh_access_token(self, *, refresh_token: str) -> TokenInfo:
        payload = self._post_form(
            self.token_url,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )

        token = self._token_from_payload(payload)

        # Spotify may omit refresh_token on refresh; keep existing.
        if not token.refresh_token:
            token = TokenInfo(
                access_token=token.access_token,
                token_type=token.token_type,
                expires_at=token.expires_at,
                refresh_token=refresh_token,
                scope=token.scope,
            )

        if not token.access_token:
            raise AuthenticationError(f"Spotify token refresh failed: {payload}")

        self.token_manager.save(token)
        return token

    @staticmethod
    def _token_from_payload(payload: Dict[str, Any]) -> TokenInfo:
        try:
            return TokenInfo.from_spotify_token_response(payload)
        except (TypeError, ValueError) as e:
            raise AuthenticationError(f"Spotify token response was malformed: {payload}") from e

    def _post_form(self, url: str, form: Dict[str, Any]) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        timeout = float(self.config.get("http_timeout", 30.0))

        try:
            with httpx.Client(timeout=timeout, follow_redirects=False, transport=self._transport) as client:
                resp = client.post(
                    url,
                    data=data,
                    auth=(self.client_id, self.client_secret),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Spotify token request failed: {e}") from e

        if resp.status_code >= 400:
            raise AuthenticationError(f"Spotify token request failed (HTTP {resp.status_code}): {resp.text}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise AuthenticationError(f"Spotify token response was not JSON: {resp.text}") from e

        if not isinstance(payload, dict):
            raise AuthenticationError(f"Spotify token response was not an object: {payload}")

        return payload
