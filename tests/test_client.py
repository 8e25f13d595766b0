import os
import sys
import tempfile
import time
import unittest
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import DEFAULT_CONFIG
from spotify_api.auth import SpotifyAuth
from spotify_api.client import SpotifyClient
from spotify_api.exceptions import AuthenticationError, SpotifyAPIError
from spotify_api.token_manager import TokenInfo, TokenManager


class FakeSpotify:
    """Routes accounts (token) and API requests; API accepts only `valid_tokens`."""

    def __init__(self, *, api_status=200, api_body=None, valid_tokens=("fresh",)):
        self.api_status = api_status
        self.api_body = api_body
        self.valid_tokens = set(valid_tokens)
        self.token_requests = 0
        self.api_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "fresh", "token_type": "Bearer", "expires_in": 3600})

        self.api_requests.append(request)
        bearer = request.headers.get("Authorization", "").replace("Bearer ", "")
        if bearer not in self.valid_tokens:
            return httpx.Response(401, json={"error": {"status": 401, "message": "The access token expired"}})
        if self.api_body is not None:
            return httpx.Response(self.api_status, content=self.api_body)
        return httpx.Response(self.api_status, json={"ok": True})


class ClientTestCase(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.cache_path = os.path.join(self._td.name, "token_cache.json")

    def tearDown(self):
        self._td.cleanup()

    def make_client(self, fake, token, *, with_auth=True, **overrides):
        config = {**DEFAULT_CONFIG, **overrides}
        transport = httpx.MockTransport(fake)
        token_manager = TokenManager(cache_path=self.cache_path)
        auth = None
        if with_auth:
            auth = SpotifyAuth(
                config, client_id="cid", client_secret="secret", token_manager=token_manager, transport=transport
            )
        client = SpotifyClient(config, auth=auth, token_manager=token_manager, token=token, transport=transport)
        self.addCleanup(client.close)
        return client

    @staticmethod
    def token(access="fresh", *, expires_in=3600.0, refresh="rt"):
        return TokenInfo(access_token=access, token_type="Bearer", expires_at=time.time() + expires_in, refresh_token=refresh)


class TestSpotifyClient(ClientTestCase):
    def test_attaches_bearer_token_and_resolves_relative_urls(self):
        fake = FakeSpotify()
        client = self.make_client(fake, self.token())

        self.assertEqual(client.get_json("/v1/me"), {"ok": True})

        request = fake.api_requests[0]
        self.assertEqual(str(request.url), "https://api.spotify.com/v1/me")
        self.assertEqual(request.headers["Authorization"], "Bearer fresh")
        self.assertEqual(fake.token_requests, 0)

    def test_expired_token_is_refreshed_before_request(self):
        fake = FakeSpotify()
        client = self.make_client(fake, self.token("stale", expires_in=-10))

        client.get_json("https://api.spotify.com/v1/me/playlists?offset=0&limit=50")

        self.assertEqual(fake.token_requests, 1)
        self.assertEqual(len(fake.api_requests), 1)
        self.assertEqual(fake.api_requests[0].headers["Authorization"], "Bearer fresh")
        cached = TokenManager(cache_path=self.cache_path).load()
        self.assertEqual(cached.access_token, "fresh")
        self.assertEqual(cached.refresh_token, "rt")

    def test_unauthorized_triggers_one_refresh_and_retry(self):
        fake = FakeSpotify()
        client = self.make_client(fake, self.token("revoked"))

        self.assertEqual(client.get_json("/v1/me"), {"ok": True})
        self.assertEqual(fake.token_requests, 1)
        self.assertEqual(len(fake.api_requests), 2)

    def test_unauthorized_twice_is_an_error(self):
        fake = FakeSpotify(valid_tokens=())
        client = self.make_client(fake, self.token("revoked"))

        with self.assertRaises(SpotifyAPIError) as ctx:
            client.get_json("/v1/me")
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(fake.token_requests, 1)
        self.assertEqual(len(fake.api_requests), 2)

    def test_expired_token_without_refresh_token_is_fatal(self):
        client = self.make_client(FakeSpotify(), self.token("stale", expires_in=-10, refresh=None))
        with self.assertRaises(AuthenticationError):
            client.get_json("/v1/me")

    def test_expired_token_with_refresh_disabled_is_fatal(self):
        client = self.make_client(FakeSpotify(), self.token("stale", expires_in=-10), spotify_auto_refresh=False)
        with self.assertRaises(AuthenticationError):
            client.get_json("/v1/me")

    def test_expired_token_without_authenticator_is_fatal(self):
        client = self.make_client(FakeSpotify(), self.token("stale", expires_in=-10), with_auth=False)
        with self.assertRaises(AuthenticationError):
            client.get_json("/v1/me")

    def test_server_error_is_not_retried(self):
        fake = FakeSpotify(api_status=503)
        client = self.make_client(fake, self.token())

        with self.assertRaises(SpotifyAPIError) as ctx:
            client.get_json("/v1/me")
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(len(fake.api_requests), 1)

    def test_rate_limit_is_not_retried(self):
        fake = FakeSpotify(api_status=429)
        client = self.make_client(fake, self.token())
        with self.assertRaises(SpotifyAPIError):
            client.get_json("/v1/me")
        self.assertEqual(len(fake.api_requests), 1)

    def test_non_json_body_is_a_decode_error(self):
        client = self.make_client(FakeSpotify(api_body=b"<html>oops</html>"), self.token())
        with self.assertRaises(SpotifyAPIError):
            client.get_json("/v1/me")

    def test_invalid_utf8_body_is_a_decode_error(self):
        client = self.make_client(FakeSpotify(api_body=b'{"items": ["\xff"], "next": ""}'), self.token())
        with self.assertRaises(SpotifyAPIError) as ctx:
            client.get_json("/v1/me")
        self.assertEqual(ctx.exception.status_code, 200)

    def test_non_object_body_is_a_decode_error(self):
        client = self.make_client(FakeSpotify(api_body=b"[1, 2, 3]"), self.token())
        with self.assertRaises(SpotifyAPIError):
            client.get_json("/v1/me")

    def test_transport_error_is_wrapped(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self.make_client(broken, self.token())
        with self.assertRaises(SpotifyAPIError):
            client.get_json("/v1/me")


if __name__ == "__main__":
    unittest.main(verbosity=2)
