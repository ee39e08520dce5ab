"""Unit tests for auth/oauth.py -- Google authorization code + PKCE exchange.

The Authlib session is replaced by a MagicMock factory everywhere a network
call would happen. authorization_url() uses the real OAuth2Session because
building the URL is purely local.

Covers:
- consent URL carries client id, scopes, redirect, S256 challenge and state
- the PKCE verifier round-trips through state; the challenge matches it
- undecodable state fails with STATE_INVALID before any network call
- provider rejection, transport failure, bad profile, unverified email
"""

from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from authlib.integrations.base_client import OAuthError as AuthlibOAuthError
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from auth.errors import OAuthError, OAuthErrorKind
from auth.models import ExternalIdentity
from auth.oauth import GoogleOAuthClient, GoogleOAuthConfig, decode_state, encode_state

VERIFIER = "v" * 64

CONFIG = GoogleOAuthConfig(
    client_id="client-123",
    client_secret="shh",
    redirect_url="http://localhost:5173/auth/google/callback",
    auth_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    userinfo_url="https://www.googleapis.com/oauth2/v2/userinfo",
    timeout=5.0,
)

PROFILE = {
    "id": "1234567890",
    "email": "jane.doe@example.com",
    "verified_email": True,
    "name": "Jane Doe",
    "picture": "https://example.com/jane.png",
}


def _mock_client(profile=PROFILE, token=None) -> tuple[GoogleOAuthClient, MagicMock]:
    factory = MagicMock(name="OAuth2Session")
    session = factory.return_value
    session.fetch_token.return_value = token or {"access_token": "ya29.test", "token_type": "Bearer"}
    response = MagicMock()
    response.json.return_value = profile
    session.get.return_value = response
    return GoogleOAuthClient(CONFIG, session_factory=factory), factory


# ---------------------------------------------------------------------------
# State encoding
# ---------------------------------------------------------------------------


class TestState:
    def test_round_trip(self) -> None:
        assert decode_state(encode_state("csrf-token", VERIFIER)) == VERIFIER

    def test_state_is_url_safe(self) -> None:
        state = encode_state("csrf-token", VERIFIER)
        assert all(c.isalnum() or c in "-_" for c in state)

    @pytest.mark.parametrize(
        "state",
        [
            "not base64 at all!",
            "e30",  # "{}"
            encode_state("csrf", "too-short"),
            encode_state("", VERIFIER),
            "bm90IGpzb24",  # "not json"
            "ñ",
        ],
    )
    def test_invalid_state(self, state: str) -> None:
        with pytest.raises(OAuthError) as exc_info:
            decode_state(state)
        assert exc_info.value.kind is OAuthErrorKind.STATE_INVALID


# ---------------------------------------------------------------------------
# Initiate
# ---------------------------------------------------------------------------


class TestAuthorizationUrl:
    def test_url_contents(self) -> None:
        url = GoogleOAuthClient(CONFIG).authorization_url()
        parsed = urlparse(url)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        assert url.startswith(CONFIG.auth_url)
        assert query["response_type"] == "code"
        assert query["client_id"] == "client-123"
        assert query["redirect_uri"] == CONFIG.redirect_url
        assert set(query["scope"].split()) == {"profile", "email"}
        assert query["code_challenge_method"] == "S256"

        verifier = decode_state(query["state"])
        assert query["code_challenge"] == create_s256_code_challenge(verifier)
        assert verifier not in url.replace(query["state"], "")

    def test_each_attempt_gets_a_fresh_verifier(self) -> None:
        client = GoogleOAuthClient(CONFIG)
        states = {parse_qs(urlparse(client.authorization_url()).query)["state"][0] for _ in range(3)}
        assert len({decode_state(s) for s in states}) == 3


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------


class TestComplete:
    def test_happy_path(self) -> None:
        client, factory = _mock_client()
        identity = client.complete("auth-code", encode_state("csrf", VERIFIER))

        assert identity == ExternalIdentity(
            external_id="1234567890",
            email="jane.doe@example.com",
            display_name="Jane Doe",
            avatar_url="https://example.com/jane.png",
        )
        session = factory.return_value
        _args, kwargs = session.fetch_token.call_args
        assert kwargs["code"] == "auth-code"
        assert kwargs["code_verifier"] == VERIFIER
        assert kwargs["allow_redirects"] is False
        assert kwargs["timeout"] == 5.0
        # The profile session is built with the access token as bearer credential.
        assert factory.call_args_list[-1].kwargs["token"]["access_token"] == "ya29.test"

    def test_bad_state_fails_before_any_network_call(self) -> None:
        client, factory = _mock_client()
        with pytest.raises(OAuthError) as exc_info:
            client.complete("auth-code", "%%%tampered%%%")
        assert exc_info.value.kind is OAuthErrorKind.STATE_INVALID
        factory.return_value.fetch_token.assert_not_called()
        factory.return_value.get.assert_not_called()

    def test_provider_rejects_code(self) -> None:
        client, factory = _mock_client()
        factory.return_value.fetch_token.side_effect = AuthlibOAuthError(
            error="invalid_grant", description="Bad Request"
        )
        with pytest.raises(OAuthError) as exc_info:
            client.complete("used-code", encode_state("csrf", VERIFIER))
        assert exc_info.value.kind is OAuthErrorKind.EXCHANGE_REJECTED
        assert "invalid_grant" in exc_info.value.detail

    def test_token_endpoint_unreachable(self) -> None:
        client, factory = _mock_client()
        factory.return_value.fetch_token.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(OAuthError) as exc_info:
            client.complete("auth-code", encode_state("csrf", VERIFIER))
        assert exc_info.value.kind is OAuthErrorKind.PROVIDER_UNAVAILABLE

    def test_token_response_without_access_token(self) -> None:
        client, _factory = _mock_client(token={"token_type": "Bearer"})
        with pytest.raises(OAuthError) as exc_info:
            client.complete("auth-code", encode_state("csrf", VERIFIER))
        assert exc_info.value.kind is OAuthErrorKind.EXCHANGE_REJECTED

    def test_userinfo_unreachable(self) -> None:
        client, factory = _mock_client()
        factory.return_value.get.side_effect = requests.Timeout("read timed out")
        with pytest.raises(OAuthError) as exc_info:
            client.complete("auth-code", encode_state("csrf", VERIFIER))
        assert exc_info.value.kind is OAuthErrorKind.PROVIDER_UNAVAILABLE

    def test_profile_schema_mismatch(self) -> None:
        client, _factory = _mock_client(profile={"name": "No Id Or Email"})
        with pytest.raises(OAuthError) as exc_info:
            client.complete("auth-code", encode_state("csrf", VERIFIER))
        assert exc_info.value.kind is OAuthErrorKind.PROFILE_INVALID

    def test_numeric_subject_is_accepted_as_string(self) -> None:
        client, _factory = _mock_client(profile={**PROFILE, "id": 1234567890})
        identity = client.complete("auth-code", encode_state("csrf", VERIFIER))
        assert identity.external_id == "1234567890"

    def test_unverified_email_rejected(self) -> None:
        client, _factory = _mock_client(profile={**PROFILE, "verified_email": False})
        with pytest.raises(OAuthError) as exc_info:
            client.complete("auth-code", encode_state("csrf", VERIFIER))
        assert exc_info.value.kind is OAuthErrorKind.EMAIL_UNVERIFIED
