import asyncio
import base64
import hashlib
import json
import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from browser_ai.auth import (
    AUTH_MARKER,
    CLIENT_ID,
    AnthropicOAuth,
    AuthenticationRequired,
    OAuthError,
    TokenManager,
)
from browser_ai.models import Credential


def _now_ms():
    return int(time.time() * 1000)


def _token_response(access="new-access", refresh="new-refresh", expires_in=3600):
    return httpx.Response(
        200,
        json={"access_token": access, "refresh_token": refresh, "expires_in": expires_in, "token_type": "Bearer"},
    )


def _oauth(tmp_path, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnthropicOAuth(tmp_path / "auth.json", http_client=client)


# ---------------------------------------------------------------------------
# PKCE / authorization
# ---------------------------------------------------------------------------

def test_authorization_url_carries_pkce(tmp_path):
    oauth = AnthropicOAuth(tmp_path / "auth.json")
    url = urlparse(oauth.authorization_url())
    query = {k: v[0] for k, v in parse_qs(url.query).items()}

    assert url.netloc == "claude.ai"
    assert query["client_id"] == CLIENT_ID
    assert query["code_challenge_method"] == "S256"
    verifier = query["state"]
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=").decode()
    assert query["code_challenge"] == expected


def test_console_mode_uses_console_host(tmp_path):
    url = urlparse(AnthropicOAuth(tmp_path / "auth.json").authorization_url("console"))
    assert url.netloc == "console.anthropic.com"


@pytest.mark.asyncio
async def test_exchange_code_requires_verifier(tmp_path):
    with pytest.raises(OAuthError, match="code verifier"):
        await AnthropicOAuth(tmp_path / "auth.json").exchange_code("abc#def")


@pytest.mark.asyncio
async def test_exchange_code_posts_and_persists(tmp_path):
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return _token_response()

    oauth = _oauth(tmp_path, handler)
    oauth.authorization_url()
    credential = await oauth.exchange_code("the-code#the-state")

    assert seen["code"] == "the-code"
    assert seen["code_verifier"] == "the-state"
    assert seen["grant_type"] == "authorization_code"
    assert credential.access_token == "new-access"
    assert oauth.load() == credential


@pytest.mark.asyncio
async def test_token_endpoint_error_raises(tmp_path):
    oauth = _oauth(tmp_path, lambda request: httpx.Response(400, text="invalid_grant"))
    with pytest.raises(OAuthError, match="invalid_grant"):
        await oauth.refresh("stale")


def test_load_missing_or_corrupt(tmp_path):
    oauth = AnthropicOAuth(tmp_path / "auth.json")
    assert oauth.load() is None
    (tmp_path / "auth.json").write_text("{not json")
    assert oauth.load() is None


def test_logout_is_idempotent(tmp_path):
    oauth = AnthropicOAuth(tmp_path / "auth.json")
    oauth.save(Credential(access_token="a", expires_at=_now_ms()))
    oauth.logout()
    oauth.logout()
    assert oauth.load() is None


# ---------------------------------------------------------------------------
# TokenManager
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_valid_token_returned_without_refresh(tmp_path):
    oauth = _oauth(tmp_path, lambda request: pytest.fail("no refresh expected"))
    oauth.save(Credential(access_token="fresh", refresh_token="r", expires_at=_now_ms() + 3_600_000))
    assert await TokenManager(oauth, api_key="").get_valid_token() == "fresh"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(tmp_path):
    calls = 0

    async def handler(request):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)
        return _token_response(access="refreshed")

    oauth = _oauth(tmp_path, handler)
    oauth.save(Credential(access_token="old", refresh_token="r", expires_at=_now_ms() - 1))
    manager = TokenManager(oauth, api_key="")

    tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(5)))

    assert tokens == ["refreshed"] * 5
    assert calls == 1


@pytest.mark.asyncio
async def test_expiring_within_margin_refreshes(tmp_path):
    oauth = _oauth(tmp_path, lambda request: _token_response(access="refreshed"))
    oauth.save(Credential(access_token="old", refresh_token="r", expires_at=_now_ms() + 30_000))
    assert await TokenManager(oauth, api_key="").get_valid_token() == "refreshed"


@pytest.mark.asyncio
async def test_falls_back_to_api_key(tmp_path):
    manager = TokenManager(AnthropicOAuth(tmp_path / "auth.json"), api_key="sk-static")
    assert await manager.get_valid_token() == "sk-static"
    assert manager.is_api_key("sk-static")
    assert manager.has_api_key()


@pytest.mark.asyncio
async def test_no_credentials_requires_authentication(tmp_path):
    manager = TokenManager(AnthropicOAuth(tmp_path / "auth.json"), api_key="")
    with pytest.raises(AuthenticationRequired) as excinfo:
        await manager.get_valid_token()
    assert str(excinfo.value).startswith(AUTH_MARKER)
    assert await manager.is_authenticated() is False


@pytest.mark.asyncio
async def test_expired_without_refresh_token(tmp_path):
    oauth = AnthropicOAuth(tmp_path / "auth.json")
    oauth.save(Credential(access_token="old", expires_at=_now_ms() - 1))
    with pytest.raises(AuthenticationRequired, match="no refresh token"):
        await TokenManager(oauth, api_key="").get_valid_token()


@pytest.mark.asyncio
async def test_failed_refresh_falls_back_to_api_key(tmp_path):
    oauth = _oauth(tmp_path, lambda request: httpx.Response(401, text="revoked"))
    oauth.save(Credential(access_token="old", refresh_token="r", expires_at=_now_ms() - 1))
    manager = TokenManager(oauth, api_key="sk-static")
    assert await manager.get_valid_token() == "sk-static"


def test_auth_url_and_clear(tmp_path):
    oauth = AnthropicOAuth(tmp_path / "auth.json")
    oauth.save(Credential(access_token="a", expires_at=_now_ms() + 3_600_000))
    manager = TokenManager(oauth, api_key="")

    assert manager.auth_url().startswith("https://claude.ai/oauth/authorize?")
    manager.clear()
    assert oauth.load() is None
