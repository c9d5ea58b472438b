# auth.py
# Credential collaborator: Anthropic OAuth (PKCE) with on-disk token storage,
# falling back to a static API key. The orchestrator only ever sees a
# ready-to-use token string or an AuthenticationRequired failure.

import asyncio
import base64
import hashlib
import os
import secrets
import time
from pathlib import Path
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from browser_ai.models import Credential

CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
REDIRECT_URI = "https://console.anthropic.com/oauth/code/callback"
CONSOLE_BASE_URL = "https://console.anthropic.com"
CLAUDE_BASE_URL = "https://claude.ai"
TOKEN_URL = f"{CONSOLE_BASE_URL}/v1/oauth/token"
SCOPES = "org:create_api_key user:profile user:inference"

# Refresh this long before the recorded expiry.
EXPIRY_MARGIN_MS = 60_000

AUTH_MARKER = "Authentication required"

AUTH_REMEDIATION = (
    "Authentication required. Please either:\n"
    '1. Run "browser-ai auth" to authenticate with your Claude account\n'
    "2. Set the ANTHROPIC_API_KEY environment variable\n\n"
    "For Claude subscribers, option 1 is recommended as usage will be charged to your subscription."
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class OAuthError(Exception):
    """Raised when no usable OAuth token exists or the token endpoint refuses."""


class AuthenticationRequired(Exception):
    """Raised when neither an OAuth token nor a static API key is available."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"{AUTH_MARKER}: {reason}")


def is_auth_failure(message: str) -> bool:
    return AUTH_MARKER in message


def _now_ms() -> int:
    return int(time.time() * 1000)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class AnthropicOAuth:
    """
    PKCE authorization-code flow against the Anthropic console.

    Example:
        oauth = AnthropicOAuth(Path("~/.local/browser-ai/auth.json").expanduser())
        url = oauth.authorization_url()
        # user visits url, pastes back "code#state"
        await oauth.exchange_code(pasted)
    """

    def __init__(self, token_path: Path, http_client: httpx.AsyncClient | None = None) -> None:
        self._token_path = token_path
        self._http = http_client
        self._code_verifier: str | None = None

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def generate_pkce(self) -> tuple[str, str]:
        self._code_verifier = _b64url(secrets.token_bytes(32))
        challenge = _b64url(hashlib.sha256(self._code_verifier.encode("ascii")).digest())
        return self._code_verifier, challenge

    def authorization_url(self, mode: str = "max") -> str:
        verifier, challenge = self.generate_pkce()
        base_url = CONSOLE_BASE_URL if mode == "console" else CLAUDE_BASE_URL
        params = {
            "code": "true",
            "client_id": CLIENT_ID,
            "response_type": "code",
            "redirect_uri": REDIRECT_URI,
            "scope": SCOPES,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": verifier,
        }
        return f"{base_url}/oauth/authorize?{urlencode(params)}"

    async def exchange_code(self, code_with_state: str) -> Credential:
        if not self._code_verifier:
            raise OAuthError("No code verifier found. Call authorization_url() first.")

        code, _, state = code_with_state.strip().partition("#")
        # The returned state is our verifier; prefer it when present.
        verifier = state or self._code_verifier

        return await self._request_token(
            {
                "code": code,
                "state": verifier,
                "grant_type": "authorization_code",
                "client_id": CLIENT_ID,
                "redirect_uri": REDIRECT_URI,
                "code_verifier": verifier,
            },
            "Token exchange failed",
        )

    async def refresh(self, refresh_token: str) -> Credential:
        return await self._request_token(
            {
                "grant_type": "refresh_token",
                "client_id": CLIENT_ID,
                "refresh_token": refresh_token,
            },
            "Token refresh failed",
        )

    async def _request_token(self, payload: dict, failure: str) -> Credential:
        try:
            if self._http is not None:
                response = await self._http.post(TOKEN_URL, json=payload)
            else:
                async with httpx.AsyncClient(timeout=30) as client:
                    response = await client.post(TOKEN_URL, json=payload)
        except httpx.HTTPError as exc:
            raise OAuthError(f"{failure}: {exc}") from exc

        if response.status_code >= 400:
            raise OAuthError(f"{failure}: {response.text}")

        try:
            data = response.json()
            credential = Credential(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token"),
                token_type=data.get("token_type") or "Bearer",
                expires_at=_now_ms() + int(data.get("expires_in", 0)) * 1000,
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise OAuthError(f"{failure}: malformed token response ({exc})") from exc
        self.save(credential)
        return credential

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def save(self, credential: Credential) -> None:
        self._token_path.parent.mkdir(parents=True, exist_ok=True)
        self._token_path.write_text(credential.model_dump_json(indent=2), encoding="utf-8")

    def load(self) -> Credential | None:
        try:
            return Credential.model_validate_json(self._token_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            return None

    def logout(self) -> None:
        self._token_path.unlink(missing_ok=True)

    @staticmethod
    def is_expiring(credential: Credential) -> bool:
        return _now_ms() >= credential.expires_at - EXPIRY_MARGIN_MS


# ---------------------------------------------------------------------------
# Token manager
# ---------------------------------------------------------------------------


class TokenManager:
    """
    Hands out a valid bearer token.

    A single refresh slot is shared: concurrent callers that find the token
    expiring await the same in-flight refresh instead of each hitting the
    token endpoint.
    """

    def __init__(self, oauth: AnthropicOAuth, api_key: str | None = None) -> None:
        self._oauth = oauth
        self._api_key = api_key if api_key is not None else os.getenv("ANTHROPIC_API_KEY")
        self._refresh_task: asyncio.Task | None = None

    async def get_valid_token(self) -> str:
        try:
            return await self._oauth_token()
        except OAuthError as exc:
            if self._api_key:
                return self._api_key
            raise AuthenticationRequired(str(exc)) from exc

    async def _oauth_token(self) -> str:
        if self._refresh_task is None:
            credential = self._oauth.load()
            if credential is None:
                raise OAuthError("No token found. Please authenticate first.")

            if not self._oauth.is_expiring(credential):
                return credential.access_token

            if not credential.refresh_token:
                raise OAuthError("Token expired and no refresh token available.")

            self._refresh_task = asyncio.ensure_future(self._oauth.refresh(credential.refresh_token))

        credential = await self._await_refresh()
        return credential.access_token

    async def _await_refresh(self) -> Credential:
        task = self._refresh_task
        try:
            return await asyncio.shield(task)
        finally:
            if self._refresh_task is task and task.done():
                self._refresh_task = None

    def is_api_key(self, token: str) -> bool:
        return bool(self._api_key) and token == self._api_key

    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def is_authenticated(self) -> bool:
        try:
            await self.get_valid_token()
        except AuthenticationRequired:
            return False
        return True

    def auth_url(self) -> str:
        return self._oauth.authorization_url()

    def clear(self) -> None:
        self._oauth.logout()
