# llm.py
# Model-invocation collaborator. Plain text in, plain text out; every error
# propagates to the caller, which treats it as command-fatal.

from openai import AsyncOpenAI

from browser_ai.auth import TokenManager

OAUTH_BETA_HEADER = {"anthropic-beta": "oauth-2025-04-20"}


class ChatModel:
    """
    Chat-completions client over an OpenAI-compatible endpoint.

    The bearer token is fetched on every call so a refreshed OAuth token is
    picked up without rebuilding the orchestrator.
    """

    def __init__(self, tokens: TokenManager, model: str, base_url: str) -> None:
        self._tokens = tokens
        self._model = model
        self._base_url = base_url
        self._client: AsyncOpenAI | None = None
        self._client_token: str | None = None

    def _client_for(self, token: str) -> AsyncOpenAI:
        if self._client is None or token != self._client_token:
            headers = {} if self._tokens.is_api_key(token) else OAUTH_BETA_HEADER
            self._client = AsyncOpenAI(
                base_url=self._base_url,
                api_key=token,
                default_headers=headers,
            )
            self._client_token = token
        return self._client

    async def invoke(self, messages: list[dict], temperature: float, max_output_tokens: int) -> str:
        token = await self._tokens.get_valid_token()
        response = await self._client_for(token).chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_output_tokens,
        )
        return (response.choices[0].message.content or "").strip()
