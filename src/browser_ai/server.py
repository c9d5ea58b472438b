# server.py
# MCP server exposing the broker as a single "execute" tool over stdio.
#
# The Playwright backend is connected for the lifetime of the server; the
# orchestrator is built lazily on the first command, once tools are known.

from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from browser_ai import display
from browser_ai.auth import AUTH_REMEDIATION, AnthropicOAuth, AuthenticationRequired, TokenManager, is_auth_failure
from browser_ai.backend import PlaywrightBackend, ToolExecutionClient
from browser_ai.config import Settings
from browser_ai.llm import ChatModel
from browser_ai.models import CommandContext
from browser_ai.orchestrator import AutomationOrchestrator

SERVER_NAME = "browser-ai-mcp"

EXECUTE_DESCRIPTION = (
    "Execute browser automation tasks using natural language commands. This tool interprets "
    "your intent and translates it into appropriate browser actions."
)

NOT_CONNECTED_MESSAGE = (
    "Playwright MCP server is not connected. Please ensure @playwright/mcp is installed."
)


class BrowserAIServer:
    """Holds the backend, credentials and the lazily built orchestrator."""

    def __init__(
        self,
        settings: Settings,
        backend: PlaywrightBackend | None = None,
        tokens: TokenManager | None = None,
    ) -> None:
        self.settings = settings
        self.backend = backend or PlaywrightBackend(settings.playwright_command, settings.playwright_args)
        self.tokens = tokens or TokenManager(AnthropicOAuth(settings.token_path), settings.api_key)
        self._orchestrator: AutomationOrchestrator | None = None

    async def start(self) -> None:
        """Connect the backend. Failure is reported, not raised: commands surface it later."""
        try:
            await self.backend.connect()
        except Exception as exc:
            display.backend_failed(str(exc) or type(exc).__name__)

    async def stop(self) -> None:
        await self.backend.disconnect()

    async def ensure_orchestrator(self) -> AutomationOrchestrator:
        if self._orchestrator is None:
            descriptors = self.backend.list_capabilities()
            if not descriptors:
                raise ToolError(NOT_CONNECTED_MESSAGE)

            # Fail fast on missing credentials before any model turn.
            await self.tokens.get_valid_token()

            model = ChatModel(self.tokens, self.settings.llm_model, self.settings.llm_base_url)
            self._orchestrator = AutomationOrchestrator(
                model,
                descriptors,
                ToolExecutionClient(self.backend),
                temperature=self.settings.llm_temperature,
                max_output_tokens=self.settings.llm_max_tokens,
                max_iterations=self.settings.max_iterations,
            )
        return self._orchestrator

    async def handle_execute(self, command: str, context: dict | None = None) -> str:
        try:
            parsed_context = CommandContext.model_validate(context) if context else None
            orchestrator = await self.ensure_orchestrator()
        except AuthenticationRequired:
            display.auth_remediation(AUTH_REMEDIATION)
            raise ToolError(AUTH_REMEDIATION) from None

        result = await orchestrator.execute_command(command, parsed_context)
        if not result.success and is_auth_failure(result.response):
            display.auth_remediation(AUTH_REMEDIATION)
            raise ToolError(AUTH_REMEDIATION)
        return result.response


def build_server(settings: Settings | None = None, app: BrowserAIServer | None = None) -> FastMCP:
    app = app or BrowserAIServer(settings or Settings.from_env())

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[BrowserAIServer]:
        display.info("Starting Browser AI MCP server…")
        await app.start()
        try:
            yield app
        finally:
            await app.stop()

    mcp = FastMCP(name=SERVER_NAME, lifespan=lifespan)

    @mcp.tool(name="execute", description=EXECUTE_DESCRIPTION)
    async def execute(
        command: Annotated[str, Field(description="Natural language description of the browser task to perform")],
        context: Annotated[
            CommandContext | None,
            Field(description="Optional url (current or target URL) and sessionId (continue a previous automation)"),
        ] = None,
    ) -> str:
        payload = context.model_dump(by_alias=True, exclude_none=True) if context else None
        return await app.handle_execute(command, payload)

    return mcp
