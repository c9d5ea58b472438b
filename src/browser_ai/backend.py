# backend.py
# The automation backend: a Playwright MCP server spawned as a subprocess and
# spoken to over stdio, plus the execution client that turns one action into
# one normalized ExecutionOutcome.

import os
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from browser_ai import display
from browser_ai.models import ActionDescriptor, ActionKind, ExecutionOutcome

# Keeps npm/node chatter off the shared terminal.
_QUIET_ENV = {
    "NODE_NO_WARNINGS": "1",
    "NPM_CONFIG_LOGLEVEL": "silent",
    "NPM_CONFIG_UPDATE_NOTIFIER": "false",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BackendError(Exception):
    """Raised when the backend process cannot be reached or misbehaves."""


class NotConnectedError(BackendError):
    """Raised when a call is attempted before connect() succeeded."""


# ---------------------------------------------------------------------------
# Backend connection
# ---------------------------------------------------------------------------


def _content_text(content: list[Any]) -> str:
    parts = []
    for item in content:
        text = getattr(item, "text", None)
        parts.append(text if text else str(item))
    return "\n".join(parts)


class PlaywrightBackend:
    """
    Connection to a Playwright MCP server over stdio.

    Tools are discovered once, at connect time. connect() and disconnect()
    must run on the same task: the stdio transport owns a task group.
    """

    def __init__(self, command: str, args: list[str], env: dict[str, str] | None = None) -> None:
        self._params = StdioServerParameters(
            command=command,
            args=args,
            env={**(env if env is not None else os.environ), **_QUIET_ENV},
        )
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self._capabilities: dict[str, ActionDescriptor] = {}

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        display.backend_connecting(self._params.command, self._params.args)
        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(self._params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
            listing = await session.list_tools()
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        self._capabilities = {
            tool.name: ActionDescriptor(
                name=tool.name,
                description=tool.description or "",
                parameter_schema=tool.inputSchema or {},
                kind=ActionKind.EXTERNAL,
            )
            for tool in listing.tools
        }
        display.backend_connected(len(self._capabilities))

    def list_capabilities(self) -> list[ActionDescriptor]:
        return list(self._capabilities.values())

    def get_capability(self, name: str) -> ActionDescriptor | None:
        return self._capabilities.get(name)

    async def call(self, name: str, arguments: dict) -> dict:
        """
        One request/response round trip.

        Reply shape: {"content": [...]} on success, {"error": "..."} when the
        backend flags the call as failed.
        """
        if self._session is None:
            raise NotConnectedError("Client not connected")

        result = await self._session.call_tool(name, arguments)
        if result.isError:
            return {"error": _content_text(result.content) or f"Tool '{name}' failed"}
        return {"content": [item.model_dump(exclude_none=True) for item in result.content]}

    async def disconnect(self) -> None:
        stack, self._stack = self._stack, None
        self._session = None
        self._capabilities = {}
        if stack is not None:
            await stack.aclose()
            display.backend_disconnected()


# ---------------------------------------------------------------------------
# Execution client
# ---------------------------------------------------------------------------


class ToolExecutionClient:
    """
    Dispatch one action to the backend and normalize the reply.

    execute() never raises: not-connected, unknown tools, backend errors and
    transport failures all come back as ExecutionOutcome(success=False).
    """

    def __init__(self, backend: PlaywrightBackend | None = None) -> None:
        self._backend = backend

    def attach(self, backend: PlaywrightBackend) -> None:
        self._backend = backend

    async def execute(self, name: str, arguments: Any) -> ExecutionOutcome:
        backend = self._backend
        if backend is None or not backend.is_connected:
            return ExecutionOutcome(success=False, error=str(NotConnectedError("Client not connected")))

        if backend.get_capability(name) is None:
            return ExecutionOutcome(success=False, error=f"Tool '{name}' not found")

        display.debug(f"Executing tool: {name} with args: {arguments}")
        try:
            reply = await backend.call(name, arguments)
        except Exception as exc:
            return ExecutionOutcome(success=False, error=str(exc) or type(exc).__name__)
        display.debug(f"Tool {name} response: {reply}")

        if isinstance(reply, dict) and "content" in reply:
            return ExecutionOutcome(success=True, result=reply["content"])
        if isinstance(reply, dict) and "error" in reply:
            return ExecutionOutcome(success=False, error=str(reply["error"]))
        return ExecutionOutcome(success=True, result=reply)
