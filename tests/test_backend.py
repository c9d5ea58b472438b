from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from mcp.types import CallToolResult, TextContent

from browser_ai.backend import NotConnectedError, PlaywrightBackend, ToolExecutionClient
from browser_ai.models import ActionDescriptor, ActionKind


def _fake_backend(reply=None, side_effect=None, tools=("browser_snapshot",)):
    backend = MagicMock()
    backend.is_connected = True
    backend.get_capability.side_effect = lambda name: (
        ActionDescriptor(name=name) if name in tools else None
    )
    backend.call = AsyncMock(return_value=reply, side_effect=side_effect)
    return backend


# ---------------------------------------------------------------------------
# ToolExecutionClient
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_execute_before_connection_is_a_failure_outcome():
    outcome = await ToolExecutionClient().execute("browser_snapshot", {})
    assert outcome.success is False
    assert "not connected" in outcome.error


@pytest.mark.asyncio
async def test_execute_disconnected_backend():
    backend = _fake_backend()
    backend.is_connected = False
    outcome = await ToolExecutionClient(backend).execute("browser_snapshot", {})
    assert outcome.success is False
    backend.call.assert_not_called()


@pytest.mark.asyncio
async def test_execute_unknown_tool_skips_round_trip():
    backend = _fake_backend()
    outcome = await ToolExecutionClient(backend).execute("browser_teleport", {})
    assert outcome.success is False
    assert outcome.error == "Tool 'browser_teleport' not found"
    backend.call.assert_not_called()


@pytest.mark.asyncio
async def test_execute_content_reply_is_success():
    content = [{"type": "text", "text": "- button \"Go\" [ref=e5]"}]
    backend = _fake_backend(reply={"content": content})
    outcome = await ToolExecutionClient(backend).execute("browser_snapshot", {})
    assert outcome.success is True
    assert outcome.result == content
    backend.call.assert_awaited_once_with("browser_snapshot", {})


@pytest.mark.asyncio
async def test_execute_error_reply_is_failure():
    backend = _fake_backend(reply={"error": "Ref e5 not found"})
    outcome = await ToolExecutionClient(backend).execute("browser_snapshot", {})
    assert outcome.success is False
    assert outcome.error == "Ref e5 not found"


@pytest.mark.asyncio
async def test_execute_other_reply_is_opaque_success():
    backend = _fake_backend(reply={"status": "ok"})
    outcome = await ToolExecutionClient(backend).execute("browser_snapshot", {})
    assert outcome.success is True
    assert outcome.result == {"status": "ok"}


@pytest.mark.asyncio
async def test_execute_transport_failure_is_normalized():
    backend = _fake_backend(side_effect=ConnectionResetError("process died"))
    outcome = await ToolExecutionClient(backend).execute("browser_snapshot", {})
    assert outcome.success is False
    assert outcome.error == "process died"


@pytest.mark.asyncio
async def test_attach_after_construction():
    client = ToolExecutionClient()
    client.attach(_fake_backend(reply={"content": []}))
    outcome = await client.execute("browser_snapshot", {})
    assert outcome.success is True


# ---------------------------------------------------------------------------
# PlaywrightBackend
# ---------------------------------------------------------------------------

def _session_factory(session):
    @asynccontextmanager
    async def factory(read_stream, write_stream):
        yield session

    return factory


@asynccontextmanager
async def _fake_stdio(params):
    yield ("read", "write")


def _mock_session():
    session = MagicMock()
    session.initialize = AsyncMock()
    session.list_tools = AsyncMock(
        return_value=SimpleNamespace(
            tools=[
                SimpleNamespace(
                    name="browser_navigate",
                    description="Navigate to a URL",
                    inputSchema={"type": "object", "properties": {"url": {"type": "string"}}},
                ),
                SimpleNamespace(name="browser_snapshot", description=None, inputSchema=None),
            ]
        )
    )
    session.call_tool = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_connect_discovers_capabilities_once():
    session = _mock_session()
    with patch("browser_ai.backend.stdio_client", _fake_stdio), \
         patch("browser_ai.backend.ClientSession", _session_factory(session)):
        backend = PlaywrightBackend("npx", ["@playwright/mcp@latest"], env={})
        await backend.connect()

        assert backend.is_connected
        names = [d.name for d in backend.list_capabilities()]
        assert names == ["browser_navigate", "browser_snapshot"]
        assert backend.get_capability("browser_snapshot").description == ""
        assert all(d.kind is ActionKind.EXTERNAL for d in backend.list_capabilities())
        session.list_tools.assert_awaited_once()

        await backend.disconnect()
        assert not backend.is_connected
        assert backend.list_capabilities() == []


@pytest.mark.asyncio
async def test_call_maps_result_shapes():
    session = _mock_session()
    with patch("browser_ai.backend.stdio_client", _fake_stdio), \
         patch("browser_ai.backend.ClientSession", _session_factory(session)):
        backend = PlaywrightBackend("npx", [], env={})
        await backend.connect()

        session.call_tool.return_value = CallToolResult(content=[TextContent(type="text", text="Navigated")])
        assert await backend.call("browser_navigate", {"url": "https://a.com"}) == {
            "content": [{"type": "text", "text": "Navigated"}]
        }

        session.call_tool.return_value = CallToolResult(
            content=[TextContent(type="text", text="Timeout 5000ms exceeded")], isError=True
        )
        assert await backend.call("browser_navigate", {"url": "https://a.com"}) == {
            "error": "Timeout 5000ms exceeded"
        }
        await backend.disconnect()


@pytest.mark.asyncio
async def test_call_before_connect_raises():
    backend = PlaywrightBackend("npx", [], env={})
    with pytest.raises(NotConnectedError):
        await backend.call("browser_snapshot", {})
