# run.py
# Entry point. Config and wiring only; no logic lives here.
#
#   browser-ai                 serve the MCP "execute" tool over stdio
#   browser-ai auth            sign in with a Claude account (OAuth)
#   browser-ai run "<command>" execute one command locally and print the result

import asyncio
import sys
import webbrowser

import click
from mcp.server.fastmcp.exceptions import ToolError

from browser_ai import __version__, display
from browser_ai.auth import AUTH_REMEDIATION, AnthropicOAuth, AuthenticationRequired, OAuthError, TokenManager
from browser_ai.config import Settings
from browser_ai.models import CommandContext
from browser_ai.server import BrowserAIServer, build_server


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="browser-ai")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.option(
    "--playwright-path",
    default=None,
    help="Playwright MCP package or executable to spawn (default @playwright/mcp@latest).",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, playwright_path: str | None) -> None:
    """AI-powered browser automation over Playwright MCP."""
    settings = Settings.from_env()
    if playwright_path:
        settings = settings.with_playwright_path(playwright_path)
    display.set_debug(debug or settings.debug)
    ctx.obj = settings

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@cli.command()
@click.pass_obj
def serve(settings: Settings) -> None:
    """Serve the execute tool over MCP stdio."""
    build_server(settings).run()


@cli.command()
@click.option("--console", "mode", flag_value="console", help="Authorize against the Anthropic console.")
@click.option("--max", "mode", flag_value="max", default=True, help="Authorize with a Claude subscription.")
@click.pass_obj
def auth(settings: Settings, mode: str) -> None:
    """Run the OAuth flow and store the token."""
    oauth = AnthropicOAuth(settings.token_path)
    url = oauth.authorization_url(mode)

    display.auth_instructions(url)
    webbrowser.open(url)

    code = click.prompt("Code", err=True).strip()
    if not code:
        raise click.ClickException("No code provided")

    try:
        asyncio.run(oauth.exchange_code(code))
    except OAuthError as exc:
        display.halt(f"Authentication failed: {exc}")
        sys.exit(1)
    display.auth_success()


@cli.command()
@click.pass_obj
def logout(settings: Settings) -> None:
    """Delete the stored OAuth token."""
    TokenManager(AnthropicOAuth(settings.token_path)).clear()
    display.info("Stored token removed.")


@cli.command(name="run")
@click.argument("command")
@click.option("--url", default=None, help="Current or target URL for the automation.")
@click.option("--session-id", default=None, help="Session ID for continuing a previous automation.")
@click.pass_obj
def run_command(settings: Settings, command: str, url: str | None, session_id: str | None) -> None:
    """Execute a single natural-language command and print the response."""
    context = CommandContext(url=url, session_id=session_id)
    response = asyncio.run(_run_once(settings, command, context))
    click.echo(response)


async def _run_once(settings: Settings, command: str, context: CommandContext) -> str:
    app = BrowserAIServer(settings)
    await app.start()
    try:
        try:
            orchestrator = await app.ensure_orchestrator()
        except AuthenticationRequired as exc:
            display.auth_remediation(AUTH_REMEDIATION)
            raise click.ClickException("Authentication required.") from exc
        except ToolError as exc:
            raise click.ClickException(str(exc)) from exc
        result = await orchestrator.execute_command(command, context)
    finally:
        await app.stop()

    if not result.success and result.details is None:
        raise click.ClickException(result.response)
    return result.response


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
