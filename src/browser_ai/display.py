# display.py
# All terminal output for the browser automation broker.
#
# This module owns presentation entirely. The orchestrator, backend and
# server never format strings; they call named functions here.
#
# Output goes to stderr: stdout belongs to the MCP stdio protocol when the
# broker runs as a server.
#
# Colour language:
#   cyan    — routing events and model turns
#   blue    — backend connection
#   green   — success / confirmed
#   yellow  — warnings, degraded paths
#   red     — failures, halts
#   magenta — action dispatch internals

import json
import os
from datetime import datetime

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from browser_ai.models import ActionPlan, CommandResult, ExecutionOutcome

console = Console(stderr=True)

_debug = os.getenv("DEBUG", "false").lower() == "true"


def set_debug(enabled: bool) -> None:
    global _debug
    _debug = enabled


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _stamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _dumps(value) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


# ---------------------------------------------------------------------------
# Generic log lines
# ---------------------------------------------------------------------------


def info(message: str) -> None:
    console.print(f"[dim]{_stamp()}[/dim] [cyan]INFO[/cyan]  {message}", highlight=False)


def debug(message: str) -> None:
    if not _debug:
        return
    console.print(f"[dim]{_stamp()} DEBUG {escape(message)}[/dim]", highlight=False)


# ---------------------------------------------------------------------------
# Backend connection
# ---------------------------------------------------------------------------


def backend_connecting(command: str, args: list[str]) -> None:
    console.print(
        _label("BACKEND", "blue"),
        f"[blue] → Spawning[/blue] [white]{command} {' '.join(args)}[/white]",
    )


def backend_connected(tool_count: int) -> None:
    console.print(
        _label("BACKEND", "blue"),
        f"[green] Connected: discovered {tool_count} tool(s).[/green]",
    )


def backend_failed(reason: str) -> None:
    console.print(
        Panel(
            f"[bold yellow]Could not connect to the automation backend.[/bold yellow]\n\n"
            f"[white]{escape(reason)}[/white]\n"
            "[dim]Commands will report this error until the backend is reachable.[/dim]",
            title=_label("BACKEND UNAVAILABLE", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def backend_disconnected() -> None:
    console.print(_label("BACKEND", "blue"), "[dim] Disconnected.[/dim]")


# ---------------------------------------------------------------------------
# Command lifecycle
# ---------------------------------------------------------------------------


def command_received(command: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW COMMAND[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(command)}[/white]",
            title=_label("COMMAND", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def model_turn(iteration: int, text: str) -> None:
    console.print(
        _label("MODEL", "cyan"),
        f"[cyan] Turn {iteration} answered ({len(text)} chars).[/cyan]",
    )
    debug(f"Iteration {iteration} model response:\n{text}")


def parse_fallback(strategy: str, reason: str) -> None:
    debug(f"Parser strategy '{strategy}' yielded nothing: {reason}")


def plan_parsed(plan: ActionPlan) -> None:
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Action", style="bold white", width=26)
    table.add_column("Args", style="dim white")

    for index, action in enumerate(plan.actions, start=1):
        table.add_row(str(index), escape(action.name), escape(_mono(_dumps(action.arguments), 60)))

    console.print(
        Panel(
            table,
            title=_label(f"PLAN: {len(plan.actions)} ACTION(S)", "cyan"),
            subtitle=f"[dim]{escape(_mono(plan.rationale, 80))}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def action_result(name: str, outcome: ExecutionOutcome) -> None:
    if outcome.success:
        console.print(f"  [magenta]Action[/magenta]  [bold white]{escape(name)}[/bold white]  [green]✓[/green]")
        debug(f"{name} result: {_mono(_dumps(outcome.result), 400)}")
    else:
        console.print(
            f"  [magenta]Action[/magenta]  [bold white]{escape(name)}[/bold white]  "
            f"[red]✗ {escape(_mono(outcome.error or '', 140))}[/red]"
        )


def iteration_cap(limit: int) -> None:
    console.print(
        Panel(
            f"[bold yellow]Reached the limit of {limit} model turns without a final answer.[/bold yellow]",
            title=_label("ITERATION CAP", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def final_result(result: CommandResult) -> None:
    color = "green" if result.success else "red"
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result.response)}[/white]",
            title=_label("RESULT", color),
            border_style=color,
            padding=(1, 2),
        )
    )
    if result.details and result.details.errors:
        for err in result.details.errors:
            console.print(f"  [red]•[/red] [white]{escape(_mono(err, 160))}[/white]")
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def auth_instructions(url: str) -> None:
    console.print(
        Panel(
            "[white]Opening the browser for authentication…[/white]\n"
            f"[dim]If the browser doesn't open, visit:[/dim]\n{url}\n\n"
            "[white]After authorizing, the page displays a code that looks like[/white] "
            "[bold]YOUR_CODE#YOUR_STATE[/bold].\n"
            "[dim]Paste the entire code, including the # and everything after it.[/dim]",
            title=_label("AUTH", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def auth_success() -> None:
    console.print("[bold green]Authentication successful! Token saved.[/bold green]")


def auth_remediation(message: str) -> None:
    console.print(
        Panel(
            f"[white]{escape(message)}[/white]",
            title=_label("AUTHENTICATION REQUIRED", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )
