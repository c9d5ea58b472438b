# parser.py
# Model output → ActionPlan.
#
# Model text is untrusted: it usually follows the JSON-array instruction but
# regularly wraps it in prose or code fences, or emits partial JSON. Parsing
# is an ordered chain of independent strategies. Each one is pure (text in,
# actions out) and the first strategy that yields at least one action wins.
#
# parse() never raises. An empty plan means the text is the final answer.

import json
import re
from typing import Any, Callable

from browser_ai import display
from browser_ai.models import Action, ActionPlan

DEFAULT_RATIONALE = "Executing browser automation task"

_ARRAY_RE = re.compile(r"\[\s*\{[\s\S]*?\}\s*\]")
_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_ITEM_RE = re.compile(r'\{"tool":\s*"([^"]+)",\s*"args":\s*(\{[^}]*\})\}')
_CALL_RE = re.compile(r"(\w+)\((.*?)\)")

# RecursionError covers pathologically nested input.
_DECODE_ERRORS = (ValueError, RecursionError)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_action(item: Any) -> Action | None:
    """Accept a decoded item only if it names a tool and carries args."""
    if not isinstance(item, dict):
        return None
    tool = item.get("tool")
    if not isinstance(tool, str) or not tool:
        return None
    if "args" not in item:
        return None
    args = item["args"]
    return Action(name=tool, arguments={} if args is None else args)


def _actions_from_json(raw: str) -> list[Action]:
    """Decode a JSON array and keep its well-formed items. Raises on bad JSON."""
    parsed = json.loads(raw)
    if not isinstance(parsed, list):
        return []
    return [action for action in map(_to_action, parsed) if action is not None]


def _preamble(text: str, start: int) -> str:
    return text[:start].strip()


# ---------------------------------------------------------------------------
# Strategies: each returns (actions, rationale or "")
# ---------------------------------------------------------------------------


def parse_whole_text(text: str) -> tuple[list[Action], str]:
    try:
        return _actions_from_json(text.strip()), ""
    except _DECODE_ERRORS as exc:
        display.parse_fallback("whole_text", str(exc))
        return [], ""


def parse_embedded_array(text: str) -> tuple[list[Action], str]:
    match = _ARRAY_RE.search(text)
    if not match:
        return [], ""
    try:
        return _actions_from_json(match.group(0)), _preamble(text, match.start())
    except _DECODE_ERRORS as exc:
        display.parse_fallback("embedded_array", str(exc))
        return [], ""


def parse_fenced_block(text: str) -> tuple[list[Action], str]:
    match = _FENCE_RE.search(text)
    if not match:
        return [], ""
    try:
        return _actions_from_json(match.group(1).strip()), _preamble(text, match.start())
    except _DECODE_ERRORS as exc:
        display.parse_fallback("fenced_block", str(exc))
        return [], ""


def parse_line_items(text: str) -> tuple[list[Action], str]:
    """Collect every flat {"tool": ..., "args": {...}} object independently."""
    actions: list[Action] = []
    first = None
    for match in _ITEM_RE.finditer(text):
        try:
            args = json.loads(match.group(2))
        except _DECODE_ERRORS as exc:
            display.parse_fallback("line_items", str(exc))
            continue
        actions.append(Action(name=match.group(1), arguments=args))
        if first is None:
            first = match.start()
    return actions, _preamble(text, first) if first is not None else ""


def parse_function_calls(text: str) -> tuple[list[Action], str]:
    """
    Last resort: name(argsJson). A detected call is never discarded;
    unparsable arguments fall back to {}.
    """
    actions: list[Action] = []
    first = None
    for match in _CALL_RE.finditer(text):
        tool, args_raw = match.group(1), match.group(2)
        try:
            args = json.loads(args_raw) if args_raw else {}
        except _DECODE_ERRORS:
            args = {}
        actions.append(Action(name=tool, arguments={} if args is None else args))
        if first is None:
            first = match.start()
    return actions, _preamble(text, first) if first is not None else ""


Strategy = Callable[[str], tuple[list[Action], str]]

STRATEGIES: list[tuple[str, Strategy]] = [
    ("whole_text", parse_whole_text),
    ("embedded_array", parse_embedded_array),
    ("fenced_block", parse_fenced_block),
    ("line_items", parse_line_items),
    ("function_calls", parse_function_calls),
]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class ActionPlanParser:
    """
    Recover an ActionPlan from raw model text.

    Example:
        plan = ActionPlanParser().parse('[{"tool": "browser_snapshot", "args": {}}]')
        assert plan.actions[0].name == "browser_snapshot"
    """

    def __init__(self, strategies: list[tuple[str, Strategy]] | None = None) -> None:
        self._strategies = strategies if strategies is not None else STRATEGIES

    def parse(self, raw_text: str) -> ActionPlan:
        text = raw_text if isinstance(raw_text, str) else ""

        for name, strategy in self._strategies:
            try:
                actions, rationale = strategy(text)
            except Exception as exc:  # a strategy must never sink the turn
                display.parse_fallback(name, f"unexpected {type(exc).__name__}: {exc}")
                continue
            if actions:
                display.debug(f"Parsed {len(actions)} action(s) via '{name}'")
                return ActionPlan(actions=actions, rationale=rationale or DEFAULT_RATIONALE)

        return ActionPlan(actions=[], rationale=DEFAULT_RATIONALE)
