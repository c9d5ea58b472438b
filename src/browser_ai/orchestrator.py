# orchestrator.py
# Automation orchestrator
#
# The orchestrator owns the whole command loop. The model only ever sees the
# conversation; it never touches the backend directly.
#
# Control flow per command:
#   build conversation → model turn → parse plan
#   → no actions: final answer
#   → actions: execute sequentially → append results → next turn
#   → iteration cap: synthesized completion message
#
# All terminal output is delegated to display.py; no formatting here.

import json
from typing import Any, Protocol

from browser_ai import display
from browser_ai.auth import AUTH_MARKER, AuthenticationRequired
from browser_ai.backend import ToolExecutionClient
from browser_ai.catalog import PLANNING_ACTION, PLANNING_DESCRIPTOR, ToolCatalog
from browser_ai.models import (
    Action,
    ActionDescriptor,
    ChatMessage,
    CommandContext,
    CommandDetails,
    CommandResult,
    ExecutedAction,
    ExecutionOutcome,
    PlanningUpdate,
)
from browser_ai.parser import ActionPlanParser
from browser_ai.planning import TaskPlanningState
from browser_ai.prompts import build_command_prompt, build_results_message, build_system_prompt

SNAPSHOT_ACTION = "browser_snapshot"

DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_OUTPUT_TOKENS = 1000
DEFAULT_MAX_ITERATIONS = 30


class ModelInvoker(Protocol):
    async def invoke(self, messages: list[dict], temperature: float, max_output_tokens: int) -> str: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text_content(result: Any) -> str:
    """Flatten a backend content list to its text parts."""
    if isinstance(result, str):
        return result
    if isinstance(result, list):
        parts = []
        for item in result:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    return ""


def _format_result_line(name: str, outcome: ExecutionOutcome) -> str:
    """Render one outcome for the next model turn."""
    if not outcome.success:
        return f"{name}: {outcome.error}"

    # The model reads element refs out of the snapshot, so it goes in whole.
    if name == SNAPSHOT_ACTION:
        content = _text_content(outcome.result)
        if content:
            return f"{name}: Success\nContent:\n{content}"

    if outcome.result:
        return f"{name}: Success\nResult: {json.dumps(outcome.result, default=str)}"
    return f"{name}: Success"


def _message(role: str, content: str) -> dict:
    return ChatMessage(role=role, content=content).model_dump()


def _completion_message(errors: list[str]) -> str:
    message = "I completed the browser automation task but reached the maximum number of steps. "
    if errors:
        return message + f"Some errors occurred: {', '.join(errors)}"
    return message + "All steps executed successfully."


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AutomationOrchestrator:
    """
    Multi-turn command loop between the model and the automation backend.

    One instance is bound to one backend connection and serves one command
    at a time. Planning state persists across commands on the same instance;
    conversations do not.

    Example:
        orchestrator = AutomationOrchestrator(model, backend.list_capabilities(), ToolExecutionClient(backend))
        result = await orchestrator.execute_command("Open example.com and read the heading")
    """

    def __init__(
        self,
        model: ModelInvoker,
        descriptors: list[ActionDescriptor],
        executor: ToolExecutionClient,
        *,
        planning: TaskPlanningState | None = None,
        parser: ActionPlanParser | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self._model = model
        self._executor = executor
        self._catalog = ToolCatalog([*descriptors, PLANNING_DESCRIPTOR])
        self._planning = planning or TaskPlanningState()
        self._parser = parser or ActionPlanParser()
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._max_iterations = max_iterations
        self._system_prompt = build_system_prompt(self._catalog.describe_external_only())

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def planning(self) -> TaskPlanningState:
        return self._planning

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _execute_internal(self, action: Action) -> ExecutionOutcome:
        if action.name != PLANNING_ACTION:
            return ExecutionOutcome(success=False, error=f"Unknown internal tool: {action.name}")

        params = PlanningUpdate.model_validate(action.arguments)
        tasks = self._planning.replace(params.todos)
        next_task = self._planning.next_actionable()
        return ExecutionOutcome(
            success=True,
            result={
                "message": "Todo list updated",
                "todoCount": len(tasks),
                "nextTask": next_task.content if next_task else None,
            },
        )

    async def _dispatch(self, action: Action) -> ExecutionOutcome:
        """Route one action by descriptor kind. May raise; the caller records it."""
        if self._catalog.is_internal(action.name):
            return self._execute_internal(action)

        if action.name in self._catalog and not self._catalog.validate(action):
            return ExecutionOutcome(
                success=False,
                error=f"Invalid arguments for '{action.name}': {json.dumps(action.arguments, default=str)}",
            )
        return await self._executor.execute(action.name, action.arguments)

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    def _initial_messages(self, command: str, context: CommandContext | None) -> list[dict]:
        return [
            _message("system", self._system_prompt),
            _message("user", build_command_prompt(command, context)),
        ]

    async def _run(self, command: str, context: CommandContext | None) -> CommandResult:
        messages = self._initial_messages(command, context)
        executed: list[ExecutedAction] = []
        errors: list[str] = []
        final_response: str | None = None

        for iteration in range(1, self._max_iterations + 1):
            text = await self._model.invoke(messages, self._temperature, self._max_output_tokens)
            display.model_turn(iteration, text)

            plan = self._parser.parse(text)
            if plan.is_final:
                final_response = text
                break

            display.plan_parsed(plan)
            result_lines: list[str] = []

            # Strictly sequential: later actions consume refs produced by earlier ones.
            for action in plan.actions:
                try:
                    outcome = await self._dispatch(action)
                except Exception as exc:
                    outcome = ExecutionOutcome(success=False, error=str(exc) or type(exc).__name__)

                display.action_result(action.name, outcome)
                executed.append(
                    ExecutedAction(
                        tool=action.name,
                        args=action.arguments,
                        result=outcome.result if outcome.success else outcome.error,
                    )
                )
                line = _format_result_line(action.name, outcome)
                result_lines.append(line)
                if not outcome.success:
                    errors.append(line)

            messages.append(_message("assistant", text))
            messages.append(_message("user", build_results_message(result_lines)))
        else:
            display.iteration_cap(self._max_iterations)

        if final_response is None:
            final_response = _completion_message(errors)

        return CommandResult(
            success=not errors,
            response=final_response,
            details=CommandDetails(executed_actions=executed, errors=errors),
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute_command(
        self,
        command: str,
        context: CommandContext | dict | None = None,
    ) -> CommandResult:
        """
        Run one natural-language command to completion.

        Returns a CommandResult in all cases. Per-action failures are folded
        into details.errors; a failing model call ends the command early.
        """
        display.command_received(command)

        try:
            if isinstance(context, dict):
                context = CommandContext.model_validate(context)
            result = await self._run(command, context)
        except AuthenticationRequired as exc:
            result = CommandResult(success=False, response=f"An error occurred: {exc}")
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            if _is_auth_status(exc) and AUTH_MARKER not in message:
                message = f"{AUTH_MARKER}: {message}"
            result = CommandResult(success=False, response=f"An error occurred: {message}")

        display.final_result(result)
        return result


def _is_auth_status(exc: Exception) -> bool:
    """True for HTTP 401 failures raised by the model client."""
    return getattr(exc, "status_code", None) == 401
