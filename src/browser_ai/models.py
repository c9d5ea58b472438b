# models.py
# Data contracts for the browser automation broker.
# No business logic lives here; pure schema and validation.

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Action(BaseModel):
    """A single primitive call requested by the model."""

    name: str = Field(..., description="Action name, resolved against the catalog.")
    arguments: Any = Field(default_factory=dict, description="Action arguments.")


class ActionPlan(BaseModel):
    """Ordered actions recovered from one model turn."""

    model_config = ConfigDict(frozen=True)

    actions: list[Action] = Field(default_factory=list)
    rationale: str = Field(default="Executing browser automation task")

    @property
    def is_final(self) -> bool:
        return not self.actions


class ActionKind(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class ActionDescriptor(BaseModel):
    """Catalog entry. External entries run on the backend, internal ones locally."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameter_schema: dict = Field(default_factory=dict)
    kind: ActionKind = ActionKind.EXTERNAL


class ExecutionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    result: Any = None
    error: str | None = None


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Planning state
# ---------------------------------------------------------------------------


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}


class PlanningTask(BaseModel):
    """One entry of the model's own task list."""

    model_config = ConfigDict(extra="forbid")

    id: str
    content: str = Field(..., min_length=1, description="Task description including verification criteria.")
    status: TaskStatus
    priority: TaskPriority


class PlanningUpdate(BaseModel):
    """Arguments of the planning-update action: the complete task list."""

    model_config = ConfigDict(extra="forbid")

    todos: list[PlanningTask]

    @model_validator(mode="after")
    def _unique_ids(self) -> "PlanningUpdate":
        seen: set[str] = set()
        for task in self.todos:
            if task.id in seen:
                raise ValueError(f"Duplicate task id '{task.id}'")
            seen.add(task.id)
        return self


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """OAuth token as persisted on disk. expires_at is epoch milliseconds."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int
    token_type: str = "Bearer"


# ---------------------------------------------------------------------------
# Command surface
# ---------------------------------------------------------------------------


class CommandContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str | None = Field(default=None, description="Current URL or target URL for the automation.")
    session_id: str | None = Field(
        default=None,
        alias="sessionId",
        description="Session ID for continuing previous automation.",
    )


class ExecutedAction(BaseModel):
    """Log entry for every dispatched action, successful or not."""

    tool: str
    args: Any
    result: Any = None


class CommandDetails(BaseModel):
    executed_actions: list[ExecutedAction] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class CommandResult(BaseModel):
    success: bool
    response: str
    details: CommandDetails | None = None
