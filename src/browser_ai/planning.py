# planning.py
# The model's own task list. Advisory only: the orchestrator never enforces
# ordering, it only answers next_actionable() when asked.

from typing import Iterable

from browser_ai.models import PlanningTask, PlanningUpdate, TaskStatus


class TaskPlanningState:
    """
    In-memory task list, replaced wholesale on every update.

    Invariant: after replace(tasks), list() equals exactly the submitted tasks.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, PlanningTask] = {}

    def replace(self, tasks: Iterable[PlanningTask | dict]) -> list[PlanningTask]:
        """
        Validate and install a complete task list.
        Raises pydantic.ValidationError and leaves the current list untouched on bad input.
        """
        items = [t.model_dump() if isinstance(t, PlanningTask) else t for t in tasks]
        update = PlanningUpdate.model_validate({"todos": items})
        self._tasks = {task.id: task for task in update.todos}
        return self.list()

    def list(self) -> list[PlanningTask]:
        return list(self._tasks.values())

    def get(self, task_id: str) -> PlanningTask | None:
        return self._tasks.get(task_id)

    def next_actionable(self) -> PlanningTask | None:
        tasks = self.list()
        if any(t.status is TaskStatus.IN_PROGRESS for t in tasks):
            return None
        pending = [t for t in tasks if t.status is TaskStatus.PENDING]
        # min() keeps the first of equal keys, so insertion order breaks ties.
        return min(pending, key=lambda t: t.priority.rank, default=None)

    def all_completed(self) -> bool:
        return all(t.status is TaskStatus.COMPLETED for t in self._tasks.values())

    def clear(self) -> None:
        self._tasks = {}

    def __len__(self) -> int:
        return len(self._tasks)
