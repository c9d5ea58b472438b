import pytest
from pydantic import ValidationError

from browser_ai.models import PlanningTask, TaskPriority, TaskStatus
from browser_ai.planning import TaskPlanningState


def _task(task_id, status="pending", priority="medium", content=None):
    return {"id": task_id, "content": content or f"task {task_id}", "status": status, "priority": priority}


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------

def test_replace_round_trips_submitted_set():
    state = TaskPlanningState()
    submitted = [_task("1", "completed", "high"), _task("2", "in_progress"), _task("3", "pending", "low")]
    state.replace(submitted)

    got = {t.model_dump(mode="json")["id"]: t.model_dump(mode="json") for t in state.list()}
    assert got == {t["id"]: t for t in submitted}


def test_replace_is_wholesale():
    state = TaskPlanningState()
    state.replace([_task("1"), _task("2")])
    state.replace([_task("3")])
    assert [t.id for t in state.list()] == ["3"]
    assert state.get("1") is None


def test_replace_accepts_models():
    state = TaskPlanningState()
    task = PlanningTask(id="a", content="Open page", status=TaskStatus.PENDING, priority=TaskPriority.HIGH)
    state.replace([task])
    assert state.get("a") == task


def test_replace_empty_clears():
    state = TaskPlanningState()
    state.replace([_task("1")])
    state.replace([])
    assert state.list() == []
    assert len(state) == 0


@pytest.mark.parametrize(
    "bad",
    [
        [{"id": "1", "content": "", "status": "pending", "priority": "high"}],
        [{"id": "1", "content": "x", "status": "done", "priority": "high"}],
        [{"id": "1", "content": "x", "status": "pending", "priority": "urgent"}],
        [{"id": "1", "content": "x", "status": "pending"}],
        [_task("1"), _task("1")],
    ],
)
def test_replace_rejects_invalid_input_and_keeps_state(bad):
    state = TaskPlanningState()
    state.replace([_task("keep")])
    with pytest.raises(ValidationError):
        state.replace(bad)
    assert [t.id for t in state.list()] == ["keep"]


# ---------------------------------------------------------------------------
# Next actionable
# ---------------------------------------------------------------------------

def test_next_actionable_none_while_in_progress():
    state = TaskPlanningState()
    state.replace([_task("1", "in_progress", "low"), _task("2", "pending", "high"), _task("3", "pending")])
    assert state.next_actionable() is None


@pytest.mark.parametrize(
    "order",
    [["low", "high", "medium"], ["high", "medium", "low"], ["medium", "low", "high"]],
)
def test_next_actionable_prefers_high_priority(order):
    state = TaskPlanningState()
    state.replace([_task(str(i), "pending", p) for i, p in enumerate(order)])
    assert state.next_actionable().priority is TaskPriority.HIGH


def test_next_actionable_ties_follow_insertion_order():
    state = TaskPlanningState()
    state.replace([_task("b", priority="medium"), _task("a", priority="medium"), _task("c", priority="low")])
    assert state.next_actionable().id == "b"


def test_next_actionable_skips_completed():
    state = TaskPlanningState()
    state.replace([_task("1", "completed", "high"), _task("2", "pending", "low")])
    assert state.next_actionable().id == "2"


def test_next_actionable_empty():
    assert TaskPlanningState().next_actionable() is None


def test_all_completed():
    state = TaskPlanningState()
    state.replace([_task("1", "completed"), _task("2", "completed")])
    assert state.all_completed()
    state.replace([_task("1", "completed"), _task("2", "pending")])
    assert not state.all_completed()
