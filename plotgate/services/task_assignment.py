from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..store import collections as c
from ..store.provider import DocumentStore


logger = structlog.get_logger(__name__)

TASK_TYPES = {"visit_approval", "site_visit", "client_assistance", "maintenance"}
PRIORITIES = {"low", "medium", "high"}
REQUIRED_FIELDS = ("task_type", "title", "description", "priority", "due_date")
OPTIONAL_FIELDS = ("project_id", "project_name", "plot_id", "plot_number", "client_id", "client_name", "visit_id")

# status -> statuses it may move to
TASK_TRANSITIONS = {
    "pending": {"in_progress", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


@dataclass
class TaskAssignment:
    task_id: str
    manager_id: str
    manager_name: str


def active_managers(store: DocumentStore) -> List[Dict[str, Any]]:
    managers = store.query(c.USERS, [("role", "==", "manager"), ("disabled", "==", False)])
    return sorted(managers, key=lambda m: (m.get("created_at") or datetime.min, m["id"]))


def last_assigned_manager_id(store: DocumentStore) -> Optional[str]:
    rows = store.query(c.MANAGER_TASKS, order_by="created_at", descending=True, limit=1)
    return rows[0]["manager_id"] if rows else None


def next_manager_index(manager_ids: List[str], last_manager_id: Optional[str]) -> int:
    """
    Round-robin pick. A last manager who left the roster restarts the
    rotation at index 0.
    """
    if not manager_ids:
        raise ValueError("empty roster")
    if last_manager_id is None:
        return 0
    try:
        last_index = manager_ids.index(last_manager_id)
    except ValueError:
        last_index = -1
    return (last_index + 1) % len(manager_ids)


def assign_task(store: DocumentStore, fields: Dict[str, Any], now: datetime) -> TaskAssignment:
    """
    Create a manager task and give it to the next active manager.

    Two tasks created at the same moment may go to the same manager.
    """
    if any(not fields.get(name) for name in REQUIRED_FIELDS):
        raise ValidationError("Missing required task fields")
    if fields["task_type"] not in TASK_TYPES:
        raise ValidationError("Invalid task type")
    if fields["priority"] not in PRIORITIES:
        raise ValidationError("Invalid priority")

    managers = active_managers(store)
    if not managers:
        raise BusinessRuleError("No active managers found", status_code=404)

    index = next_manager_index([m["id"] for m in managers], last_assigned_manager_id(store))
    manager = managers[index]
    manager_name = manager.get("display_name") or ""

    task = {
        "manager_id": manager["id"],
        "manager_name": manager_name,
        "task_type": fields["task_type"],
        "title": fields["title"],
        "description": fields["description"],
        "status": "pending",
        "priority": fields["priority"],
        "due_date": fields["due_date"],
        "feedback_submitted": False,
        "created_at": now,
        "updated_at": now,
    }
    for name in OPTIONAL_FIELDS:
        if fields.get(name):
            task[name] = fields[name]

    task_id = store.add(c.MANAGER_TASKS, task)
    logger.info("task_assigned", task_id=task_id, manager_id=manager["id"], index=index, roster=len(managers))
    return TaskAssignment(task_id=task_id, manager_id=manager["id"], manager_name=manager_name)


def update_task_status(store: DocumentStore, task_id: str, status: str, manager_id: str, now: datetime) -> Dict[str, Any]:
    task = store.get(c.MANAGER_TASKS, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if task["manager_id"] != manager_id:
        raise BusinessRuleError("Task is assigned to another manager", status_code=403)
    if status not in TASK_TRANSITIONS.get(task["status"], set()):
        raise ValidationError(f"Cannot move task from {task['status']} to {status}")

    changes: Dict[str, Any] = {"status": status, "updated_at": now}
    if status == "completed":
        changes["completed_at"] = now
    store.update(c.MANAGER_TASKS, task_id, changes)
    task.update(changes)
    return task


def submit_manager_feedback(
    store: DocumentStore,
    task_id: str,
    rating: int,
    comment: Optional[str],
    manager_id: str,
    now: datetime,
) -> str:
    task = store.get(c.MANAGER_TASKS, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if task["manager_id"] != manager_id:
        raise BusinessRuleError("Task is assigned to another manager", status_code=403)
    if task["status"] != "completed":
        raise ValidationError("Feedback can only be given for completed tasks")
    if task.get("feedback_submitted"):
        raise BusinessRuleError("Feedback already submitted for this task")
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    feedback_id = store.add(
        c.MANAGER_FEEDBACK,
        {
            "manager_id": task["manager_id"],
            "manager_name": task.get("manager_name"),
            "task_id": task_id,
            "task_type": task["task_type"],
            "rating": rating,
            "comment": comment or "",
            "created_at": now,
        },
    )
    store.update(c.MANAGER_TASKS, task_id, {"feedback_submitted": True, "updated_at": now})
    return feedback_id
