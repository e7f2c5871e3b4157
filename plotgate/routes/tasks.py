from fastapi import APIRouter, Depends

from ..auth.identity import IdentityRecord
from ..auth.security import require_roles
from ..deps import get_store
from ..errors import ValidationError
from ..schemas.tasks import AssignTaskRequest, TaskFeedbackRequest, TaskStatusRequest
from ..services import task_assignment
from ..services.time_rules import isoformat, parse_datetime, utcnow
from ..store.provider import DocumentStore


router = APIRouter(tags=["tasks"])


def _serialize_task(task: dict) -> dict:
    return {
        "id": task["id"],
        "managerId": task["manager_id"],
        "managerName": task.get("manager_name"),
        "taskType": task["task_type"],
        "title": task["title"],
        "description": task["description"],
        "status": task["status"],
        "priority": task["priority"],
        "dueDate": isoformat(task.get("due_date")),
        "projectId": task.get("project_id"),
        "plotId": task.get("plot_id"),
        "clientId": task.get("client_id"),
        "visitId": task.get("visit_id"),
        "feedbackSubmitted": bool(task.get("feedback_submitted")),
        "completedAt": isoformat(task.get("completed_at")),
        "createdAt": isoformat(task.get("created_at")),
        "updatedAt": isoformat(task.get("updated_at")),
    }


@router.post("/assign-task")
def assign_task(
    payload: AssignTaskRequest,
    store: DocumentStore = Depends(get_store),
    _=Depends(require_roles("admin")),
):
    fields = payload.model_dump()
    if fields["due_date"]:
        try:
            fields["due_date"] = parse_datetime(fields["due_date"])
        except ValueError:
            raise ValidationError("Invalid due date")
    assignment = task_assignment.assign_task(store, fields, utcnow())
    return {
        "success": True,
        "taskId": assignment.task_id,
        "assignedTo": {"managerId": assignment.manager_id, "managerName": assignment.manager_name},
    }


@router.post("/tasks/{task_id}/status")
def set_task_status(
    task_id: str,
    payload: TaskStatusRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(require_roles("manager")),
):
    task = task_assignment.update_task_status(store, task_id, payload.status, me.uid, utcnow())
    return {"success": True, "task": _serialize_task(task)}


@router.post("/tasks/{task_id}/feedback")
def task_feedback(
    task_id: str,
    payload: TaskFeedbackRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(require_roles("manager")),
):
    feedback_id = task_assignment.submit_manager_feedback(
        store, task_id, payload.rating, payload.comment, me.uid, utcnow()
    )
    return {"success": True, "feedbackId": feedback_id}
