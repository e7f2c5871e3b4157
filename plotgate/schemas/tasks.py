from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class AssignTaskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_type: Optional[str] = Field(default=None, alias="taskType")
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    project_name: Optional[str] = Field(default=None, alias="projectName")
    plot_id: Optional[str] = Field(default=None, alias="plotId")
    plot_number: Optional[int] = Field(default=None, alias="plotNumber")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    client_name: Optional[str] = Field(default=None, alias="clientName")
    visit_id: Optional[str] = Field(default=None, alias="visitId")


class TaskStatusRequest(BaseModel):
    status: str


class TaskFeedbackRequest(BaseModel):
    rating: int
    comment: Optional[str] = None
