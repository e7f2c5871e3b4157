from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class TimeSlotInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[str] = None
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")


class VisitCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: Optional[str] = Field(default=None, alias="projectId")
    project_name: Optional[str] = Field(default=None, alias="projectName")
    plot_id: Optional[str] = Field(default=None, alias="plotId")
    plot_number: Optional[int] = Field(default=None, alias="plotNumber")
    time_slot: Optional[TimeSlotInput] = Field(default=None, alias="timeSlot")
    notes: Optional[str] = None


class VisitDecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approved: Optional[bool] = None
    reason: Optional[str] = None
    assign_manager: bool = Field(default=False, alias="assignManager")


class GenerateQrTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    visit_id: Optional[str] = Field(default=None, alias="visitId")


class VisitCheckInRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qr_token: Optional[str] = Field(default=None, alias="qrToken")


class LeaveDecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    leave_id: Optional[str] = Field(default=None, alias="leaveId")
    approved: Optional[bool] = None
    reason: Optional[str] = None
    approved_by: Optional[str] = Field(default=None, alias="approvedBy")


class LeaveCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    reason: Optional[str] = None
