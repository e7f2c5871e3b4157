from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..auth.identity import IdentityRecord
from ..auth.security import get_current_account, has_role, require_roles
from ..deps import get_store
from ..errors import ValidationError
from ..schemas.visits import (
    GenerateQrTokenRequest,
    VisitCheckInRequest,
    VisitCreateRequest,
    VisitDecisionRequest,
)
from ..services import visits as visit_service
from ..services.accounts import get_profile
from ..services.qr_tokens import issue_visit_qr_token
from ..services.time_rules import isoformat, utcnow
from ..store.provider import DocumentStore


router = APIRouter(tags=["visits"])


def _serialize_visit(visit: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": visit["id"],
        "userId": visit["user_id"],
        "userName": visit.get("user_name"),
        "userEmail": visit.get("user_email"),
        "userPhone": visit.get("user_phone"),
        "projectId": visit["project_id"],
        "projectName": visit.get("project_name"),
        "plotId": visit.get("plot_id"),
        "plotNumber": visit.get("plot_number"),
        "timeSlot": {
            "date": isoformat(visit["time_slot_date"]),
            "startTime": visit.get("time_slot_start"),
            "endTime": visit.get("time_slot_end"),
        },
        "status": visit["status"],
        "qrCodeToken": visit.get("qr_token"),
        "qrCodeExpiry": isoformat(visit.get("qr_expiry")),
        "notes": visit.get("notes"),
        "isClient": bool(visit.get("is_client_booking")),
        "assignedTo": visit.get("assigned_manager_id"),
        "approvedBy": visit.get("approved_by"),
        "approvedAt": isoformat(visit.get("approved_at")),
        "rejectionReason": visit.get("rejection_reason"),
        "checkedInAt": isoformat(visit.get("checked_in_at")),
        "createdAt": isoformat(visit.get("created_at")),
        "updatedAt": isoformat(visit.get("updated_at")),
    }


@router.post("/visits")
def create_visit(
    payload: VisitCreateRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(get_current_account),
):
    slot = payload.time_slot
    if not payload.project_id or slot is None or not slot.date:
        raise ValidationError("Missing required fields")
    profile = get_profile(store, me.uid) or {}
    visit = visit_service.create_visit_request(
        store,
        {
            "user_id": me.uid,
            "user_name": profile.get("display_name") or me.display_name,
            "user_email": profile.get("email") or me.email,
            "user_phone": profile.get("phone"),
            "project_id": payload.project_id,
            "project_name": payload.project_name,
            "plot_id": payload.plot_id,
            "plot_number": payload.plot_number,
            "time_slot_date": slot.date,
            "time_slot_start": slot.start_time,
            "time_slot_end": slot.end_time,
            "notes": payload.notes,
            "is_client_booking": me.role == "client",
        },
        utcnow(),
    )
    return {"success": True, "visit": _serialize_visit(visit)}


@router.get("/visits/mine")
def my_visits(store: DocumentStore = Depends(get_store), me: IdentityRecord = Depends(get_current_account)):
    return {"items": [_serialize_visit(v) for v in visit_service.list_user_visits(store, me.uid)]}


@router.post("/visits/check-in")
def check_in(
    payload: VisitCheckInRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(require_roles("manager", "admin")),
):
    visit = visit_service.check_in_visit(store, payload.qr_token or "", utcnow(), verified_by=me.uid)
    return {"success": True, "visit": _serialize_visit(visit)}


@router.get("/visits/{visit_id}")
def get_visit(visit_id: str, store: DocumentStore = Depends(get_store), me: IdentityRecord = Depends(get_current_account)):
    visit = visit_service.get_visit(store, visit_id)
    if visit["user_id"] != me.uid and not has_role(me, "admin", "manager"):
        raise HTTPException(status_code=403, detail="You do not have access to this visit")
    return _serialize_visit(visit)


@router.post("/visits/{visit_id}/decision")
def decide_visit(
    visit_id: str,
    payload: VisitDecisionRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(require_roles("admin")),
):
    if payload.approved is None:
        raise ValidationError("Missing required fields")
    result = visit_service.approve_or_reject_visit(
        store,
        visit_id,
        approved=payload.approved,
        approver_id=me.uid,
        now=utcnow(),
        reason=payload.reason,
        assign_manager=payload.assign_manager,
    )
    body = {
        "success": True,
        "status": result["status"],
        "qrCodeToken": result.get("qr_token"),
        "qrCodeExpiry": isoformat(result.get("qr_expiry")),
    }
    if "task_id" in result:
        body["taskId"] = result["task_id"]
        body["assignedTo"] = result["assigned_manager_id"]
    if "task_error" in result:
        body["taskError"] = result["task_error"]
    return body


@router.post("/visits/{visit_id}/close")
def close_visit(
    visit_id: str,
    store: DocumentStore = Depends(get_store),
    _=Depends(require_roles("admin", "manager")),
):
    visit = visit_service.close_visit(store, visit_id, utcnow())
    return {"success": True, "status": visit["status"]}


@router.post("/generate-qr-token")
def generate_qr_token(
    payload: GenerateQrTokenRequest,
    store: DocumentStore = Depends(get_store),
    _=Depends(require_roles("admin")),
):
    if not payload.visit_id:
        raise ValidationError("Visit ID is required")
    issued = issue_visit_qr_token(store, payload.visit_id, utcnow())
    body = {"success": True, "qrCodeToken": issued.token, "qrCodeExpiry": isoformat(issued.expiry)}
    if issued.already_issued:
        body["message"] = "QR code already generated"
    return body
