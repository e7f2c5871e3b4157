from fastapi import APIRouter, Depends

from ..auth.identity import IdentityRecord
from ..auth.security import require_roles
from ..deps import ensure_not_in_maintenance, get_store
from ..errors import ValidationError
from ..schemas.visits import LeaveCreateRequest, LeaveDecisionRequest
from ..services import leaves as leave_service
from ..services.time_rules import isoformat, parse_date, utcnow
from ..store.provider import DocumentStore


router = APIRouter(tags=["leaves"])


@router.post("/approve-leave", dependencies=[Depends(ensure_not_in_maintenance)])
def approve_leave(
    payload: LeaveDecisionRequest,
    store: DocumentStore = Depends(get_store),
    _=Depends(require_roles("admin")),
):
    if not payload.leave_id or payload.approved is None or not payload.approved_by:
        raise ValidationError("Missing required fields")
    status = leave_service.approve_or_reject_leave(
        store,
        payload.leave_id,
        approved=payload.approved,
        approved_by=payload.approved_by,
        now=utcnow(),
        reason=payload.reason,
    )
    return {"success": True, "status": status}


@router.post("/leaves")
def request_leave(
    payload: LeaveCreateRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(require_roles("manager")),
):
    if not payload.start_date or not payload.end_date:
        raise ValidationError("Missing required fields")
    try:
        start, end = parse_date(payload.start_date), parse_date(payload.end_date)
    except ValueError as exc:
        raise ValidationError(str(exc))
    leave_id = leave_service.create_leave_request(
        store,
        manager_id=me.uid,
        manager_name=me.display_name,
        start_date=start,
        end_date=end,
        reason=payload.reason or "",
        now=utcnow(),
    )
    return {"success": True, "leaveId": leave_id}


@router.get("/leaves/mine")
def my_leaves(store: DocumentStore = Depends(get_store), me: IdentityRecord = Depends(require_roles("manager"))):
    return {
        "items": [
            {
                "id": leave["id"],
                "startDate": isoformat(leave["start_date"]),
                "endDate": isoformat(leave["end_date"]),
                "reason": leave["reason"],
                "status": leave["status"],
                "rejectionReason": leave.get("rejection_reason"),
            }
            for leave in leave_service.list_manager_leaves(store, me.uid)
        ]
    }
