"""
Visit request lifecycle.

    pending -> approved | rejected
    approved -> checked-in          (gate check-in)
    approved | checked-in -> completed   (expiry sweep or manual close)
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import structlog

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..store import collections as c
from ..store.provider import DocumentStore
from .access_log import log_access
from .qr_tokens import issue_visit_qr_token
from .task_assignment import assign_task
from .time_rules import parse_date


logger = structlog.get_logger(__name__)

VISIT_STATUSES = ("pending", "approved", "rejected", "checked-in", "completed")
LIVE_STATUSES = ("approved", "checked-in")
TERMINAL_STATUSES = ("rejected", "completed")


def get_visit(store: DocumentStore, visit_id: str) -> Dict[str, Any]:
    visit = store.get(c.VISIT_REQUESTS, visit_id)
    if visit is None:
        raise NotFoundError("Visit not found")
    return visit


def create_visit_request(store: DocumentStore, data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    required = ("user_id", "project_id", "time_slot_date")
    if any(not data.get(name) for name in required):
        raise ValidationError("Missing required visit fields")
    slot_date = data["time_slot_date"]
    if isinstance(slot_date, str):
        try:
            slot_date = parse_date(slot_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    elif isinstance(slot_date, datetime):
        slot_date = slot_date.date()
    elif not isinstance(slot_date, date):
        raise ValidationError("Invalid visit date")

    doc = {
        "user_id": data["user_id"],
        "user_name": data.get("user_name"),
        "user_email": data.get("user_email"),
        "user_phone": data.get("user_phone"),
        "project_id": data["project_id"],
        "project_name": data.get("project_name"),
        "plot_id": data.get("plot_id"),
        "plot_number": data.get("plot_number"),
        "time_slot_date": slot_date,
        "time_slot_start": data.get("time_slot_start"),
        "time_slot_end": data.get("time_slot_end"),
        "notes": data.get("notes"),
        "is_client_booking": bool(data.get("is_client_booking")),
        "status": "pending",
        "created_at": now,
        "updated_at": now,
    }
    doc["id"] = store.add(c.VISIT_REQUESTS, doc)
    logger.info("visit_created", visit_id=doc["id"], user_id=doc["user_id"], date=slot_date.isoformat())
    return doc


def approve_or_reject_visit(
    store: DocumentStore,
    visit_id: str,
    *,
    approved: bool,
    approver_id: str,
    now: datetime,
    reason: Optional[str] = None,
    assign_manager: bool = False,
) -> Dict[str, Any]:
    """
    Decide a pending visit.

    Approval issues the visit QR token (idempotent for an already approved
    visit) and can hand a site-visit task to the next manager. Rejection
    records the optional reason.
    """
    visit = get_visit(store, visit_id)
    if visit["status"] != "pending" and not (approved and visit["status"] == "approved"):
        raise ValidationError(f"Visit is already {visit['status']}")

    if not approved:
        changes = {
            "status": "rejected",
            "approved_by": approver_id,
            "approved_at": now,
            "updated_at": now,
        }
        if reason:
            changes["rejection_reason"] = reason
        store.update(c.VISIT_REQUESTS, visit_id, changes)
        logger.info("visit_rejected", visit_id=visit_id, approver_id=approver_id)
        return {"status": "rejected", "qr_token": None, "qr_expiry": None}

    issued = issue_visit_qr_token(store, visit_id, now)
    changes = {"approved_by": approver_id, "approved_at": now, "updated_at": now}

    result: Dict[str, Any] = {"status": "approved", "qr_token": issued.token, "qr_expiry": issued.expiry}
    if assign_manager and not issued.already_issued:
        try:
            assignment = _assign_site_visit(store, visit, now)
        except BusinessRuleError as exc:
            logger.warning("site_visit_task_skipped", visit_id=visit_id, error=exc.message)
            result["task_error"] = exc.message
        else:
            changes["assigned_manager_id"] = assignment.manager_id
            result["task_id"] = assignment.task_id
            result["assigned_manager_id"] = assignment.manager_id

    if not issued.already_issued:
        store.update(c.VISIT_REQUESTS, visit_id, changes)
    logger.info("visit_approved", visit_id=visit_id, approver_id=approver_id, reissued=issued.already_issued)
    return result


def _assign_site_visit(store: DocumentStore, visit: Dict[str, Any], now: datetime):
    return assign_task(
        store,
        {
            "task_type": "site_visit",
            "title": f"Site Visit: {visit.get('project_name') or visit['project_id']}",
            "description": _site_visit_description(visit),
            "priority": "medium",
            "due_date": datetime.combine(visit["time_slot_date"], datetime.min.time()),
            "project_id": visit["project_id"],
            "project_name": visit.get("project_name"),
            "plot_id": visit.get("plot_id"),
            "plot_number": visit.get("plot_number"),
            "client_id": visit["user_id"],
            "client_name": visit.get("user_name"),
            "visit_id": visit["id"],
        },
        now,
    )


def _site_visit_description(visit: Dict[str, Any]) -> str:
    where = visit.get("project_name") or visit["project_id"]
    if visit.get("plot_number"):
        where = f"{where}, Plot #{visit['plot_number']}"
    when = visit["time_slot_date"].isoformat()
    if visit.get("time_slot_start"):
        when = f"{when} at {visit['time_slot_start']}"
    return f"Guide {visit.get('user_name') or 'the visitor'} for a site visit at {where} on {when}."


def check_in_visit(store: DocumentStore, token: str, now: datetime, verified_by: Optional[str] = None) -> Dict[str, Any]:
    if not token:
        raise ValidationError("QR token is required")
    rows = store.query(
        c.VISIT_REQUESTS,
        [("qr_token", "==", token), ("status", "==", "approved"), ("qr_expiry", ">", now)],
        limit=1,
    )
    if not rows:
        raise BusinessRuleError("Invalid or expired visit QR code")
    visit = rows[0]

    log_access(
        store,
        "visit",
        timestamp=now,
        user_id=visit["user_id"],
        visit_id=visit["id"],
        plot_id=visit.get("plot_id"),
        verified_by=verified_by,
    )
    changes = {"status": "checked-in", "checked_in_at": now, "updated_at": now}
    store.update(c.VISIT_REQUESTS, visit["id"], changes)
    visit.update(changes)
    logger.info("visit_checked_in", visit_id=visit["id"], user_id=visit["user_id"])
    return visit


def close_visit(store: DocumentStore, visit_id: str, now: datetime) -> Dict[str, Any]:
    visit = get_visit(store, visit_id)
    if visit["status"] not in LIVE_STATUSES:
        raise ValidationError(f"Cannot close a {visit['status']} visit")
    changes = {"status": "completed", "qr_token": None, "completed_at": now, "updated_at": now}
    store.update(c.VISIT_REQUESTS, visit_id, changes)
    visit.update(changes)
    return visit


def list_user_visits(store: DocumentStore, user_id: str) -> List[Dict[str, Any]]:
    return store.query(c.VISIT_REQUESTS, [("user_id", "==", user_id)], order_by="created_at", descending=True)


def has_live_visit(store: DocumentStore, user_id: str, now: datetime, exclude_visit_id: Optional[str] = None) -> bool:
    rows = store.query(
        c.VISIT_REQUESTS,
        [("user_id", "==", user_id), ("status", "in", LIVE_STATUSES), ("qr_expiry", ">", now)],
        limit=2,
    )
    return any(row["id"] != exclude_visit_id for row in rows)
