from datetime import date, datetime
from typing import Any, Dict, List, Optional

import structlog

from ..errors import NotFoundError, ValidationError
from ..store import collections as c
from ..store.provider import DocumentStore


logger = structlog.get_logger(__name__)


def create_leave_request(
    store: DocumentStore,
    *,
    manager_id: str,
    manager_name: Optional[str],
    start_date: date,
    end_date: date,
    reason: str,
    now: datetime,
) -> str:
    if not reason or not reason.strip():
        raise ValidationError("Reason is required")
    if end_date < start_date:
        raise ValidationError("End date must not be before start date")
    return store.add(
        c.LEAVE_REQUESTS,
        {
            "manager_id": manager_id,
            "manager_name": manager_name,
            "start_date": start_date,
            "end_date": end_date,
            "reason": reason.strip(),
            "status": "pending",
            "created_at": now,
            "updated_at": now,
        },
    )


def approve_or_reject_leave(
    store: DocumentStore,
    leave_id: str,
    *,
    approved: bool,
    approved_by: str,
    now: datetime,
    reason: Optional[str] = None,
) -> str:
    if store.get(c.LEAVE_REQUESTS, leave_id) is None:
        raise NotFoundError("Leave request not found")

    status = "approved" if approved else "rejected"
    changes: Dict[str, Any] = {
        "status": status,
        "updated_at": now,
        "approved_by": approved_by,
        "approved_at": now,
    }
    if not approved and reason:
        changes["rejection_reason"] = reason
    store.update(c.LEAVE_REQUESTS, leave_id, changes)
    logger.info("leave_decided", leave_id=leave_id, status=status, approved_by=approved_by)
    return status


def list_manager_leaves(store: DocumentStore, manager_id: str) -> List[Dict[str, Any]]:
    return store.query(c.LEAVE_REQUESTS, [("manager_id", "==", manager_id)], order_by="created_at", descending=True)
