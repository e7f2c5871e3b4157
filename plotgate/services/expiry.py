"""
Expiry sweep for visit QR windows.

Finalizes approved/checked-in visits whose QR expiry has passed and disables
guest accounts that no longer have a live visit. Each visit is processed on
its own: a failure is recorded and the sweep moves on.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

import structlog

from ..auth.identity import IdentityProvider
from ..errors import PartiallyAppliedError
from ..store import collections as c
from ..store.provider import DocumentStore
from .accounts import deactivate_account
from .visits import LIVE_STATUSES, has_live_visit


logger = structlog.get_logger(__name__)

ACTION_ACCOUNT_DISABLED = "account_disabled"
ACTION_VISIT_COMPLETED = "visit_completed"


@dataclass
class SweepResult:
    processed: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.processed)


def find_expired_visits(store: DocumentStore, now: datetime) -> List[Dict[str, Any]]:
    return store.query(
        c.VISIT_REQUESTS,
        [("status", "in", LIVE_STATUSES), ("qr_expiry", "<", now)],
        order_by="qr_expiry",
    )


def _finalize_visit(store: DocumentStore, identity: IdentityProvider, visit: Dict[str, Any], now: datetime) -> str:
    """
    Guest deactivation runs before the completion write, so a visit whose
    account step failed still matches the next sweep and is retried.
    """
    user_id = visit["user_id"]
    action = ACTION_VISIT_COMPLETED
    profile = store.get(c.USERS, user_id)
    if profile is not None and profile.get("role") == "guest":
        if not has_live_visit(store, user_id, now, exclude_visit_id=visit["id"]):
            deactivate_account(store, identity, user_id, now)
            action = ACTION_ACCOUNT_DISABLED

    store.update(
        c.VISIT_REQUESTS,
        visit["id"],
        {"status": "completed", "qr_token": None, "completed_at": now, "updated_at": now},
    )
    return action


def sweep_expired_visits(store: DocumentStore, identity: IdentityProvider, now: datetime) -> SweepResult:
    result = SweepResult()
    expired = find_expired_visits(store, now)
    logger.info("sweep_started", now=now.isoformat(), candidates=len(expired))

    for visit in expired:
        entry = {"visitId": visit["id"], "userId": visit["user_id"]}
        try:
            action = _finalize_visit(store, identity, visit, now)
        except PartiallyAppliedError as exc:
            logger.error("sweep_item_partial", visit_id=visit["id"], applied=exc.applied, failed=exc.failed)
            result.failures.append({**entry, "error": exc.message, "applied": exc.applied, "failed": exc.failed})
            continue
        except Exception as exc:
            logger.exception("sweep_item_failed", visit_id=visit["id"])
            result.failures.append({**entry, "error": str(exc)})
            continue
        result.processed.append({**entry, "action": action})

    logger.info("sweep_finished", processed=result.count, failed=len(result.failures))
    return result
