"""
Gate-side QR verification.

Client QR codes are permanent ``client:<userId>:plot:<plotId>`` strings checked
against live ownership. Visitor QR codes are stored single-day passes that are
consumed on first use.
"""
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from ..auth.identity import IdentityProvider
from ..errors import BusinessRuleError, ValidationError
from ..store import collections as c
from ..store.provider import DocumentStore
from .access_log import log_access
from .qr_tokens import CLIENT_QR_PLOT, CLIENT_QR_PREFIX


logger = structlog.get_logger(__name__)

QR_TYPES = ("client", "visitor")


def parse_client_qr(token: str):
    parts = token.split(":")
    if len(parts) != 4 or parts[0] != CLIENT_QR_PREFIX or parts[2] != CLIENT_QR_PLOT or not parts[1] or not parts[3]:
        raise ValidationError("Invalid client QR format")
    return parts[1], parts[3]


def verify_client_qr(
    store: DocumentStore,
    identity: IdentityProvider,
    token: str,
    now: datetime,
    verified_by: Optional[str] = None,
) -> Dict[str, Any]:
    user_id, plot_id = parse_client_qr(token)

    account = identity.get_user(user_id)
    if account is None or account.disabled:
        raise BusinessRuleError("Invalid or disabled user")

    plot = store.get(c.PLOTS, plot_id)
    if plot is None or plot.get("owner_id") != user_id:
        raise BusinessRuleError("User does not own this plot")

    log_access(store, "client", timestamp=now, user_id=user_id, plot_id=plot_id, verified_by=verified_by)
    logger.info("qr_verified", type="client", user_id=user_id, plot_id=plot_id)
    return {
        "user": {"name": account.display_name, "email": account.email},
        "plot": {"id": plot_id, "number": plot.get("plot_number")},
    }


def verify_visitor_qr(
    store: DocumentStore,
    token: str,
    now: datetime,
    verified_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Consume an active, unexpired visitor pass.

    Wrong token, already used and expired all fail the same way. The read and
    the ``used`` write are separate, so two simultaneous scans can both pass.
    """
    rows = store.query(
        c.VISITOR_QRS,
        [("qr_token", "==", token), ("status", "==", "active"), ("expiry_date", ">", now)],
        limit=1,
    )
    if not rows:
        raise BusinessRuleError("Invalid or expired visitor QR code")
    pass_doc = rows[0]

    log_access(
        store,
        "visitor",
        timestamp=now,
        visitor_id=pass_doc["id"],
        client_id=pass_doc["client_id"],
        plot_id=pass_doc["plot_id"],
        verified_by=verified_by,
    )
    store.update(c.VISITOR_QRS, pass_doc["id"], {"status": "used", "used_at": now, "updated_at": now})
    logger.info("qr_verified", type="visitor", visitor_qr_id=pass_doc["id"], plot_id=pass_doc["plot_id"])
    return {
        "visitor": {
            "name": pass_doc["visitor_name"],
            "phone": pass_doc["visitor_phone"],
            "purpose": pass_doc["purpose"],
        },
        "plot": {"id": pass_doc["plot_id"]},
    }


def verify_qr(
    store: DocumentStore,
    identity: IdentityProvider,
    token: str,
    qr_type: str,
    now: datetime,
    verified_by: Optional[str] = None,
) -> Dict[str, Any]:
    if not token or not qr_type:
        raise ValidationError("QR token and type are required")
    if qr_type == "client":
        return verify_client_qr(store, identity, token, now, verified_by)
    if qr_type == "visitor":
        return verify_visitor_qr(store, token, now, verified_by)
    raise ValidationError("Invalid QR type")
