"""
QR token issuance for approved visits and client-issued visitor passes.
"""
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

import qrcode
import structlog

from ..config import settings
from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..store import collections as c
from ..store.provider import DocumentStore
from .time_rules import end_of_day, end_of_local_today


logger = structlog.get_logger(__name__)

CLIENT_QR_PREFIX = "client"
CLIENT_QR_PLOT = "plot"


@dataclass
class IssuedVisitToken:
    token: str
    expiry: datetime
    already_issued: bool = False


def generate_visit_token() -> str:
    return str(uuid.uuid4())


def generate_visitor_token() -> str:
    return secrets.token_urlsafe(24)


def issue_visit_qr_token(store: DocumentStore, visit_id: str, now: datetime) -> IssuedVisitToken:
    """
    Approve a visit and attach its QR token.

    Retrying on an approved visit returns the stored token. Two concurrent
    first-time calls can both mint a token; the later write wins.
    """
    visit = store.get(c.VISIT_REQUESTS, visit_id)
    if visit is None:
        raise NotFoundError("Visit not found")

    if visit["status"] == "approved" and visit.get("qr_token"):
        return IssuedVisitToken(visit["qr_token"], visit["qr_expiry"], already_issued=True)
    if visit["status"] not in ("pending", "approved"):
        raise ValidationError(f"Cannot issue a QR code for a {visit['status']} visit")

    token = generate_visit_token()
    expiry = end_of_day(visit["time_slot_date"])
    previous = visit.get("qr_expiry")
    if previous is not None and previous > expiry:
        expiry = previous
    store.update(
        c.VISIT_REQUESTS,
        visit_id,
        {"status": "approved", "qr_token": token, "qr_expiry": expiry, "updated_at": now},
    )
    logger.info("visit_qr_issued", visit_id=visit_id, expiry=expiry.isoformat())
    return IssuedVisitToken(token, expiry)


def issue_visitor_qr(
    store: DocumentStore,
    *,
    client_id: str,
    plot_id: str,
    visitor_name: str,
    visitor_phone: str,
    purpose: str,
    now: datetime,
) -> Dict[str, Any]:
    """
    Create a single-day visitor pass for a plot the client owns.

    Earlier active passes of the same client are left untouched.
    """
    if not (plot_id and visitor_name and visitor_phone and purpose):
        raise ValidationError("Please fill in all required fields")
    plot = store.get(c.PLOTS, plot_id)
    if plot is None or plot.get("owner_id") != client_id:
        raise BusinessRuleError("User does not own this plot")

    doc = {
        "client_id": client_id,
        "plot_id": plot_id,
        "visitor_name": visitor_name.strip(),
        "visitor_phone": visitor_phone.strip(),
        "purpose": purpose.strip(),
        "qr_token": generate_visitor_token(),
        "status": "active",
        "expiry_date": end_of_local_today(now),
        "created_at": now,
        "updated_at": now,
    }
    doc["id"] = store.add(c.VISITOR_QRS, doc)
    logger.info("visitor_qr_issued", visitor_qr_id=doc["id"], client_id=client_id, plot_id=plot_id)
    return doc


def get_active_visitor_qr(store: DocumentStore, client_id: str, now: datetime) -> Optional[Dict[str, Any]]:
    rows = store.query(
        c.VISITOR_QRS,
        [("client_id", "==", client_id), ("status", "==", "active"), ("expiry_date", ">", now)],
        order_by="created_at",
        descending=True,
        limit=1,
    )
    return rows[0] if rows else None


def list_visitor_qr_history(store: DocumentStore, client_id: str) -> List[Dict[str, Any]]:
    return store.query(c.VISITOR_QRS, [("client_id", "==", client_id)], order_by="created_at", descending=True)


def client_qr_payload(user_id: str, plot_id: str) -> str:
    return f"{CLIENT_QR_PREFIX}:{user_id}:{CLIENT_QR_PLOT}:{plot_id}"


def client_plot_qr(store: DocumentStore, user_id: str, plot_id: str) -> str:
    plot = store.get(c.PLOTS, plot_id)
    if plot is None or plot.get("owner_id") != user_id:
        raise BusinessRuleError("User does not own this plot")
    return client_qr_payload(user_id, plot_id)


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=settings.qr_box_size,
        border=settings.qr_border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
