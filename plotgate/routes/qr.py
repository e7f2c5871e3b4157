from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ..auth.identity import IdentityProvider, IdentityRecord
from ..auth.security import require_roles
from ..deps import ensure_not_in_maintenance, get_identity, get_store
from ..errors import ValidationError
from ..schemas.qr import VerifyQrRequest, VisitorQrCreateRequest
from ..services import qr_tokens
from ..services.access_log import get_access_logs, verify_integrity
from ..services.qr_verification import verify_qr as verify_qr_token
from ..services.time_rules import isoformat, utcnow
from ..store.provider import DocumentStore


router = APIRouter(tags=["qr"])


def _serialize_visitor_qr(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    return {
        "id": doc["id"],
        "clientId": doc["client_id"],
        "plotId": doc["plot_id"],
        "visitorName": doc["visitor_name"],
        "visitorPhone": doc["visitor_phone"],
        "purpose": doc["purpose"],
        "qrCodeToken": doc["qr_token"],
        "status": doc["status"],
        "expiryDate": isoformat(doc["expiry_date"]),
        "usedAt": isoformat(doc.get("used_at")),
        "createdAt": isoformat(doc.get("created_at")),
    }


@router.post("/verify-qr", dependencies=[Depends(ensure_not_in_maintenance)])
def verify_qr(
    payload: VerifyQrRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    me: IdentityRecord = Depends(require_roles("manager", "admin")),
):
    result = verify_qr_token(store, identity, payload.qr_token or "", payload.type or "", utcnow(), verified_by=me.uid)
    return {"success": True, **result}


@router.post("/visitor-qr")
def create_visitor_qr(
    payload: VisitorQrCreateRequest,
    store: DocumentStore = Depends(get_store),
    me: IdentityRecord = Depends(require_roles("client")),
):
    doc = qr_tokens.issue_visitor_qr(
        store,
        client_id=me.uid,
        plot_id=payload.plot_id or "",
        visitor_name=payload.visitor_name or "",
        visitor_phone=payload.visitor_phone or "",
        purpose=payload.purpose or "",
        now=utcnow(),
    )
    return {
        "success": True,
        "id": doc["id"],
        "qrCodeToken": doc["qr_token"],
        "expiryDate": isoformat(doc["expiry_date"]),
    }


@router.get("/visitor-qr/active")
def active_visitor_qr(store: DocumentStore = Depends(get_store), me: IdentityRecord = Depends(require_roles("client"))):
    return {"visitorQr": _serialize_visitor_qr(qr_tokens.get_active_visitor_qr(store, me.uid, utcnow()))}


@router.get("/visitor-qr/history")
def visitor_qr_history(store: DocumentStore = Depends(get_store), me: IdentityRecord = Depends(require_roles("client"))):
    return {"items": [_serialize_visitor_qr(d) for d in qr_tokens.list_visitor_qr_history(store, me.uid)]}


@router.get("/client-qr/{plot_id}")
def client_qr(plot_id: str, store: DocumentStore = Depends(get_store), me: IdentityRecord = Depends(require_roles("client"))):
    return {"qrPayload": qr_tokens.client_plot_qr(store, me.uid, plot_id)}


@router.get("/qr.png")
def qr_png(data: str = Query("", max_length=512)):
    if not data:
        raise ValidationError("QR data is required")
    return Response(content=qr_tokens.render_qr_png(data), media_type="image/png")


@router.get("/access-logs")
def access_logs(
    plot_id: Optional[str] = Query(default=None, alias="plotId"),
    type: Optional[str] = None,
    limit: int = 100,
    store: DocumentStore = Depends(get_store),
    _=Depends(require_roles("manager", "admin")),
):
    rows = get_access_logs(store, plot_id=plot_id, access_type=type, limit=min(max(1, limit), 500))
    return {
        "items": [
            {
                "id": row["id"],
                "type": row["type"],
                "action": row["action"],
                "userId": row.get("user_id"),
                "visitorId": row.get("visitor_id"),
                "clientId": row.get("client_id"),
                "visitId": row.get("visit_id"),
                "plotId": row.get("plot_id"),
                "verifiedBy": row.get("verified_by"),
                "timestamp": isoformat(row["timestamp"]),
                "intact": verify_integrity(row),
            }
            for row in rows
        ]
    }
