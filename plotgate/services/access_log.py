"""
Access logging service.
Append-only gate entry log with integrity hashing.
"""
import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config import settings
from ..store import collections as c
from ..store.provider import DocumentStore


ACCESS_TYPES = ("client", "visitor", "visit")


def _integrity_hash(entry: Dict[str, Any], secret: str) -> str:
    canonical = {k: v for k, v in entry.items() if v is not None}
    canonical_json = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def log_access(
    store: DocumentStore,
    access_type: str,
    *,
    timestamp: datetime,
    plot_id: Optional[str] = None,
    user_id: Optional[str] = None,
    visitor_id: Optional[str] = None,
    client_id: Optional[str] = None,
    visit_id: Optional[str] = None,
    verified_by: Optional[str] = None,
    action: str = "entry",
    integrity_secret: Optional[str] = None,
) -> str:
    """
    Append an access event.

    Args:
        store: Document store
        access_type: client|visitor|visit
        timestamp: When the gate accepted the credential (naive UTC)
        plot_id: Plot the entry is for, if any
        user_id: Account that entered (client and visit entries)
        visitor_id: VisitorQR id (visitor entries)
        client_id: Issuing client (visitor entries)
        visit_id: VisitRequest id (visit entries)
        verified_by: Account that scanned the code
        action: Only "entry" is produced today
        integrity_secret: Secret for the integrity hash (defaults to JWT_SECRET)

    Returns:
        Id of the created entry
    """
    if access_type not in ACCESS_TYPES:
        raise ValueError(f"Unknown access type: {access_type}")
    entry = {
        "type": access_type,
        "action": action,
        "user_id": user_id,
        "visitor_id": visitor_id,
        "client_id": client_id,
        "visit_id": visit_id,
        "plot_id": plot_id,
        "verified_by": verified_by,
        "timestamp": timestamp,
    }
    entry["integrity_hash"] = _integrity_hash(entry, integrity_secret or settings.jwt_secret)
    return store.add(c.ACCESS_LOGS, entry)


def verify_integrity(entry: Dict[str, Any], integrity_secret: Optional[str] = None) -> bool:
    fields = {k: v for k, v in entry.items() if k not in ("id", "integrity_hash")}
    return entry.get("integrity_hash") == _integrity_hash(fields, integrity_secret or settings.jwt_secret)


def get_access_logs(
    store: DocumentStore,
    plot_id: Optional[str] = None,
    access_type: Optional[str] = None,
    limit: int = 100,
) -> List[Dict[str, Any]]:
    filters = []
    if plot_id:
        filters.append(("plot_id", "==", plot_id))
    if access_type:
        filters.append(("type", "==", access_type))
    return store.query(c.ACCESS_LOGS, filters, order_by="timestamp", descending=True, limit=limit)
