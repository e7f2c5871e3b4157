import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from ..auth.identity import IdentityProvider
from ..config import settings
from ..deps import get_identity, get_store
from ..services.expiry import sweep_expired_visits
from ..services.time_rules import utcnow
from ..store.provider import DocumentStore


router = APIRouter(tags=["maintenance"])


def _check_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    if not settings.cron_secret:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


@router.get("/check-expired-visits", dependencies=[Depends(_check_cron_secret)])
def check_expired_visits(
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    result = sweep_expired_visits(store, identity, utcnow())
    return {
        "success": True,
        "message": "Processed expired visits" if result.processed or result.failures else "No expired visits found",
        "processedCount": result.count,
        "processedVisits": result.processed,
        "failures": result.failures,
    }
