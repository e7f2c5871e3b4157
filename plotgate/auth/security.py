import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from ..deps import get_identity
from .identity import IdentityProvider, IdentityRecord


http_bearer = HTTPBearer(auto_error=False)

ROLES = ("super_admin", "admin", "manager", "client", "guest")


def create_access_token(uid: str, role: Optional[str] = None, ttl_seconds: Optional[int] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": uid,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds or settings.jwt_ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_account(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    identity: IdentityProvider = Depends(get_identity),
) -> IdentityRecord:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(creds.credentials)
    uid = payload.get("sub")
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    account = identity.get_user(str(uid))
    if account is None or account.disabled:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return account


def has_role(account: IdentityRecord, *roles: str) -> bool:
    allowed = set(roles)
    if "admin" in allowed:
        allowed.add("super_admin")
    return account.role in allowed


def require_roles(*required_roles: str):
    """Require any one of the given roles; super_admin passes wherever admin does."""
    def _dep(account: IdentityRecord = Depends(get_current_account)):
        if not has_role(account, *required_roles):
            raise HTTPException(status_code=403, detail="Forbidden")
        return account

    return _dep
