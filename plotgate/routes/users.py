from typing import Optional

from fastapi import APIRouter, Depends

from ..auth.identity import IdentityProvider
from ..auth.security import require_roles
from ..deps import get_identity, get_store
from ..errors import NotFoundError
from ..schemas.auth import CreateUserRequest, UpdateUserRequest
from ..services import accounts
from ..services.time_rules import isoformat
from ..store import collections as c
from ..store.provider import DocumentStore


router = APIRouter(prefix="/users", tags=["users"])


def _serialize_profile(uid: str, profile: dict) -> dict:
    return {
        "id": uid,
        "email": profile.get("email"),
        "displayName": profile.get("display_name"),
        "phone": profile.get("phone"),
        "role": profile.get("role"),
        "disabled": bool(profile.get("disabled")),
        "createdAt": isoformat(profile.get("created_at")),
        "updatedAt": isoformat(profile.get("updated_at")),
    }


@router.get("")
def list_users(
    role: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    _=Depends(require_roles("admin")),
):
    filters = [("role", "==", role)] if role else []
    rows = store.query(c.USERS, filters, order_by="created_at", descending=True)
    return {"items": [_serialize_profile(r["id"], r) for r in rows]}


@router.post("")
def create_user(
    payload: CreateUserRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    _=Depends(require_roles("admin")),
):
    record = accounts.create_account(
        store,
        identity,
        email=payload.email,
        password=payload.password,
        display_name=payload.display_name,
        role=payload.role,
        phone=payload.phone,
    )
    return {"success": True, "uid": record.uid}


@router.patch("/{uid}")
def update_user(
    uid: str,
    payload: UpdateUserRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    _=Depends(require_roles("admin")),
):
    profile = accounts.update_account(
        store,
        identity,
        uid,
        display_name=payload.display_name,
        role=payload.role,
        disabled=payload.disabled,
    )
    return _serialize_profile(uid, profile)


@router.post("/{uid}/disable")
def disable_user(
    uid: str,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    _=Depends(require_roles("admin")),
):
    accounts.deactivate_account(store, identity, uid)
    return {"success": True}


@router.delete("/{uid}")
def delete_user(
    uid: str,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    _=Depends(require_roles("admin")),
):
    if accounts.get_profile(store, uid) is None:
        raise NotFoundError("User not found")
    accounts.delete_account(store, identity, uid)
    return {"success": True}
