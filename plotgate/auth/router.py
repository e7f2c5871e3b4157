from fastapi import APIRouter, Depends

from ..deps import get_identity, get_store
from ..schemas.auth import GuestRegisterRequest, LoginRequest, TokenResponse
from ..services import accounts
from ..services.time_rules import isoformat
from ..store.provider import DocumentStore
from .identity import IdentityProvider, IdentityRecord
from .security import get_current_account


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, identity: IdentityProvider = Depends(get_identity)):
    return TokenResponse(access_token=accounts.login(identity, req.email, req.password))


@router.get("/me")
def me(store: DocumentStore = Depends(get_store), account: IdentityRecord = Depends(get_current_account)):
    profile = accounts.get_profile(store, account.uid) or {}
    return {
        "uid": account.uid,
        "email": account.email,
        "displayName": profile.get("display_name") or account.display_name,
        "phone": profile.get("phone"),
        "role": account.role,
        "disabled": account.disabled,
        "createdAt": isoformat(profile.get("created_at")),
    }


@router.post("/register-guest")
def register_guest(
    payload: GuestRegisterRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    record = accounts.create_account(
        store,
        identity,
        email=payload.email,
        password=payload.password,
        display_name=payload.display_name,
        role="guest",
        phone=payload.phone,
    )
    return {"success": True, "uid": record.uid}
