"""
Account use-cases.

An account lives in two places: the identity provider (login, disabled flag,
role claim) and the ``users`` profile document. Both are written with
sequential calls; when the second call fails after the first landed a
``PartiallyAppliedError`` tells the caller what to reconcile.
"""
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from ..auth.identity import IdentityProvider, IdentityRecord
from ..auth.security import ROLES, create_access_token
from ..errors import BusinessRuleError, NotFoundError, PartiallyAppliedError, ValidationError
from ..store import collections as c
from ..store.provider import DocumentStore
from .time_rules import utcnow


logger = structlog.get_logger(__name__)


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}")
    return role


def get_profile(store: DocumentStore, uid: str) -> Optional[Dict[str, Any]]:
    return store.get(c.USERS, uid)


def create_account(
    store: DocumentStore,
    identity: IdentityProvider,
    *,
    email: str,
    password: str,
    display_name: str,
    role: str,
    phone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> IdentityRecord:
    _check_role(role)
    now = now or utcnow()
    record = identity.create_user(email=email, password=password, display_name=display_name)
    applied = ["identity_created"]
    try:
        identity.set_custom_claims(record.uid, {"role": role})
        applied.append("role_claim_set")
        store.set(
            c.USERS,
            record.uid,
            {
                "email": record.email,
                "display_name": display_name,
                "phone": phone,
                "role": role,
                "disabled": False,
                "created_at": now,
                "updated_at": now,
            },
        )
    except Exception as exc:
        failed = "profile_write" if "role_claim_set" in applied else "role_claim"
        logger.error("account_create_partial", uid=record.uid, applied=applied, failed=failed, error=str(exc))
        raise PartiallyAppliedError("Account was only partially created", applied, failed, exc) from exc
    logger.info("account_created", uid=record.uid, role=role)
    record.custom_claims = {"role": role}
    return record


def update_account(
    store: DocumentStore,
    identity: IdentityProvider,
    uid: str,
    *,
    display_name: Optional[str] = None,
    role: Optional[str] = None,
    disabled: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    if role is not None:
        _check_role(role)
    now = now or utcnow()
    if store.get(c.USERS, uid) is None:
        raise NotFoundError("User not found")

    identity.update_user(uid, display_name=display_name, disabled=disabled)
    applied = ["identity_updated"]
    try:
        if role is not None:
            identity.set_custom_claims(uid, {"role": role})
            applied.append("role_claim_set")
        changes: Dict[str, Any] = {"updated_at": now}
        if display_name:
            changes["display_name"] = display_name
        if role:
            changes["role"] = role
        if disabled is not None:
            changes["disabled"] = bool(disabled)
        store.update(c.USERS, uid, changes)
    except Exception as exc:
        failed = "profile_write" if role is None or "role_claim_set" in applied else "role_claim"
        logger.error("account_update_partial", uid=uid, applied=applied, failed=failed, error=str(exc))
        raise PartiallyAppliedError("Account was only partially updated", applied, failed, exc) from exc
    return store.get(c.USERS, uid)


def deactivate_account(store: DocumentStore, identity: IdentityProvider, uid: str, now: Optional[datetime] = None) -> None:
    """
    Disable an account in both places: profile first, then identity provider.

    Raises:
        NotFoundError: no profile document for ``uid``
        PartiallyAppliedError: the profile is disabled but the identity call failed
    """
    now = now or utcnow()
    store.update(c.USERS, uid, {"disabled": True, "updated_at": now})
    try:
        identity.update_user(uid, disabled=True)
    except Exception as exc:
        logger.error("account_deactivate_partial", uid=uid, error=str(exc))
        raise PartiallyAppliedError(
            "Profile disabled but identity account is still enabled",
            applied=["profile_disabled"],
            failed="identity_disable",
            cause=exc,
        ) from exc
    logger.info("account_deactivated", uid=uid)


def delete_account(store: DocumentStore, identity: IdentityProvider, uid: str) -> None:
    identity.delete_user(uid)
    try:
        store.delete(c.USERS, uid)
    except Exception as exc:
        raise PartiallyAppliedError("Identity deleted but profile remains", ["identity_deleted"], "profile_delete", exc) from exc


def login(identity: IdentityProvider, email: str, password: str) -> str:
    record = identity.verify_password(email, password)
    if record is None:
        raise BusinessRuleError("Invalid email or password", status_code=401)
    if record.disabled:
        raise BusinessRuleError("Account disabled", status_code=403)
    return create_access_token(record.uid, record.role)
