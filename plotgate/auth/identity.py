from dataclasses import dataclass, field
from typing import Dict, Optional

from passlib.context import CryptContext
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from ..errors import BackendUnavailableError, NotFoundError, ValidationError
from ..models.models import AuthAccount
from ..services.time_rules import utcnow
from ..store.sql_provider import UNAVAILABLE_ERRORS


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass
class IdentityRecord:
    uid: str
    email: str
    display_name: Optional[str] = None
    disabled: bool = False
    custom_claims: Dict[str, str] = field(default_factory=dict)

    @property
    def role(self) -> Optional[str]:
        return self.custom_claims.get("role")


class IdentityProvider:
    def get_user(self, uid: str) -> Optional[IdentityRecord]:
        raise NotImplementedError

    def create_user(self, email: str, password: str, display_name: Optional[str] = None, uid: Optional[str] = None) -> IdentityRecord:
        raise NotImplementedError

    def update_user(self, uid: str, display_name: Optional[str] = None, disabled: Optional[bool] = None, password: Optional[str] = None) -> IdentityRecord:
        raise NotImplementedError

    def delete_user(self, uid: str) -> None:
        raise NotImplementedError

    def set_custom_claims(self, uid: str, claims: Dict[str, str]) -> None:
        raise NotImplementedError

    def verify_password(self, email: str, password: str) -> Optional[IdentityRecord]:
        raise NotImplementedError


def _record(acc: AuthAccount) -> IdentityRecord:
    return IdentityRecord(
        uid=acc.uid,
        email=acc.email,
        display_name=acc.display_name,
        disabled=bool(acc.disabled),
        custom_claims=dict(acc.custom_claims or {}),
    )


class SqlIdentityProvider(IdentityProvider):
    """Accounts kept in the ``auth_accounts`` table."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        try:
            self.db.commit()
        except UNAVAILABLE_ERRORS as exc:
            self.db.rollback()
            raise BackendUnavailableError() from exc
        except sa_exc.SQLAlchemyError:
            self.db.rollback()
            raise

    def _load(self, uid: str) -> Optional[AuthAccount]:
        try:
            return self.db.get(AuthAccount, uid)
        except UNAVAILABLE_ERRORS as exc:
            self.db.rollback()
            raise BackendUnavailableError() from exc

    def _require(self, uid: str) -> AuthAccount:
        acc = self._load(uid)
        if acc is None:
            raise NotFoundError("User not found")
        return acc

    def get_user(self, uid: str) -> Optional[IdentityRecord]:
        acc = self._load(uid)
        return _record(acc) if acc else None

    def create_user(self, email, password, display_name=None, uid=None):
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")
        if self.db.query(AuthAccount).filter(AuthAccount.email == email).first():
            raise ValidationError("Email already registered")
        kwargs = {"uid": uid} if uid else {}
        acc = AuthAccount(
            email=email,
            display_name=display_name,
            password_hash=pwd_context.hash(password),
            disabled=False,
            custom_claims={},
            **kwargs,
        )
        self.db.add(acc)
        self._commit()
        return _record(acc)

    def update_user(self, uid, display_name=None, disabled=None, password=None):
        acc = self._require(uid)
        if display_name is not None:
            acc.display_name = display_name
        if disabled is not None:
            acc.disabled = bool(disabled)
        if password:
            acc.password_hash = pwd_context.hash(password)
        acc.updated_at = utcnow()
        self._commit()
        return _record(acc)

    def delete_user(self, uid):
        acc = self._require(uid)
        self.db.delete(acc)
        self._commit()

    def set_custom_claims(self, uid, claims):
        acc = self._require(uid)
        acc.custom_claims = dict(claims)
        self._commit()

    def verify_password(self, email, password):
        email = (email or "").strip().lower()
        acc = self.db.query(AuthAccount).filter(AuthAccount.email == email).first()
        if acc is None:
            return None
        try:
            ok = pwd_context.verify(password, acc.password_hash)
        except ValueError:
            return None
        return _record(acc) if ok else None
