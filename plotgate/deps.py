from fastapi import Depends
from sqlalchemy.orm import Session

from .auth.identity import IdentityProvider, SqlIdentityProvider
from .config import settings
from .db import get_db
from .errors import MaintenanceModeError
from .store.provider import DocumentStore
from .store.sql_provider import SqlDocumentStore


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)


def get_identity(db: Session = Depends(get_db)) -> IdentityProvider:
    return SqlIdentityProvider(db)


def ensure_not_in_maintenance() -> None:
    if settings.maintenance_mode:
        raise MaintenanceModeError()
