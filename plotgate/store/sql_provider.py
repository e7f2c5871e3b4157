"""
SQLAlchemy-backed document store.

Each collection maps onto one ORM table and documents are plain dicts keyed by
column name. Every write commits on its own; there are no multi-document
transactions.
"""
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence, Type

import structlog
from sqlalchemy import inspect
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from ..errors import BackendUnavailableError, NotFoundError
from ..models.models import (
    AccessLog,
    LeaveRequest,
    ManagerFeedback,
    ManagerTask,
    Plot,
    UserProfile,
    VisitorQR,
    VisitRequest,
)
from . import collections as c
from .provider import DocumentStore, Filter, FILTER_OPERATORS


logger = structlog.get_logger(__name__)

COLLECTION_MODELS: Dict[str, Type] = {
    c.USERS: UserProfile,
    c.PLOTS: Plot,
    c.VISIT_REQUESTS: VisitRequest,
    c.VISITOR_QRS: VisitorQR,
    c.ACCESS_LOGS: AccessLog,
    c.MANAGER_TASKS: ManagerTask,
    c.MANAGER_FEEDBACK: ManagerFeedback,
    c.LEAVE_REQUESTS: LeaveRequest,
}

# Faults of the database service itself, as opposed to bad statements.
UNAVAILABLE_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)


def to_document(obj: Any) -> Dict[str, Any]:
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


class SqlDocumentStore(DocumentStore):
    def __init__(self, db: Session):
        self.db = db

    def _model(self, collection: str) -> Type:
        model = COLLECTION_MODELS.get(collection)
        if model is None:
            raise ValueError(f"Unknown collection: {collection}")
        return model

    def _column(self, model: Type, field: str):
        columns = inspect(model).columns
        if field not in columns:
            raise ValueError(f"Unknown field {field!r} for {model.__tablename__}")
        return getattr(model, field)

    def _check_fields(self, model: Type, data: Dict[str, Any]) -> None:
        for key in data:
            self._column(model, key)

    @contextmanager
    def _guard(self, op: str, collection: str):
        try:
            yield
        except UNAVAILABLE_ERRORS as exc:
            self.db.rollback()
            logger.warning("store_unavailable", op=op, collection=collection, error=str(exc))
            raise BackendUnavailableError() from exc
        except sa_exc.SQLAlchemyError:
            self.db.rollback()
            raise

    def _condition(self, model: Type, flt: Filter):
        field, op, value = flt
        if op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        col = self._column(model, field)
        if op == "==":
            return col.is_(None) if value is None else col == value
        if op == "!=":
            return col.is_not(None) if value is None else col != value
        if op == "<":
            return col < value
        if op == "<=":
            return col <= value
        if op == ">":
            return col > value
        if op == ">=":
            return col >= value
        return col.in_(list(value))

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        model = self._model(collection)
        with self._guard("get", collection):
            obj = self.db.get(model, doc_id)
            return to_document(obj) if obj is not None else None

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        model = self._model(collection)
        q = self.db.query(model)
        for flt in filters:
            q = q.filter(self._condition(model, flt))
        if order_by:
            col = self._column(model, order_by)
            q = q.order_by(col.desc() if descending else col.asc())
        if limit is not None:
            q = q.limit(limit)
        with self._guard("query", collection):
            return [to_document(row) for row in q.all()]

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        model = self._model(collection)
        self._check_fields(model, data)
        obj = model(**data)
        with self._guard("add", collection):
            self.db.add(obj)
            self.db.commit()
            return obj.id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        model = self._model(collection)
        payload = {k: v for k, v in data.items() if k != "id"}
        self._check_fields(model, payload)
        with self._guard("set", collection):
            existing = self.db.get(model, doc_id)
            if existing is not None:
                self.db.delete(existing)
                self.db.flush()
            self.db.add(model(id=doc_id, **payload))
            self.db.commit()

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        model = self._model(collection)
        self._check_fields(model, data)
        with self._guard("update", collection):
            obj = self.db.get(model, doc_id)
            if obj is None:
                raise NotFoundError(f"{collection}/{doc_id} not found")
            for key, value in data.items():
                if key == "id":
                    continue
                setattr(obj, key, value)
            self.db.commit()

    def delete(self, collection: str, doc_id: str) -> None:
        model = self._model(collection)
        with self._guard("delete", collection):
            obj = self.db.get(model, doc_id)
            if obj is not None:
                self.db.delete(obj)
                self.db.commit()
