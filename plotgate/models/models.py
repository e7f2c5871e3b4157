import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    Integer,
    Float,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def str_pk() -> Mapped[str]:
    return mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))


class AuthAccount(Base):
    """Identity-provider account. The ``users`` profile mirrors it."""
    __tablename__ = "auth_accounts"

    uid: Mapped[str] = str_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False)
    custom_claims: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class UserProfile(Base):
    __tablename__ = "users"

    id: Mapped[str] = str_pk()
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="guest", index=True)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Plot(Base):
    __tablename__ = "plots"

    id: Mapped[str] = str_pk()
    project_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    plot_number: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="available")
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    size: Mapped[Optional[float]] = mapped_column(Float)
    price: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class VisitRequest(Base):
    __tablename__ = "visit_requests"

    id: Mapped[str] = str_pk()
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255))
    user_email: Mapped[Optional[str]] = mapped_column(String(255))
    user_phone: Mapped[Optional[str]] = mapped_column(String(50))
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    project_name: Mapped[Optional[str]] = mapped_column(String(255))
    plot_id: Mapped[Optional[str]] = mapped_column(String(36))
    plot_number: Mapped[Optional[int]] = mapped_column(Integer)
    time_slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot_start: Mapped[Optional[str]] = mapped_column(String(10))
    time_slot_end: Mapped[Optional[str]] = mapped_column(String(10))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    qr_token: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    qr_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_client_booking: Mapped[bool] = mapped_column(Boolean, default=False)
    assigned_manager_id: Mapped[Optional[str]] = mapped_column(String(36))
    approved_by: Mapped[Optional[str]] = mapped_column(String(36))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_visit_requests_status_expiry", "status", "qr_expiry"),
    )


class VisitorQR(Base):
    __tablename__ = "visitor_qrs"

    id: Mapped[str] = str_pk()
    client_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    plot_id: Mapped[str] = mapped_column(String(36), nullable=False)
    visitor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    visitor_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    purpose: Mapped[str] = mapped_column(String(255), nullable=False)
    qr_token: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    expiry_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class AccessLog(Base):
    """Append-only physical entry events."""
    __tablename__ = "access_logs"

    id: Mapped[str] = str_pk()
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # client|visitor|visit
    action: Mapped[str] = mapped_column(String(20), nullable=False, default="entry")
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    visitor_id: Mapped[Optional[str]] = mapped_column(String(36))
    client_id: Mapped[Optional[str]] = mapped_column(String(36))
    visit_id: Mapped[Optional[str]] = mapped_column(String(36))
    plot_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    verified_by: Mapped[Optional[str]] = mapped_column(String(36))
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))


class ManagerTask(Base):
    __tablename__ = "manager_tasks"

    id: Mapped[str] = str_pk()
    manager_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    manager_name: Mapped[Optional[str]] = mapped_column(String(255))
    task_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    project_id: Mapped[Optional[str]] = mapped_column(String(36))
    project_name: Mapped[Optional[str]] = mapped_column(String(255))
    plot_id: Mapped[Optional[str]] = mapped_column(String(36))
    plot_number: Mapped[Optional[int]] = mapped_column(Integer)
    client_id: Mapped[Optional[str]] = mapped_column(String(36))
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    visit_id: Mapped[Optional[str]] = mapped_column(String(36))
    feedback_submitted: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ManagerFeedback(Base):
    __tablename__ = "manager_feedback"

    id: Mapped[str] = str_pk()
    manager_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    manager_name: Mapped[Optional[str]] = mapped_column(String(255))
    task_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    task_type: Mapped[Optional[str]] = mapped_column(String(50))
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[str] = str_pk()
    manager_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    manager_name: Mapped[Optional[str]] = mapped_column(String(255))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    approved_by: Mapped[Optional[str]] = mapped_column(String(36))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
