"""Database models."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone
from typing import Any

from flask_login import UserMixin
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import check_password_hash, generate_password_hash

from fichajes.extensions import db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class ClockEventType(str, enum.Enum):
    ENTRADA = "ENTRADA"
    SALIDA = "SALIDA"

    @property
    def complement(self) -> "ClockEventType":
        return ClockEventType.SALIDA if self is ClockEventType.ENTRADA else ClockEventType.ENTRADA


class LeaveType(str, enum.Enum):
    VACATION = "VACATION"
    SICK_LEAVE = "SICK_LEAVE"
    PERSONAL = "PERSONAL"
    OTHER = "OTHER"


class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AdjustmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class User(UserMixin, db.Model):
    __tablename__ = "users"
    __table_args__ = (Index("ix_users_department", "department"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"), nullable=False, default=UserRole.EMPLOYEE
    )
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)

    def get_id(self) -> str:
        return str(self.id)

    def set_password(self, raw_value: str) -> None:
        self.password_hash = generate_password_hash(raw_value, method="pbkdf2:sha256", salt_length=16)

    def check_password(self, raw_value: str) -> bool:
        return check_password_hash(self.password_hash, raw_value)

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "department": self.department,
            "role": self.role.value,
        }


class ClockEvent(db.Model):
    """A single ENTRADA/SALIDA punch ("fichaje").

    ``department`` is copied from the user at creation time. ``work_day`` and
    ``seq`` locate the event within the user's local day; the unique
    constraint on them rejects the loser of two racing inserts.
    """

    __tablename__ = "fichajes"
    __table_args__ = (
        UniqueConstraint("user_id", "work_day", "seq", name="uq_fichajes_user_day_seq"),
        Index("ix_fichajes_user_ts", "user_id", "ts"),
        Index("ix_fichajes_department_ts", "department", "ts"),
        CheckConstraint("seq >= 1", name="ck_fichajes_seq_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    department: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[ClockEventType] = mapped_column(Enum(ClockEventType, name="fichaje_tipo"), nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    work_day: Mapped[date] = mapped_column(Date, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    # Optional device position reported with the punch; accuracy in metres.
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)

    user: Mapped[User] = relationship()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "userId": str(self.user_id),
            "department": self.department,
            "tipo": self.type.value,
            "timestamp": _iso(self.ts),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
        }


MUTABLE_CLOCK_EVENT_FIELDS = {"ts"}


@event.listens_for(ClockEvent, "before_update")
def restrict_clock_event_update(_mapper: object, _connection: object, target: ClockEvent) -> None:
    state = inspect(target)
    changed = {attr.key for attr in state.attrs if attr.history.has_changes()}
    forbidden = changed - MUTABLE_CLOCK_EVENT_FIELDS
    if forbidden:
        raise ValueError(f"fichajes only allow timestamp corrections, got changes to: {sorted(forbidden)}")


@event.listens_for(ClockEvent, "before_delete")
def prevent_clock_event_delete(_mapper: object, _connection: object, _target: object) -> None:
    raise ValueError("fichajes cannot be deleted")


class DepartmentSchedule(db.Model):
    """Base schedule of a department plus optional per-weekday overrides.

    ``overrides_json`` maps Spanish weekday keys (``lunes`` … ``domingo``) to
    either ``{"dayOff": true}`` or a partial set of base fields.
    """

    __tablename__ = "department_schedules"

    department: Mapped[str] = mapped_column(String(128), primary_key=True)
    hora_entrada: Mapped[str] = mapped_column(String(5), nullable=False)
    hora_salida: Mapped[str] = mapped_column(String(5), nullable=False)
    hora_entrada_tarde: Mapped[str | None] = mapped_column(String(5), nullable=True)
    hora_salida_manana: Mapped[str | None] = mapped_column(String(5), nullable=True)
    tolerancia_minutos: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    flexible_schedule: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    overrides_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc
    )


class DepartmentShift(db.Model):
    """Named shift of a department's catalogue (independent-shifts mode)."""

    __tablename__ = "department_shifts"
    __table_args__ = (
        UniqueConstraint("department", "name", name="uq_department_shifts_department_name"),
        CheckConstraint("tolerancia_minutos >= 0", name="ck_department_shifts_tolerance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    department: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    hora_entrada: Mapped[str] = mapped_column(String(5), nullable=False)
    hora_salida: Mapped[str] = mapped_column(String(5), nullable=False)
    tolerancia_minutos: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    # Comma separated upper-case Spanish weekday names, e.g. "LUNES,MARTES".
    active_days: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)


class LeaveRequest(db.Model):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_user_dates", "user_id", "date_from", "date_to"),
        CheckConstraint("date_to >= date_from", name="ck_leave_requests_dates"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[LeaveType] = mapped_column(Enum(LeaveType, name="leave_type"), nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        Enum(LeaveStatus, name="leave_status"), nullable=False, default=LeaveStatus.PENDING
    )
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)


class FichajeAdjustment(db.Model):
    __tablename__ = "fichaje_adjustments"
    __table_args__ = (
        Index("ix_fichaje_adjustments_status_created", "status", "created_at"),
        Index(
            "uq_fichaje_adjustments_one_pending",
            "fichaje_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    fichaje_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("fichajes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    original_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    requested_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[AdjustmentStatus] = mapped_column(
        Enum(AdjustmentStatus, name="adjustment_status"),
        nullable=False,
        default=AdjustmentStatus.PENDING,
    )
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    fichaje: Mapped[ClockEvent] = relationship()
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    manager: Mapped[User | None] = relationship(foreign_keys=[manager_id])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "fichajeId": str(self.fichaje_id),
            "userId": str(self.user_id),
            "originalTimestamp": _iso(self.original_ts),
            "requestedTimestamp": _iso(self.requested_ts),
            "reason": self.reason,
            "status": self.status.value,
            "managerId": str(self.manager_id) if self.manager_id else None,
            "rejectionReason": self.rejection_reason,
            "createdAt": _iso(self.created_at),
            "resolvedAt": _iso(self.resolved_at),
            "fichaje": self.fichaje.to_dict() if self.fichaje is not None else None,
            "user": self.user.to_summary() if self.user is not None else None,
            "manager": {"id": str(self.manager.id), "name": self.manager.name} if self.manager is not None else None,
        }


class LateArrivalNotification(db.Model):
    """Notice sent by a manager about a late ENTRADA; the employee may justify it."""

    __tablename__ = "late_arrival_notifications"
    __table_args__ = (
        UniqueConstraint("fichaje_id", name="uq_late_arrival_notifications_fichaje"),
        Index("ix_late_arrival_notifications_user_created", "user_id", "created_at"),
        Index("ix_late_arrival_notifications_manager_created", "manager_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    fichaje_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("fichajes.id", ondelete="CASCADE"), nullable=False
    )
    fecha: Mapped[date] = mapped_column(Date, nullable=False)
    leido: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    justificado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    justificacion_texto: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    justified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    fichaje: Mapped[ClockEvent] = relationship()
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    manager: Mapped[User | None] = relationship(foreign_keys=[manager_id])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "userId": str(self.user_id),
            "managerId": str(self.manager_id) if self.manager_id else None,
            "fichajeId": str(self.fichaje_id),
            "fecha": self.fecha.isoformat(),
            "leido": self.leido,
            "justificado": self.justificado,
            "justificacionTexto": self.justificacion_texto,
            "createdAt": _iso(self.created_at),
            "justifiedAt": _iso(self.justified_at),
            "fichaje": self.fichaje.to_dict() if self.fichaje is not None else None,
            "user": self.user.to_summary() if self.user is not None else None,
            "manager": {"id": str(self.manager.id), "name": self.manager.name} if self.manager is not None else None,
        }


class AuditLog(db.Model):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_log_entity", "entity_type", "entity_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payload_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
