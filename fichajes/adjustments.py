"""Timestamp adjustment workflow.

An employee disputes the timestamp of one of their own fichajes; a manager
of the owner's department (or any admin) approves or rejects it. States:
PENDING -> APPROVED | REJECTED, both terminal. Approval rewrites the
fichaje's timestamp in the same transaction that marks the request.
"""

from __future__ import annotations

import uuid
from datetime import datetime, tzinfo
from typing import Any

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from fichajes.audit import log_audit
from fichajes.authorization import can_resolve_adjustment, is_admin, is_manager
from fichajes.calendar_days import as_aware_utc
from fichajes.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from fichajes.models import AdjustmentStatus, ClockEvent, FichajeAdjustment, User, now_utc
from fichajes.notifications import (
    ADJUSTMENT_APPROVED,
    ADJUSTMENT_CREATED,
    ADJUSTMENT_REJECTED,
    notify,
)


DUPLICATE_PENDING_MESSAGE = "Ya existe una solicitud de ajuste pendiente para este fichaje"
ALREADY_PROCESSED_MESSAGE = "Esta solicitud ya fue procesada"


def parse_requested_timestamp(raw: Any, tz: tzinfo) -> datetime:
    """ISO-8601 string to an aware UTC datetime; naive values are local time."""
    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw or "").strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError("Formato de fecha inválido para requestedTimestamp") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return as_aware_utc(parsed)


def _adjustment_query():
    return select(FichajeAdjustment).options(
        joinedload(FichajeAdjustment.fichaje),
        joinedload(FichajeAdjustment.user),
        joinedload(FichajeAdjustment.manager),
    )


def get_adjustment(session: Session, adjustment_id: uuid.UUID) -> FichajeAdjustment:
    adjustment = session.execute(
        _adjustment_query().where(FichajeAdjustment.id == adjustment_id)
    ).scalar_one_or_none()
    if adjustment is None:
        raise NotFoundError("Solicitud no encontrada")
    return adjustment


def has_pending_adjustment(session: Session, fichaje_id: uuid.UUID) -> bool:
    stmt = select(FichajeAdjustment.id).where(
        FichajeAdjustment.fichaje_id == fichaje_id,
        FichajeAdjustment.status == AdjustmentStatus.PENDING,
    )
    return session.execute(stmt).first() is not None


def create_adjustment(
    session: Session,
    actor: User,
    *,
    fichaje_id: uuid.UUID,
    requested_ts: Any,
    reason: str | None,
    tz: tzinfo,
) -> FichajeAdjustment:
    min_length = current_app.config["ADJUSTMENT_MIN_REASON_LENGTH"]
    reason = (reason or "").strip()
    if len(reason) < min_length:
        raise ValidationError(f"El motivo debe tener al menos {min_length} caracteres")

    requested = parse_requested_timestamp(requested_ts, tz)

    event = session.get(ClockEvent, fichaje_id)
    if event is None:
        raise NotFoundError("Fichaje no encontrado")
    if event.user_id != actor.id:
        raise AuthorizationError("No puedes ajustar fichajes de otro usuario")

    if has_pending_adjustment(session, event.id):
        raise ConflictError(DUPLICATE_PENDING_MESSAGE)

    adjustment = FichajeAdjustment(
        fichaje_id=event.id,
        user_id=actor.id,
        original_ts=as_aware_utc(event.ts),
        requested_ts=requested,
        reason=reason,
        status=AdjustmentStatus.PENDING,
    )
    try:
        session.add(adjustment)
        session.flush()
        log_audit(
            session,
            action="ADJUSTMENT_CREATED",
            entity_type="fichaje_adjustments",
            entity_id=adjustment.id,
            payload={"fichaje_id": str(event.id), "requested_ts": requested.isoformat()},
            actor_user_id=actor.id,
        )
        session.commit()
    except IntegrityError:
        # Partial unique index: another pending request won the race.
        session.rollback()
        raise ConflictError(DUPLICATE_PENDING_MESSAGE) from None
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Adjustment %s created for fichaje %s by %s", adjustment.id, event.id, actor.id)
    adjustment = get_adjustment(session, adjustment.id)
    notify(ADJUSTMENT_CREATED, adjustment)
    return adjustment


def _check_resolvable(adjustment: FichajeAdjustment, actor: User, verb: str) -> None:
    if adjustment.status != AdjustmentStatus.PENDING:
        raise ConflictError(ALREADY_PROCESSED_MESSAGE)
    if not can_resolve_adjustment(actor, adjustment.user.department):
        raise AuthorizationError(f"No puedes {verb} solicitudes de otro departamento")


def _mark_resolved(
    session: Session,
    adjustment_id: uuid.UUID,
    actor: User,
    status: AdjustmentStatus,
    rejection_reason: str | None = None,
) -> None:
    """Conditional PENDING -> ``status`` transition; a lost race is a conflict."""
    values: dict[str, Any] = {"status": status, "manager_id": actor.id, "resolved_at": now_utc()}
    if status == AdjustmentStatus.REJECTED:
        values["rejection_reason"] = rejection_reason
    result = session.execute(
        update(FichajeAdjustment)
        .where(FichajeAdjustment.id == adjustment_id, FichajeAdjustment.status == AdjustmentStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(ALREADY_PROCESSED_MESSAGE)


def approve_adjustment(session: Session, actor: User, adjustment_id: uuid.UUID) -> FichajeAdjustment:
    """Mark the request APPROVED and move the fichaje to the requested time.

    Both writes share one transaction; any failure leaves neither applied.
    """
    adjustment = get_adjustment(session, adjustment_id)
    _check_resolvable(adjustment, actor, "aprobar")

    try:
        _mark_resolved(session, adjustment.id, actor, AdjustmentStatus.APPROVED)
        event = adjustment.fichaje
        event.ts = as_aware_utc(adjustment.requested_ts)
        log_audit(
            session,
            action="ADJUSTMENT_APPROVED",
            entity_type="fichaje_adjustments",
            entity_id=adjustment.id,
            payload={
                "fichaje_id": str(event.id),
                "from": as_aware_utc(adjustment.original_ts).isoformat(),
                "to": as_aware_utc(adjustment.requested_ts).isoformat(),
            },
            actor_user_id=actor.id,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Adjustment %s approved by %s", adjustment_id, actor.id)
    session.expire_all()
    adjustment = get_adjustment(session, adjustment_id)
    notify(ADJUSTMENT_APPROVED, adjustment)
    return adjustment


def reject_adjustment(
    session: Session,
    actor: User,
    adjustment_id: uuid.UUID,
    rejection_reason: str | None = None,
) -> FichajeAdjustment:
    adjustment = get_adjustment(session, adjustment_id)
    _check_resolvable(adjustment, actor, "rechazar")
    rejection_reason = (rejection_reason or "").strip() or None

    try:
        _mark_resolved(session, adjustment.id, actor, AdjustmentStatus.REJECTED, rejection_reason)
        log_audit(
            session,
            action="ADJUSTMENT_REJECTED",
            entity_type="fichaje_adjustments",
            entity_id=adjustment.id,
            payload={"rejection_reason": rejection_reason},
            actor_user_id=actor.id,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Adjustment %s rejected by %s", adjustment_id, actor.id)
    session.expire_all()
    adjustment = get_adjustment(session, adjustment_id)
    notify(ADJUSTMENT_REJECTED, adjustment)
    return adjustment


def list_own_adjustments(session: Session, actor: User) -> list[FichajeAdjustment]:
    stmt = (
        _adjustment_query()
        .where(FichajeAdjustment.user_id == actor.id)
        .order_by(FichajeAdjustment.created_at.desc())
    )
    return list(session.execute(stmt).unique().scalars().all())


def _scoped_to_actor(stmt, actor: User):
    if is_admin(actor):
        return stmt
    if is_manager(actor) and actor.department:
        return stmt.join(User, User.id == FichajeAdjustment.user_id).where(User.department == actor.department)
    raise AuthorizationError("No tienes permisos para ver estas solicitudes")


def list_pending_adjustments(session: Session, actor: User) -> list[FichajeAdjustment]:
    """Oldest first, so requests are handled in arrival order."""
    stmt = _scoped_to_actor(
        _adjustment_query().where(FichajeAdjustment.status == AdjustmentStatus.PENDING),
        actor,
    ).order_by(FichajeAdjustment.created_at.asc())
    return list(session.execute(stmt).unique().scalars().all())


def list_recent_adjustments(session: Session, actor: User, limit: int | None = None) -> list[FichajeAdjustment]:
    limit = limit or current_app.config["ADJUSTMENT_LIST_LIMIT"]
    stmt = (
        _scoped_to_actor(_adjustment_query(), actor)
        .order_by(FichajeAdjustment.created_at.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).unique().scalars().all())
