"""Late-arrival notices.

A manager flags a late ENTRADA of someone in their department (admins may
flag anyone). The employee sees the notice, can mark it read and can send a
justification, which the manager sees in the notices they sent. There is
at most one notice per fichaje.
"""

from __future__ import annotations

import uuid
from datetime import tzinfo
from typing import Any, Mapping

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from fichajes.aggregation import is_late_arrival
from fichajes.audit import log_audit
from fichajes.authorization import can_manage_department
from fichajes.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from fichajes.models import ClockEvent, LateArrivalNotification, User, now_utc
from fichajes.notifications import LATE_ARRIVAL_FLAGGED, LATE_ARRIVAL_JUSTIFIED, notify
from fichajes.schedules import load_department_template, resolve_day_schedule


DUPLICATE_NOTICE_MESSAGE = "Ya existe una notificación para este fichaje"
NOT_LATE_MESSAGE = "El fichaje no es una llegada tarde"


def _notice_query():
    return select(LateArrivalNotification).options(
        joinedload(LateArrivalNotification.fichaje),
        joinedload(LateArrivalNotification.user),
        joinedload(LateArrivalNotification.manager),
    )


def get_late_notification(session: Session, notification_id: uuid.UUID) -> LateArrivalNotification:
    notice = session.execute(
        _notice_query().where(LateArrivalNotification.id == notification_id)
    ).scalar_one_or_none()
    if notice is None:
        raise NotFoundError("Notificación no encontrada")
    return notice


def _owned_notice(session: Session, actor: User, notification_id: uuid.UUID) -> LateArrivalNotification:
    notice = get_late_notification(session, notification_id)
    if notice.user_id != actor.id:
        raise AuthorizationError("No autorizado")
    return notice


def create_late_notification(
    session: Session,
    actor: User,
    *,
    fichaje_id: uuid.UUID,
    tz: tzinfo,
    config: Mapping[str, Any],
) -> LateArrivalNotification:
    event = session.get(ClockEvent, fichaje_id)
    if event is None:
        raise NotFoundError("Fichaje no encontrado")
    if not can_manage_department(actor, event.user.department):
        raise AuthorizationError("No puedes enviar notificaciones a usuarios de otro departamento")

    template = load_department_template(session, event.department, config)
    if not is_late_arrival(event, resolve_day_schedule(template, event.work_day), tz):
        raise ValidationError(NOT_LATE_MESSAGE)

    existing = session.execute(
        select(LateArrivalNotification.id).where(LateArrivalNotification.fichaje_id == event.id)
    ).first()
    if existing is not None:
        raise ConflictError(DUPLICATE_NOTICE_MESSAGE)

    notice = LateArrivalNotification(
        user_id=event.user_id,
        manager_id=actor.id,
        fichaje_id=event.id,
        fecha=event.work_day,
    )
    try:
        session.add(notice)
        session.flush()
        log_audit(
            session,
            action="LATE_NOTICE_CREATED",
            entity_type="late_arrival_notifications",
            entity_id=notice.id,
            payload={"fichaje_id": str(event.id), "user_id": str(event.user_id)},
            actor_user_id=actor.id,
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError(DUPLICATE_NOTICE_MESSAGE) from None
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Late-arrival notice %s sent to %s by %s", notice.id, event.user_id, actor.id)
    notice = get_late_notification(session, notice.id)
    notify(LATE_ARRIVAL_FLAGGED, notice)
    return notice


def list_own_late_notifications(session: Session, actor: User) -> list[LateArrivalNotification]:
    stmt = (
        _notice_query()
        .where(LateArrivalNotification.user_id == actor.id)
        .order_by(LateArrivalNotification.created_at.desc())
    )
    return list(session.execute(stmt).unique().scalars().all())


def list_sent_late_notifications(session: Session, actor: User) -> list[LateArrivalNotification]:
    stmt = (
        _notice_query()
        .where(LateArrivalNotification.manager_id == actor.id)
        .order_by(LateArrivalNotification.created_at.desc())
    )
    return list(session.execute(stmt).unique().scalars().all())


def justify_late_arrival(
    session: Session,
    actor: User,
    notification_id: uuid.UUID,
    justificacion: str | None,
) -> LateArrivalNotification:
    """Store the employee's justification; sending a new one replaces it."""
    text = (justificacion or "").strip()
    if not text:
        raise ValidationError("La justificación es obligatoria")
    notice = _owned_notice(session, actor, notification_id)

    try:
        notice.justificado = True
        notice.justificacion_texto = text
        notice.leido = True
        notice.justified_at = now_utc()
        log_audit(
            session,
            action="LATE_NOTICE_JUSTIFIED",
            entity_type="late_arrival_notifications",
            entity_id=notice.id,
            payload={"justificacion": text},
            actor_user_id=actor.id,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Late-arrival notice %s justified by %s", notification_id, actor.id)
    notice = get_late_notification(session, notification_id)
    notify(LATE_ARRIVAL_JUSTIFIED, notice)
    return notice


def mark_late_notification_read(
    session: Session, actor: User, notification_id: uuid.UUID
) -> LateArrivalNotification:
    notice = _owned_notice(session, actor, notification_id)
    if notice.leido:
        return notice
    try:
        notice.leido = True
        log_audit(
            session,
            action="LATE_NOTICE_READ",
            entity_type="late_arrival_notifications",
            entity_id=notice.id,
            actor_user_id=actor.id,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    return get_late_notification(session, notification_id)
