"""Late-arrival notice routes."""

from __future__ import annotations

import uuid

from flask import Blueprint, current_app
from flask_login import current_user, login_required

from fichajes.authorization import manager_required
from fichajes.calendar_days import app_timezone
from fichajes.errors import NotFoundError
from fichajes.extensions import db
from fichajes.forms import JustifyForm, LateNotificationForm, json_form, validated
from fichajes.late_arrivals import (
    create_late_notification,
    justify_late_arrival,
    list_own_late_notifications,
    list_sent_late_notifications,
    mark_late_notification_read,
)


bp = Blueprint("late_arrivals", __name__, url_prefix="/api/late-notifications")


def _parse_id(raw: str, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise NotFoundError(message) from None


@bp.post("")
@login_required
@manager_required
def create():
    form = validated(json_form(LateNotificationForm))
    notice = create_late_notification(
        db.session,
        current_user,
        fichaje_id=_parse_id(form.fichaje_id.data, "Fichaje no encontrado"),
        tz=app_timezone(),
        config=current_app.config,
    )
    return notice.to_dict(), 201


@bp.get("")
@login_required
def mine():
    return {"notifications": [notice.to_dict() for notice in list_own_late_notifications(db.session, current_user)]}


@bp.get("/sent")
@login_required
@manager_required
def sent():
    return {"notifications": [notice.to_dict() for notice in list_sent_late_notifications(db.session, current_user)]}


@bp.post("/<notification_id>/justify")
@login_required
def justify(notification_id: str):
    form = validated(json_form(JustifyForm))
    notice = justify_late_arrival(
        db.session,
        current_user,
        _parse_id(notification_id, "Notificación no encontrada"),
        form.justificacion.data,
    )
    return notice.to_dict()


@bp.put("/<notification_id>/read")
@login_required
def mark_read(notification_id: str):
    notice = mark_late_notification_read(
        db.session, current_user, _parse_id(notification_id, "Notificación no encontrada")
    )
    return notice.to_dict()
