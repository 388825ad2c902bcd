"""Timestamp adjustment request routes."""

from __future__ import annotations

import uuid

from flask import Blueprint
from flask_login import current_user, login_required

from fichajes.adjustments import (
    approve_adjustment,
    create_adjustment,
    list_own_adjustments,
    list_pending_adjustments,
    list_recent_adjustments,
    reject_adjustment,
)
from fichajes.authorization import manager_required
from fichajes.calendar_days import app_timezone
from fichajes.errors import NotFoundError
from fichajes.extensions import db
from fichajes.forms import AdjustmentForm, RejectForm, json_form, validated


bp = Blueprint("adjustments", __name__, url_prefix="/api/fichaje-adjustments")


def _parse_id(raw: str, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise NotFoundError(message) from None


@bp.post("")
@login_required
def create():
    form = validated(json_form(AdjustmentForm))
    adjustment = create_adjustment(
        db.session,
        current_user,
        fichaje_id=_parse_id(form.fichaje_id.data, "Fichaje no encontrado"),
        requested_ts=form.requested_timestamp.data,
        reason=form.reason.data,
        tz=app_timezone(),
    )
    return adjustment.to_dict(), 201


@bp.get("")
@login_required
def mine():
    return {"adjustments": [adjustment.to_dict() for adjustment in list_own_adjustments(db.session, current_user)]}


@bp.get("/pending")
@login_required
@manager_required
def pending():
    return {"adjustments": [adjustment.to_dict() for adjustment in list_pending_adjustments(db.session, current_user)]}


@bp.get("/all")
@login_required
@manager_required
def recent():
    return {"adjustments": [adjustment.to_dict() for adjustment in list_recent_adjustments(db.session, current_user)]}


@bp.patch("/<adjustment_id>/approve")
@login_required
@manager_required
def approve(adjustment_id: str):
    adjustment = approve_adjustment(db.session, current_user, _parse_id(adjustment_id, "Solicitud no encontrada"))
    return adjustment.to_dict()


@bp.patch("/<adjustment_id>/reject")
@login_required
@manager_required
def reject(adjustment_id: str):
    form = validated(json_form(RejectForm))
    adjustment = reject_adjustment(
        db.session,
        current_user,
        _parse_id(adjustment_id, "Solicitud no encontrada"),
        form.rejection_reason.data,
    )
    return adjustment.to_dict()
