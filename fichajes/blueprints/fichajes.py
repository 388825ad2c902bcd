"""Clock-in/out routes and attendance views."""

from __future__ import annotations

import uuid
from datetime import date, timedelta

from flask import Blueprint, Response, current_app, request
from flask_login import current_user, login_required
from sqlalchemy import select

from fichajes.aggregation import group_events_by_day, group_events_by_user
from fichajes.authorization import can_manage_department, can_view_other_users, can_view_user, is_admin
from fichajes.calendar_days import app_timezone, local_day, month_days, month_window, range_window, week_days
from fichajes.errors import AuthorizationError, NotFoundError, ValidationError
from fichajes.extensions import db
from fichajes.forms import ClockEventForm, json_form, validated
from fichajes.models import ClockEvent, ClockEventType, LeaveRequest, User, UserRole, now_utc
from fichajes.reports import build_monthly_report
from fichajes.schedules import load_department_template, template_to_dict
from fichajes.sequencing import GeoPoint, annotate_clock_event, current_status, record_clock_event


bp = Blueprint("fichajes", __name__, url_prefix="/api/fichajes")


def _parse_uuid(raw: str | None, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise NotFoundError(message) from None


def _parse_date(raw: str | None, field_name: str) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValidationError(f"Fecha inválida en {field_name}. Use YYYY-MM-DD") from None


def _int_arg(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"Parámetro {name} inválido") from None
    if not minimum <= value <= maximum:
        raise ValidationError(f"Parámetro {name} fuera de rango")
    return value


def _get_user(user_id: uuid.UUID) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Usuario no encontrado")
    return user


def _visible_user(raw_user_id: str) -> User:
    target = _get_user(_parse_uuid(raw_user_id, "Usuario no encontrado"))
    if not can_view_user(current_user, target):
        raise AuthorizationError("No autorizado")
    return target


def _user_events(user_id: uuid.UUID, start, end) -> list[ClockEvent]:
    stmt = (
        select(ClockEvent)
        .where(ClockEvent.user_id == user_id, ClockEvent.ts >= start, ClockEvent.ts < end)
        .order_by(ClockEvent.ts.asc())
    )
    return list(db.session.execute(stmt).scalars().all())


def _grouped_days(user: User, start, end) -> list[dict]:
    tz = app_timezone()
    if not user.department:
        raise NotFoundError("Usuario o departamento no encontrado")
    template = load_department_template(db.session, user.department, current_app.config)
    events = _user_events(user.id, start, end)
    return [session_day.to_dict(tz) for session_day in group_events_by_day(events, template, tz)]


@bp.post("")
@login_required
def create_fichaje():
    form = validated(json_form(ClockEventForm))
    tz = app_timezone()
    location = None
    if form.latitude.data is not None:
        location = GeoPoint(form.latitude.data, form.longitude.data, form.accuracy.data)
    event = record_clock_event(
        db.session, current_user.id, ClockEventType(form.tipo.data), tz=tz, location=location
    )
    result = annotate_clock_event(db.session, event, tz=tz, config=current_app.config)
    return result.to_dict(), 201


@bp.get("/current")
@login_required
def current():
    return current_status(db.session, current_user.id, tz=app_timezone())


@bp.get("/history")
@login_required
def history():
    tz = app_timezone()
    today = local_day(now_utc(), tz)
    start_day = _parse_date(request.args.get("startDate"), "startDate") or today - timedelta(days=30)
    end_day = _parse_date(request.args.get("endDate"), "endDate") or today
    if end_day < start_day:
        raise ValidationError("La fecha de fin debe ser posterior a la de inicio")
    start, end = range_window(start_day, end_day, tz)

    stmt = select(ClockEvent).where(ClockEvent.ts >= start, ClockEvent.ts < end)
    department = request.args.get("department")
    requested_user = request.args.get("userId")
    if can_view_other_users(current_user) and department:
        stmt = stmt.where(ClockEvent.department == department)
    elif can_view_other_users(current_user) and requested_user:
        stmt = stmt.where(ClockEvent.user_id == _parse_uuid(requested_user, "Usuario no encontrado"))
    else:
        stmt = stmt.where(ClockEvent.user_id == current_user.id)

    stmt = stmt.order_by(ClockEvent.ts.desc()).limit(current_app.config["MAX_HISTORY_RESULTS"])
    events = db.session.execute(stmt).scalars().all()
    return {
        "fichajes": [{**event.to_dict(), "user": event.user.to_summary()} for event in events],
        "startDate": start_day.isoformat(),
        "endDate": end_day.isoformat(),
    }


@bp.get("/week/<user_id>")
@login_required
def week(user_id: str):
    user = _visible_user(user_id)
    tz = app_timezone()
    days = week_days(local_day(now_utc(), tz))
    start, end = range_window(days[0], days[-1], tz)
    return {"user": user.to_summary(), "days": _grouped_days(user, start, end)}


@bp.get("/month/<user_id>")
@login_required
def month(user_id: str):
    user = _visible_user(user_id)
    tz = app_timezone()
    today = local_day(now_utc(), tz)
    start, end = month_window(today.year, today.month, tz)
    return {"user": user.to_summary(), "days": _grouped_days(user, start, end)}


@bp.get("/department/<department>/week")
@login_required
def department_week(department: str):
    if not can_manage_department(current_user, department):
        raise AuthorizationError("No autorizado")

    tz = app_timezone()
    days = week_days(local_day(now_utc(), tz))
    start, end = range_window(days[0], days[-1], tz)
    users = db.session.execute(
        select(User)
        .where(User.department == department, User.role != UserRole.ADMIN, User.is_active.is_(True))
        .order_by(User.name.asc())
    ).scalars().all()
    events = db.session.execute(
        select(ClockEvent)
        .where(ClockEvent.department == department, ClockEvent.ts >= start, ClockEvent.ts < end)
        .order_by(ClockEvent.ts.asc())
    ).scalars().all()
    template = load_department_template(db.session, department, current_app.config)
    return {
        "department": department,
        "weekStart": days[0].isoformat(),
        "weekEnd": days[-1].isoformat(),
        "schedule": template_to_dict(template),
        "users": group_events_by_user(events, users, template, tz),
    }


@bp.get("/report")
@login_required
def monthly_report():
    tz = app_timezone()
    today = local_day(now_utc(), tz)
    year = _int_arg("year", today.year, 2000, 2100)
    month_number = _int_arg("month", today.month, 1, 12)

    requested_user = request.args.get("userId")
    if requested_user and requested_user != str(current_user.id):
        if not is_admin(current_user):
            raise AuthorizationError("Solo los administradores pueden generar informes de otros usuarios")
        user = _get_user(_parse_uuid(requested_user, "Usuario no encontrado"))
    else:
        user = current_user

    start, end = month_window(year, month_number, tz)
    days = month_days(year, month_number)
    month_start, month_end = days[0], days[-1]
    leaves = db.session.execute(
        select(LeaveRequest).where(
            LeaveRequest.user_id == user.id,
            LeaveRequest.date_from <= month_end,
            LeaveRequest.date_to >= month_start,
        )
    ).scalars().all()
    template = load_department_template(db.session, user.department, current_app.config) if user.department else None

    report = build_monthly_report(
        employee_name=user.name,
        year=year,
        month=month_number,
        events=_user_events(user.id, start, end),
        leaves=leaves,
        template=template,
        tz=tz,
        today=today,
    )
    current_app.logger.info("Monthly report %s-%02d generated for user %s", year, month_number, user.id)
    return Response(
        report.to_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )

