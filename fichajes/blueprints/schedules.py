"""Department schedule and named shift catalogue routes."""

from __future__ import annotations

import uuid

from flask import Blueprint, current_app
from flask_login import current_user, login_required
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fichajes.audit import log_audit
from fichajes.authorization import admin_required, can_manage_schedules
from fichajes.errors import AuthorizationError, ConflictError, NotFoundError
from fichajes.extensions import db
from fichajes.forms import ScheduleForm, ShiftForm, json_form, json_payload, validated
from fichajes.models import DepartmentSchedule, DepartmentShift
from fichajes.schedules import (
    DaySchedule,
    ScheduleTemplate,
    all_day_schedules,
    default_template,
    normalize_hhmm,
    overrides_from_json,
    overrides_to_json,
    template_from_model,
    template_to_dict,
    validate_template,
)
from fichajes.shift_matching import NamedShift, SHIFT_DAY_NAMES


bp = Blueprint("schedules", __name__, url_prefix="/api")


def _template_for(department: str) -> tuple[ScheduleTemplate, bool]:
    schedule = db.session.get(DepartmentSchedule, department)
    if schedule is None:
        return default_template(department, current_app.config), True
    return template_from_model(schedule), False


def _can_read_department(department: str) -> bool:
    return can_manage_schedules(current_user) or current_user.department == department


@bp.get("/department-schedules")
@login_required
@admin_required
def list_schedules():
    schedules = db.session.execute(
        select(DepartmentSchedule).order_by(DepartmentSchedule.department.asc())
    ).scalars().all()
    return {"schedules": [template_to_dict(template_from_model(schedule)) for schedule in schedules]}


@bp.get("/department-schedules/<department>")
@login_required
def get_schedule(department: str):
    if not _can_read_department(department):
        raise AuthorizationError("No autorizado")
    template, is_default = _template_for(department)
    return template_to_dict(template, is_default=is_default)


@bp.get("/department-schedules/<department>/days")
@login_required
def get_schedule_days(department: str):
    if not _can_read_department(department):
        raise AuthorizationError("No autorizado")
    template, is_default = _template_for(department)
    return {
        "department": department,
        "isDefault": is_default,
        "days": [
            {"dayName": day_name, "isDayOff": day_schedule is None, "schedule": day_schedule.to_dict() if day_schedule else None}
            for day_name, day_schedule in all_day_schedules(template).items()
        ],
    }


@bp.post("/department-schedules")
@login_required
@admin_required
def upsert_schedule():
    payload = json_payload()
    form = validated(json_form(ScheduleForm, payload))
    department = form.department.data

    template = ScheduleTemplate(
        department=department,
        base=DaySchedule(
            hora_entrada=normalize_hhmm(form.hora_entrada.data),
            hora_salida=normalize_hhmm(form.hora_salida.data),
            hora_entrada_tarde=normalize_hhmm(form.hora_entrada_tarde.data) if form.hora_entrada_tarde.data else None,
            hora_salida_manana=normalize_hhmm(form.hora_salida_manana.data) if form.hora_salida_manana.data else None,
            tolerancia_minutos=form.tolerancia_minutos.data if form.tolerancia_minutos.data is not None else 10,
            flexible_schedule=bool(form.flexible_schedule.data),
        ),
        overrides=overrides_from_json(payload.get("overrides")),
    )
    validate_template(template)

    schedule = db.session.get(DepartmentSchedule, department)
    created = schedule is None
    if created:
        schedule = DepartmentSchedule(department=department)
        db.session.add(schedule)
    schedule.hora_entrada = template.base.hora_entrada
    schedule.hora_salida = template.base.hora_salida
    schedule.hora_entrada_tarde = template.base.hora_entrada_tarde
    schedule.hora_salida_manana = template.base.hora_salida_manana
    schedule.tolerancia_minutos = template.base.tolerancia_minutos
    schedule.flexible_schedule = template.base.flexible_schedule
    schedule.overrides_json = overrides_to_json(template.overrides) or None

    log_audit(
        db.session,
        action="SCHEDULE_CREATED" if created else "SCHEDULE_UPDATED",
        entity_type="department_schedules",
        entity_id=department,
        payload=template_to_dict(template),
    )
    db.session.commit()
    current_app.logger.info("Schedule for department %s saved by %s", department, current_user.id)
    return template_to_dict(template_from_model(schedule)), 201 if created else 200


@bp.delete("/department-schedules/<department>")
@login_required
@admin_required
def delete_schedule(department: str):
    schedule = db.session.get(DepartmentSchedule, department)
    if schedule is None:
        raise NotFoundError("Horario no encontrado")
    db.session.delete(schedule)
    log_audit(db.session, action="SCHEDULE_DELETED", entity_type="department_schedules", entity_id=department)
    db.session.commit()
    current_app.logger.info("Schedule for department %s deleted by %s", department, current_user.id)
    return {"message": "Horario eliminado"}


@bp.get("/department-shifts/<department>")
@login_required
def list_shifts(department: str):
    if not _can_read_department(department):
        raise AuthorizationError("No autorizado")
    shifts = db.session.execute(
        select(DepartmentShift)
        .where(DepartmentShift.department == department)
        .order_by(DepartmentShift.hora_entrada.asc(), DepartmentShift.name.asc())
    ).scalars().all()
    return {"department": department, "shifts": [NamedShift.from_model(shift).to_dict() for shift in shifts]}


@bp.post("/department-shifts/<department>")
@login_required
@admin_required
def create_shift(department: str):
    form = validated(json_form(ShiftForm))
    active_days = [day for day in SHIFT_DAY_NAMES if day in set(form.active_days.data)]
    shift = DepartmentShift(
        department=department,
        name=form.name.data,
        hora_entrada=normalize_hhmm(form.hora_entrada.data),
        hora_salida=normalize_hhmm(form.hora_salida.data),
        tolerancia_minutos=form.tolerancia_minutos.data if form.tolerancia_minutos.data is not None else 10,
        active_days=",".join(active_days),
    )
    try:
        db.session.add(shift)
        db.session.flush()
        log_audit(
            db.session,
            action="SHIFT_CREATED",
            entity_type="department_shifts",
            entity_id=shift.id,
            payload={"department": department, "name": shift.name, "activeDays": active_days},
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Ya existe un turno con ese nombre en el departamento") from None

    current_app.logger.info("Shift %s created for department %s", shift.id, department)
    return NamedShift.from_model(shift).to_dict(), 201


@bp.delete("/department-shifts/<department>/<shift_id>")
@login_required
@admin_required
def delete_shift(department: str, shift_id: str):
    try:
        parsed_id = uuid.UUID(shift_id)
    except ValueError:
        raise NotFoundError("Turno no encontrado") from None
    shift = db.session.get(DepartmentShift, parsed_id)
    if shift is None or shift.department != department:
        raise NotFoundError("Turno no encontrado")
    db.session.delete(shift)
    log_audit(
        db.session,
        action="SHIFT_DELETED",
        entity_type="department_shifts",
        entity_id=parsed_id,
        payload={"department": department, "name": shift.name},
    )
    db.session.commit()
    return {"message": "Turno eliminado"}
