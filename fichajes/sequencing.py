"""Clock-in/clock-out sequencing.

Within one user's local day the only accepted punch is the complement of
the previous one: ENTRADA when the day is empty or the last punch was a
SALIDA, SALIDA after an ENTRADA.

``decide_clock_event`` holds the rules and touches no database.
``record_clock_event`` reads the day, decides and inserts in a single
transaction; ``annotate_clock_event`` adds turno/shift metadata afterwards
and never fails the punch.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Mapping, Sequence

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fichajes.audit import log_audit
from fichajes.calendar_days import DayWindow, as_aware_utc, day_window, to_local
from fichajes.errors import NotFoundError, ValidationError
from fichajes.models import ClockEvent, ClockEventType, DepartmentSchedule, DepartmentShift, User, now_utc
from fichajes.schedules import default_template, resolve_day_schedule, template_from_model
from fichajes.shift_matching import NamedShift, select_closest_shift_at
from fichajes.turnos import detect_turno_at


SEQUENCE_ERROR_MESSAGES = {
    ClockEventType.ENTRADA: "Debes fichar entrada primero",
    ClockEventType.SALIDA: "Debes fichar salida primero",
}
MISSING_DEPARTMENT_MESSAGE = "No tienes un departamento asignado. Contacta con un administrador."


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    accuracy: float | None = None


@dataclass(frozen=True)
class ClockDecision:
    event_type: ClockEventType
    department: str
    work_day: date
    seq: int


@dataclass
class ClockEventResult:
    event: ClockEvent
    turno: dict[str, Any] | None = None
    assigned_shift: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        has_active_entry = self.event.type == ClockEventType.ENTRADA
        payload: dict[str, Any] = {
            "fichaje": self.event.to_dict(),
            "status": {
                "hasActiveEntry": has_active_entry,
                "currentFichaje": self.event.to_dict() if has_active_entry else None,
            },
        }
        if self.turno is not None:
            payload["turno"] = self.turno
        if self.assigned_shift is not None:
            payload["assignedShift"] = self.assigned_shift
        return payload


def last_event(events: Sequence[Any]) -> Any | None:
    if not events:
        return None
    return max(events, key=lambda event: as_aware_utc(event.ts))


def expected_next_type(day_events: Sequence[Any]) -> ClockEventType:
    latest = last_event(day_events)
    if latest is None:
        return ClockEventType.ENTRADA
    return ClockEventType(latest.type).complement


def find_sequence_error(events: Sequence[Any]) -> str | None:
    """Message for the first pair of consecutive same-type punches, if any."""
    ordered = sorted(events, key=lambda event: as_aware_utc(event.ts))
    for previous, current in zip(ordered, ordered[1:]):
        if previous.type == current.type:
            plural = "entradas" if previous.type == ClockEventType.ENTRADA else "salidas"
            return f"No puedes tener dos {plural} seguidas"
    return None


def decide_clock_event(
    *,
    department: str | None,
    requested_type: ClockEventType,
    day_events: Sequence[Any],
    work_day: date,
    max_seq: int,
) -> ClockDecision:
    if not department or not department.strip():
        raise ValidationError(MISSING_DEPARTMENT_MESSAGE)

    expected = expected_next_type(day_events)
    if requested_type != expected:
        raise ValidationError(SEQUENCE_ERROR_MESSAGES[expected])

    return ClockDecision(
        event_type=requested_type,
        department=department,
        work_day=work_day,
        seq=max_seq + 1,
    )


def day_events_stmt(user_id: uuid.UUID, window: DayWindow):
    return (
        select(ClockEvent)
        .where(ClockEvent.user_id == user_id, ClockEvent.ts >= window.start, ClockEvent.ts < window.end)
        .order_by(ClockEvent.ts.asc())
    )


def record_clock_event(
    session: Session,
    user_id: uuid.UUID,
    requested_type: ClockEventType,
    *,
    tz: tzinfo,
    now: datetime | None = None,
    location: GeoPoint | None = None,
) -> ClockEvent:
    """Validate and insert a punch atomically.

    The user row is locked for the duration of the transaction and the
    ``(user_id, work_day, seq)`` constraint rejects a concurrent insert that
    slipped past the read; either way the loser gets the sequencing error.
    """
    now = as_aware_utc(now or now_utc())
    try:
        user = session.execute(select(User).where(User.id == user_id).with_for_update()).scalar_one_or_none()
        if user is None:
            raise NotFoundError("Usuario no encontrado")

        window = day_window(now, tz)
        day_events = list(session.execute(day_events_stmt(user.id, window)).scalars().all())
        max_seq = session.execute(
            select(func.max(ClockEvent.seq)).where(ClockEvent.user_id == user.id, ClockEvent.work_day == window.day)
        ).scalar_one_or_none()

        decision = decide_clock_event(
            department=user.department,
            requested_type=requested_type,
            day_events=day_events,
            work_day=window.day,
            max_seq=max_seq or 0,
        )
        event = ClockEvent(
            user_id=user.id,
            department=decision.department,
            type=decision.event_type,
            ts=now,
            work_day=decision.work_day,
            seq=decision.seq,
        )
        if location is not None:
            event.latitude = location.latitude
            event.longitude = location.longitude
            event.accuracy = location.accuracy
        session.add(event)
        session.flush()
        log_audit(
            session,
            action=f"FICHAJE_{decision.event_type.value}",
            entity_type="fichajes",
            entity_id=event.id,
            payload={"user_id": str(user.id), "department": decision.department, "seq": decision.seq},
            actor_user_id=user.id,
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        current_app.logger.info("Concurrent fichaje rejected for user %s", user_id)
        raise ValidationError(SEQUENCE_ERROR_MESSAGES[requested_type.complement]) from None
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Fichaje %s recorded for user %s (seq %s)", requested_type.value, user_id, event.seq)
    return event


def annotate_clock_event(session: Session, event: ClockEvent, *, tz: tzinfo, config: Mapping[str, Any]) -> ClockEventResult:
    """Attach turno and assigned shift to a recorded punch, best effort."""
    result = ClockEventResult(event=event)
    try:
        schedule = session.get(DepartmentSchedule, event.department)
        template = template_from_model(schedule) if schedule is not None else default_template(event.department, config)
        day_schedule = resolve_day_schedule(template, to_local(event.ts, tz).date())
        turno = detect_turno_at(day_schedule, event.ts, tz)
        result.turno = turno.to_dict() if turno is not None else None

        if event.type == ClockEventType.ENTRADA:
            shift_rows = session.execute(
                select(DepartmentShift).where(DepartmentShift.department == event.department)
            ).scalars().all()
            shifts = [NamedShift.from_model(row) for row in shift_rows]
            assigned = select_closest_shift_at(shifts, event.ts, tz)
            result.assigned_shift = assigned.to_dict() if assigned is not None else None
    except Exception:
        session.rollback()
        current_app.logger.warning("Could not annotate fichaje %s with turno/shift data", event.id, exc_info=True)
    return result


def current_status(session: Session, user_id: uuid.UUID, *, tz: tzinfo, now: datetime | None = None) -> dict[str, Any]:
    window = day_window(as_aware_utc(now or now_utc()), tz)
    day_events = list(session.execute(day_events_stmt(user_id, window)).scalars().all())
    latest = last_event(day_events)
    has_active_entry = latest is not None and latest.type == ClockEventType.ENTRADA
    return {
        "hasActiveEntry": has_active_entry,
        "currentFichaje": latest.to_dict() if has_active_entry else None,
        "expectedTipo": expected_next_type(day_events).value,
    }
