"""Worked-hours aggregation and per-day grouping of punches.

Nothing here touches the database: callers pass already fetched events
(anything with ``type`` and ``ts``) and the department schedule template.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence

from fichajes.calendar_days import as_aware_utc, local_day, minutes_of_day, to_local
from fichajes.models import ClockEventType
from fichajes.schedules import DaySchedule, ScheduleTemplate, resolve_day_schedule
from fichajes.sequencing import find_sequence_error
from fichajes.turnos import Turno, TurnoInfo, detect_turno_at


# Sessions shorter than this are treated as accidental double punches.
EARLY_DEPARTURE_NOISE_MINUTES = 10


@dataclass(frozen=True)
class WorkSession:
    entrada: Any
    salida: Any

    @property
    def seconds(self) -> int:
        return int((as_aware_utc(self.salida.ts) - as_aware_utc(self.entrada.ts)).total_seconds())

    @property
    def minutes(self) -> float:
        return self.seconds / 60


@dataclass
class SessionDay:
    day: date
    events: list[Any]
    sessions: list[WorkSession]
    worked_seconds: int
    horas_trabajadas: float
    is_complete: bool
    is_late: bool = False
    is_early_departure: bool = False
    is_day_off: bool = False
    turno: TurnoInfo | None = None
    day_schedule: DaySchedule | None = None
    sequence_error: str | None = None
    late_events: list[Any] = field(default_factory=list)

    @property
    def worked_minutes(self) -> float:
        return self.worked_seconds / 60

    @property
    def first_entry(self) -> Any | None:
        return next((event for event in self.events if event.type == ClockEventType.ENTRADA), None)

    @property
    def last_exit(self) -> Any | None:
        return next((event for event in reversed(self.events) if event.type == ClockEventType.SALIDA), None)

    def to_dict(self, tz: tzinfo) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "fichajes": [_event_dict(event) for event in self.events],
            "sessions": [
                {
                    "entrada": to_local(work_session.entrada.ts, tz).strftime("%H:%M"),
                    "salida": to_local(work_session.salida.ts, tz).strftime("%H:%M"),
                    "minutes": round(work_session.minutes, 2),
                }
                for work_session in self.sessions
            ],
            "horasTrabajadas": self.horas_trabajadas,
            "isComplete": self.is_complete,
            "isLate": self.is_late,
            "isEarlyDeparture": self.is_early_departure,
            "isDayOff": self.is_day_off,
            "turno": self.turno.to_dict() if self.turno is not None else None,
            "schedule": self.day_schedule.to_dict() if self.day_schedule is not None else None,
            "sequenceError": self.sequence_error,
        }


def _event_dict(event: Any) -> dict[str, Any]:
    if hasattr(event, "to_dict"):
        return event.to_dict()
    return {"tipo": ClockEventType(event.type).value, "timestamp": as_aware_utc(event.ts).isoformat()}


def sort_events(events: Iterable[Any]) -> list[Any]:
    return sorted(events, key=lambda event: as_aware_utc(event.ts))


def pair_sessions(events: Sequence[Any]) -> list[WorkSession]:
    """Positional pairing (0+1, 2+3, ...) keeping only ENTRADA→SALIDA pairs."""
    ordered = sort_events(events)
    sessions = []
    for index in range(0, len(ordered) - 1, 2):
        entrada, salida = ordered[index], ordered[index + 1]
        if entrada.type == ClockEventType.ENTRADA and salida.type == ClockEventType.SALIDA:
            sessions.append(WorkSession(entrada=entrada, salida=salida))
    return sessions


def seconds_to_hours(seconds: int) -> float:
    hours = (Decimal(seconds) / Decimal(3600)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(hours)


def calculate_worked_hours(events: Sequence[Any]) -> float:
    return seconds_to_hours(sum(work_session.seconds for work_session in pair_sessions(events)))


def is_late_arrival(event: Any, day_schedule: DaySchedule | None, tz: tzinfo) -> bool:
    if event.type != ClockEventType.ENTRADA or day_schedule is None:
        return False
    turno = detect_turno_at(day_schedule, event.ts, tz)
    if turno is None or turno.turno == Turno.FLEXIBLE:
        return False
    return minutes_of_day(event.ts, tz) > turno.expected_entry_minutes + day_schedule.tolerancia_minutos


def is_early_departure(
    event: Any,
    day_schedule: DaySchedule | None,
    tz: tzinfo,
    session_minutes: float | None = None,
) -> bool:
    if event.type != ClockEventType.SALIDA or day_schedule is None:
        return False
    if session_minutes is not None and session_minutes < EARLY_DEPARTURE_NOISE_MINUTES:
        return False
    turno = detect_turno_at(day_schedule, event.ts, tz)
    if turno is None or turno.turno == Turno.FLEXIBLE:
        return False
    return minutes_of_day(event.ts, tz) < turno.expected_exit_minutes - day_schedule.tolerancia_minutos


def build_session_day(day: date, events: Sequence[Any], day_schedule: DaySchedule | None, tz: tzinfo) -> SessionDay:
    ordered = sort_events(events)
    sessions = pair_sessions(ordered)
    worked_seconds = sum(work_session.seconds for work_session in sessions)
    expected_count = day_schedule.expected_event_count if day_schedule is not None else 2

    session_day = SessionDay(
        day=day,
        events=ordered,
        sessions=sessions,
        worked_seconds=worked_seconds,
        horas_trabajadas=seconds_to_hours(worked_seconds),
        is_complete=len(ordered) >= expected_count and len(ordered) % 2 == 0,
        is_day_off=day_schedule is None,
        day_schedule=day_schedule,
        sequence_error=find_sequence_error(ordered),
    )
    if ordered and day_schedule is not None:
        session_day.turno = detect_turno_at(day_schedule, ordered[0].ts, tz)

    if day_schedule is None or day_schedule.flexible_schedule:
        return session_day

    minutes_by_exit = {id(work_session.salida): work_session.minutes for work_session in sessions}
    for event in ordered:
        if is_late_arrival(event, day_schedule, tz):
            session_day.is_late = True
            session_day.late_events.append(event)
        elif is_early_departure(event, day_schedule, tz, minutes_by_exit.get(id(event))):
            session_day.is_early_departure = True
    return session_day


def group_events_by_day(events: Iterable[Any], template: ScheduleTemplate | None, tz: tzinfo) -> list[SessionDay]:
    """One SessionDay per local date present in ``events``, most recent first."""
    events_by_day: dict[date, list[Any]] = {}
    for event in events:
        events_by_day.setdefault(local_day(event.ts, tz), []).append(event)

    return [
        build_session_day(day, day_events, resolve_day_schedule(template, day), tz)
        for day, day_events in sorted(events_by_day.items(), key=lambda item: item[0], reverse=True)
    ]


def group_events_by_user(
    events: Iterable[Any],
    users: Sequence[Any],
    template: ScheduleTemplate | None,
    tz: tzinfo,
) -> list[dict[str, Any]]:
    events_by_user: dict[Any, list[Any]] = {}
    for event in events:
        events_by_user.setdefault(event.user_id, []).append(event)

    return [
        {
            "user": user.to_summary(),
            "fichajes": [
                session_day.to_dict(tz)
                for session_day in group_events_by_day(events_by_user.get(user.id, []), template, tz)
            ],
        }
        for user in users
    ]
