"""Monthly attendance report for one employee."""

from __future__ import annotations

import enum
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, tzinfo
from typing import Any, Iterable, Sequence

from fichajes.aggregation import SessionDay, group_events_by_day
from fichajes.calendar_days import month_days, to_local
from fichajes.models import LeaveStatus, LeaveType
from fichajes.report_export import format_decimal, to_csv_bytes
from fichajes.schedules import WEEKDAY_NAMES, ScheduleTemplate, resolve_day_schedule


MONTH_NAMES = (
    "Enero",
    "Febrero",
    "Marzo",
    "Abril",
    "Mayo",
    "Junio",
    "Julio",
    "Agosto",
    "Septiembre",
    "Octubre",
    "Noviembre",
    "Diciembre",
)
LEAVE_LABELS = {
    LeaveType.VACATION: "Vacaciones",
    LeaveType.SICK_LEAVE: "Baja médica",
    LeaveType.PERSONAL: "Asuntos propios",
    LeaveType.OTHER: "Permiso",
}
# Lower rank wins when several leaves cover the same day.
LEAVE_TYPE_RANK = {
    LeaveType.SICK_LEAVE: 0,
    LeaveType.PERSONAL: 1,
    LeaveType.VACATION: 2,
    LeaveType.OTHER: 3,
}
LEAVE_STATUS_RANK = {LeaveStatus.APPROVED: 0, LeaveStatus.PENDING: 1}

REPORT_HEADERS = ["Fecha", "Día", "Estado", "Entrada", "Salida", "Horas", "Incidencias"]


class DayKind(str, enum.Enum):
    FUTURE = "FUTURE"
    WEEKEND = "WEEKEND"
    LEAVE = "LEAVE"
    WORKED = "WORKED"
    DAY_OFF = "DAY_OFF"
    ABSENCE = "ABSENCE"


@dataclass
class ReportRow:
    day: date
    kind: DayKind
    status: str = ""
    first_entry: str = ""
    last_exit: str = ""
    hours: float | None = None
    incidents: list[str] = field(default_factory=list)
    leave_type: LeaveType | None = None
    late_arrivals: int = 0

    @property
    def weekday_name(self) -> str:
        return WEEKDAY_NAMES[self.day.weekday()]

    def as_csv_row(self) -> list[Any]:
        return [
            self.day,
            self.weekday_name,
            self.status,
            self.first_entry,
            self.last_exit,
            format_decimal(self.hours),
            ", ".join(self.incidents),
        ]


@dataclass
class ReportTotals:
    dias_trabajados: int = 0
    dias_vacaciones: int = 0
    dias_ausencia: int = 0
    retrasos: int = 0
    horas_totales: float = 0.0


@dataclass
class MonthlyReport:
    employee_name: str
    year: int
    month: int
    rows: list[ReportRow]
    totals: ReportTotals

    @property
    def period_label(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    @property
    def filename(self) -> str:
        return f"informe_asistencia_{slugify(self.employee_name)}_{self.year:04d}_{self.month:02d}.csv"

    def to_csv(self) -> bytes:
        preamble = [
            ["Informe de asistencia"],
            ["Empleado", self.employee_name],
            ["Periodo", self.period_label],
            [],
        ]
        footer = [
            [],
            ["RESUMEN"],
            ["Días trabajados", self.totals.dias_trabajados],
            ["Días de vacaciones", self.totals.dias_vacaciones],
            ["Días de ausencia", self.totals.dias_ausencia],
            ["Llegadas tarde", self.totals.retrasos],
            ["Horas totales", format_decimal(self.totals.horas_totales)],
        ]
        return to_csv_bytes(REPORT_HEADERS, [row.as_csv_row() for row in self.rows], preamble=preamble, footer=footer)


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", ascii_value).strip("_").lower()
    return slug or "empleado"


def leave_for_day(leaves: Iterable[Any], day: date) -> Any | None:
    """Most relevant approved/pending leave covering ``day``."""
    covering = [
        leave
        for leave in leaves
        if leave.status in LEAVE_STATUS_RANK and leave.date_from <= day <= leave.date_to
    ]
    if not covering:
        return None
    return min(covering, key=lambda leave: (LEAVE_STATUS_RANK[leave.status], LEAVE_TYPE_RANK[leave.type]))


def _leave_label(leave: Any) -> str:
    label = LEAVE_LABELS[leave.type]
    if leave.status == LeaveStatus.PENDING:
        label += " (pendiente)"
    return label


def _worked_row(session_day: SessionDay, tz: tzinfo, today: date) -> ReportRow:
    first_entry = session_day.first_entry
    last_exit = session_day.last_exit
    incidents = []
    if session_day.is_late:
        incidents.append("Llegada tarde")
    if session_day.is_early_departure:
        incidents.append("Salida anticipada")
    if not session_day.is_complete:
        incidents.append("Jornada en curso" if session_day.day == today else "Fichaje incompleto")

    return ReportRow(
        day=session_day.day,
        kind=DayKind.WORKED,
        status="Trabajado",
        first_entry=to_local(first_entry.ts, tz).strftime("%H:%M") if first_entry is not None else "",
        last_exit=to_local(last_exit.ts, tz).strftime("%H:%M") if last_exit is not None else "",
        hours=session_day.horas_trabajadas,
        incidents=incidents,
        late_arrivals=len(session_day.late_events),
    )


def build_monthly_report(
    *,
    employee_name: str,
    year: int,
    month: int,
    events: Sequence[Any],
    leaves: Sequence[Any],
    template: ScheduleTemplate | None,
    tz: tzinfo,
    today: date,
) -> MonthlyReport:
    """One row per day of the month plus running totals.

    Precedence per day: future, worked (has punches), leave, weekend,
    scheduled day off, and finally unexplained absence.
    """
    session_days = {session_day.day: session_day for session_day in group_events_by_day(events, template, tz)}
    rows: list[ReportRow] = []
    totals = ReportTotals()

    for day in month_days(year, month):
        if day > today:
            rows.append(ReportRow(day=day, kind=DayKind.FUTURE))
            continue

        session_day = session_days.get(day)
        if session_day is not None:
            row = _worked_row(session_day, tz, today)
            totals.dias_trabajados += 1
            totals.retrasos += row.late_arrivals
            totals.horas_totales += session_day.horas_trabajadas
            rows.append(row)
            continue

        leave = leave_for_day(leaves, day)
        if leave is not None:
            rows.append(ReportRow(day=day, kind=DayKind.LEAVE, status=_leave_label(leave), leave_type=leave.type))
            if leave.type == LeaveType.VACATION:
                totals.dias_vacaciones += 1
            continue

        if day.weekday() >= 5:
            rows.append(ReportRow(day=day, kind=DayKind.WEEKEND, status="Fin de semana"))
            continue

        if template is not None and resolve_day_schedule(template, day) is None:
            rows.append(ReportRow(day=day, kind=DayKind.DAY_OFF, status="Descanso"))
            continue

        if day == today:
            # The day is not over yet; no punches so far is not an absence.
            rows.append(ReportRow(day=day, kind=DayKind.FUTURE, status="Sin fichajes"))
            continue

        rows.append(ReportRow(day=day, kind=DayKind.ABSENCE, status="Ausencia", incidents=["Sin fichajes"]))
        totals.dias_ausencia += 1

    totals.horas_totales = round(totals.horas_totales, 2)
    return MonthlyReport(employee_name=employee_name, year=year, month=month, rows=rows, totals=totals)
