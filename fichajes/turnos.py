"""Detect which part of the working day ("turno") a punch belongs to."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any

from fichajes.calendar_days import minutes_of_day
from fichajes.schedules import DaySchedule, time_to_minutes


class Turno(str, enum.Enum):
    COMPLETA = "COMPLETA"
    MANANA = "MAÑANA"
    TARDE = "TARDE"
    FLEXIBLE = "FLEXIBLE"


@dataclass(frozen=True)
class TurnoInfo:
    turno: Turno
    expected_entry: str
    expected_exit: str
    label: str

    @property
    def expected_entry_minutes(self) -> int:
        return time_to_minutes(self.expected_entry) or 0

    @property
    def expected_exit_minutes(self) -> int:
        return time_to_minutes(self.expected_exit) or 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "turno": self.turno.value,
            "expectedEntry": self.expected_entry,
            "expectedExit": self.expected_exit,
            "label": self.label,
        }


def split_midpoint(day_schedule: DaySchedule) -> int | None:
    """Minute of day separating the morning and afternoon halves of a split day."""
    if not day_schedule.is_split:
        return None
    salida_manana = time_to_minutes(day_schedule.hora_salida_manana)
    entrada_tarde = time_to_minutes(day_schedule.hora_entrada_tarde)
    # Half-up rounding, so a 1-minute odd break lands on the later minute.
    return (salida_manana + entrada_tarde + 1) // 2


def detect_turno(day_schedule: DaySchedule | None, clock_minutes: int) -> TurnoInfo | None:
    if day_schedule is None:
        return None

    if day_schedule.flexible_schedule:
        return TurnoInfo(
            turno=Turno.FLEXIBLE,
            expected_entry=day_schedule.hora_entrada,
            expected_exit=day_schedule.hora_salida,
            label="Horario Flexible",
        )

    midpoint = split_midpoint(day_schedule)
    if midpoint is not None:
        if clock_minutes < midpoint:
            return TurnoInfo(
                turno=Turno.MANANA,
                expected_entry=day_schedule.hora_entrada,
                expected_exit=day_schedule.hora_salida_manana,
                label=f"Turno Mañana ({day_schedule.hora_entrada} - {day_schedule.hora_salida_manana})",
            )
        return TurnoInfo(
            turno=Turno.TARDE,
            expected_entry=day_schedule.hora_entrada_tarde,
            expected_exit=day_schedule.hora_salida,
            label=f"Turno Tarde ({day_schedule.hora_entrada_tarde} - {day_schedule.hora_salida})",
        )

    return TurnoInfo(
        turno=Turno.COMPLETA,
        expected_entry=day_schedule.hora_entrada,
        expected_exit=day_schedule.hora_salida,
        label=f"Jornada Completa ({day_schedule.hora_entrada} - {day_schedule.hora_salida})",
    )


def detect_turno_at(day_schedule: DaySchedule | None, ts: datetime, tz: tzinfo) -> TurnoInfo | None:
    return detect_turno(day_schedule, minutes_of_day(ts, tz))
