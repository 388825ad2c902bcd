"""Pick the named shift a clock-in belongs to."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Iterable, Sequence

from fichajes.calendar_days import to_local
from fichajes.models import DepartmentShift
from fichajes.schedules import time_to_minutes


# Indexed by date.weekday(): Monday == 0.
SHIFT_DAY_NAMES = ("LUNES", "MARTES", "MIERCOLES", "JUEVES", "VIERNES", "SABADO", "DOMINGO")


@dataclass(frozen=True)
class NamedShift:
    name: str
    hora_entrada: str
    hora_salida: str
    tolerancia_minutos: int
    active_days: frozenset[str]
    id: str | None = None

    @classmethod
    def from_model(cls, shift: DepartmentShift) -> "NamedShift":
        return cls(
            id=str(shift.id),
            name=shift.name,
            hora_entrada=shift.hora_entrada,
            hora_salida=shift.hora_salida,
            tolerancia_minutos=shift.tolerancia_minutos,
            active_days=parse_active_days(shift.active_days),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "horaEntrada": self.hora_entrada,
            "horaSalida": self.hora_salida,
            "toleranciaMinutos": self.tolerancia_minutos,
            "activeDays": [day for day in SHIFT_DAY_NAMES if day in self.active_days],
        }


def parse_active_days(raw: str | Iterable[str] | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    chunks = raw.split(",") if isinstance(raw, str) else raw
    return frozenset(chunk.strip().upper() for chunk in chunks if chunk and chunk.strip())


def select_closest_shift(shifts: Sequence[NamedShift], weekday: int, clock_minutes: int) -> NamedShift | None:
    """Closest active shift by entry time, preferring those within their tolerance.

    When no active shift is within tolerance the globally closest one is
    returned, so a punch on a day with active shifts is never left unassigned.
    """
    day_name = SHIFT_DAY_NAMES[weekday]
    active = [shift for shift in shifts if day_name in shift.active_days]
    if not active:
        return None

    def distance(shift: NamedShift) -> int:
        return abs(clock_minutes - (time_to_minutes(shift.hora_entrada) or 0))

    within_tolerance = [shift for shift in active if distance(shift) <= shift.tolerancia_minutos]
    candidates = within_tolerance or active
    # min() keeps the first of equally distant shifts.
    return min(candidates, key=distance)


def select_closest_shift_at(shifts: Sequence[NamedShift], ts: datetime, tz: tzinfo) -> NamedShift | None:
    local_ts = to_local(ts, tz)
    return select_closest_shift(shifts, local_ts.weekday(), local_ts.hour * 60 + local_ts.minute)
