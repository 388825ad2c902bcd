from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from conftest import MADRID, local_dt
from fichajes.schedules import DaySchedule
from fichajes.shift_matching import NamedShift, parse_active_days, select_closest_shift, select_closest_shift_at
from fichajes.turnos import Turno, detect_turno, detect_turno_at, split_midpoint


SPLIT = DaySchedule(hora_entrada="09:00", hora_salida="18:00", hora_entrada_tarde="15:00", hora_salida_manana="13:00")
CONTINUOUS = DaySchedule(hora_entrada="08:00", hora_salida="15:00")
MONDAY = date(2025, 3, 10)


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def test_split_midpoint_is_between_morning_exit_and_afternoon_entry():
    assert split_midpoint(SPLIT) == 840
    assert split_midpoint(CONTINUOUS) is None


@pytest.mark.parametrize(
    ("clock", "expected"),
    [("08:55", Turno.MANANA), ("13:50", Turno.MANANA), ("14:00", Turno.TARDE), ("14:10", Turno.TARDE)],
)
def test_split_day_classification(clock, expected):
    assert detect_turno(SPLIT, _minutes(clock)).turno == expected


def test_morning_and_afternoon_windows():
    morning = detect_turno(SPLIT, _minutes("09:05"))
    afternoon = detect_turno(SPLIT, _minutes("15:02"))

    assert (morning.expected_entry, morning.expected_exit) == ("09:00", "13:00")
    assert morning.label == "Turno Mañana (09:00 - 13:00)"
    assert (afternoon.expected_entry, afternoon.expected_exit) == ("15:00", "18:00")
    assert afternoon.to_dict()["turno"] == "TARDE"


def test_odd_break_rounds_midpoint_up():
    schedule = DaySchedule(hora_entrada="09:00", hora_salida="18:00", hora_entrada_tarde="14:01", hora_salida_manana="14:00")
    assert split_midpoint(schedule) == 841


def test_flexible_wins_over_split():
    flexible = DaySchedule(
        hora_entrada="07:00",
        hora_salida="19:00",
        hora_entrada_tarde="15:00",
        hora_salida_manana="13:00",
        flexible_schedule=True,
    )
    info = detect_turno(flexible, _minutes("16:00"))
    assert info.turno == Turno.FLEXIBLE
    assert (info.expected_entry, info.expected_exit) == ("07:00", "19:00")


def test_continuous_day_and_missing_schedule():
    info = detect_turno(CONTINUOUS, _minutes("14:00"))
    assert info.turno == Turno.COMPLETA
    assert info.label == "Jornada Completa (08:00 - 15:00)"
    assert detect_turno(None, 600) is None


def test_detect_turno_at_uses_local_time():
    # 12:30 UTC is 13:30 in Madrid during winter time.
    utc_ts = datetime(2025, 1, 13, 12, 30, tzinfo=timezone.utc)
    assert detect_turno_at(SPLIT, utc_ts, MADRID).turno == Turno.MANANA


def _shift(name: str, entrada: str, tolerance: int = 10, days: str = "LUNES,MARTES,MIERCOLES,JUEVES,VIERNES"):
    return NamedShift(
        name=name,
        hora_entrada=entrada,
        hora_salida="23:00",
        tolerancia_minutos=tolerance,
        active_days=parse_active_days(days),
    )


def test_shift_matcher_prefers_shift_within_tolerance():
    early = _shift("Mañana", "07:00", tolerance=5)
    late = _shift("Intermedio", "07:30", tolerance=30)
    # 07:12 is closer to 07:00 but only within tolerance of 07:30.
    assert select_closest_shift([early, late], 0, _minutes("07:12")) is late


def test_shift_matcher_falls_back_to_closest_active_shift():
    morning = _shift("Mañana", "06:00", tolerance=0)
    evening = _shift("Tarde", "14:00", tolerance=0)
    assert select_closest_shift([morning, evening], 1, _minutes("09:00")) is morning
    assert select_closest_shift([morning, evening], 1, _minutes("12:00")) is evening


def test_shift_matcher_ignores_inactive_days():
    weekend = _shift("Finde", "10:00", days="SABADO,DOMINGO")
    weekday = _shift("Semana", "18:00")
    assert select_closest_shift([weekend, weekday], 5, _minutes("10:00")) is weekend
    assert select_closest_shift([weekend, weekday], 0, _minutes("10:00")) is weekday
    assert select_closest_shift([weekday], 6, _minutes("18:00")) is None


def test_shift_matcher_keeps_first_of_equal_candidates():
    first = _shift("A", "08:00")
    second = _shift("B", "08:00")
    assert select_closest_shift([first, second], 2, _minutes("08:03")) is first


def test_shift_matcher_at_timestamp():
    shifts = [_shift("Mañana", "07:00"), _shift("Tarde", "15:00")]
    match = select_closest_shift_at(shifts, local_dt(MONDAY, "14:52"), MADRID)
    assert match.name == "Tarde"
    assert match.to_dict()["activeDays"] == ["LUNES", "MARTES", "MIERCOLES", "JUEVES", "VIERNES"]
