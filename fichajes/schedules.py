"""Department schedule resolution.

A department has one base schedule and, per weekday, an optional override
which is either a day off or a partial set of fields merged over the base.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Mapping, Union

from fichajes.errors import ValidationError
from fichajes.models import DepartmentSchedule


TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

# Indexed by date.weekday(): Monday == 0.
WEEKDAY_KEYS = ("lunes", "martes", "miercoles", "jueves", "viernes", "sabado", "domingo")
WEEKDAY_NAMES = ("Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo")

TIME_FIELD_LABELS = {
    "horaEntrada": "hora de entrada",
    "horaSalida": "hora de salida",
    "horaEntradaTarde": "hora de entrada tarde",
    "horaSalidaMañana": "hora de salida mañana",
}


def is_valid_hhmm(value: object) -> bool:
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def time_to_minutes(value: str | None) -> int | None:
    if not value:
        return None
    hours, minutes = value.split(":", 1)
    return int(hours) * 60 + int(minutes)


def normalize_hhmm(value: str) -> str:
    hours, minutes = value.split(":", 1)
    return f"{int(hours):02d}:{int(minutes):02d}"


@dataclass(frozen=True)
class DaySchedule:
    hora_entrada: str
    hora_salida: str
    hora_entrada_tarde: str | None = None
    hora_salida_manana: str | None = None
    tolerancia_minutos: int = 10
    flexible_schedule: bool = False
    is_override: bool = False
    day_name: str = ""

    @property
    def is_split(self) -> bool:
        return bool(self.hora_entrada_tarde and self.hora_salida_manana)

    @property
    def expected_event_count(self) -> int:
        return 4 if self.is_split else 2

    def to_dict(self) -> dict[str, Any]:
        return {
            "horaEntrada": self.hora_entrada,
            "horaSalida": self.hora_salida,
            "horaEntradaTarde": self.hora_entrada_tarde,
            "horaSalidaMañana": self.hora_salida_manana,
            "toleranciaMinutos": self.tolerancia_minutos,
            "flexibleSchedule": self.flexible_schedule,
            "isOverride": self.is_override,
            "dayName": self.day_name,
        }


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class NoOverride:
    pass


@dataclass(frozen=True)
class DayOff:
    pass


@dataclass(frozen=True)
class PartialOverride:
    """Fields left as ``UNSET`` fall back to the base schedule.

    The split-shift fields accept an explicit ``None`` which clears the
    base value for that day (turning a split day into a continuous one).
    """

    hora_entrada: str | Any = UNSET
    hora_salida: str | Any = UNSET
    hora_entrada_tarde: str | None | Any = UNSET
    hora_salida_manana: str | None | Any = UNSET
    tolerancia_minutos: int | Any = UNSET
    flexible_schedule: bool | Any = UNSET


DayOverride = Union[NoOverride, DayOff, PartialOverride]

NO_OVERRIDE = NoOverride()
DAY_OFF = DayOff()


@dataclass(frozen=True)
class ScheduleTemplate:
    department: str
    base: DaySchedule
    overrides: tuple[DayOverride, ...] = field(default=(NO_OVERRIDE,) * 7)


def resolve_day_schedule(template: ScheduleTemplate | None, day: date) -> DaySchedule | None:
    """Effective schedule for ``day``; ``None`` means day off or no schedule."""
    if template is None:
        return None

    weekday = day.weekday()
    override = template.overrides[weekday] if weekday < len(template.overrides) else NO_OVERRIDE
    base = template.base
    day_name = WEEKDAY_NAMES[weekday]

    if isinstance(override, DayOff):
        return None

    if isinstance(override, PartialOverride):
        return DaySchedule(
            hora_entrada=_pick(override.hora_entrada, base.hora_entrada),
            hora_salida=_pick(override.hora_salida, base.hora_salida),
            hora_entrada_tarde=_pick(override.hora_entrada_tarde, base.hora_entrada_tarde),
            hora_salida_manana=_pick(override.hora_salida_manana, base.hora_salida_manana),
            tolerancia_minutos=_pick(override.tolerancia_minutos, base.tolerancia_minutos),
            flexible_schedule=_pick(override.flexible_schedule, base.flexible_schedule),
            is_override=True,
            day_name=day_name,
        )

    return replace(base, is_override=False, day_name=day_name)


def all_day_schedules(template: ScheduleTemplate | None) -> dict[str, DaySchedule | None]:
    # 2024-01-01 was a Monday.
    return {
        WEEKDAY_NAMES[offset]: resolve_day_schedule(template, date(2024, 1, 1 + offset))
        for offset in range(7)
    }


def _pick(value: Any, fallback: Any) -> Any:
    return fallback if value is UNSET else value


def default_template(department: str, config: Mapping[str, Any]) -> ScheduleTemplate:
    return ScheduleTemplate(
        department=department,
        base=DaySchedule(
            hora_entrada=config.get("DEFAULT_HORA_ENTRADA", "09:00"),
            hora_salida=config.get("DEFAULT_HORA_SALIDA", "18:00"),
            tolerancia_minutos=int(config.get("DEFAULT_TOLERANCIA_MINUTOS", 10)),
        ),
    )


def template_from_model(schedule: DepartmentSchedule) -> ScheduleTemplate:
    return ScheduleTemplate(
        department=schedule.department,
        base=DaySchedule(
            hora_entrada=schedule.hora_entrada,
            hora_salida=schedule.hora_salida,
            hora_entrada_tarde=schedule.hora_entrada_tarde or None,
            hora_salida_manana=schedule.hora_salida_manana or None,
            tolerancia_minutos=schedule.tolerancia_minutos,
            flexible_schedule=bool(schedule.flexible_schedule),
        ),
        overrides=overrides_from_json(schedule.overrides_json),
    )


def load_department_template(session: Any, department: str, config: Mapping[str, Any]) -> ScheduleTemplate:
    """Stored template for ``department``, or the configured default."""
    schedule = session.get(DepartmentSchedule, department) if department else None
    if schedule is None:
        return default_template(department, config)
    return template_from_model(schedule)


def template_to_dict(template: ScheduleTemplate, *, is_default: bool = False) -> dict[str, Any]:
    base = template.base.to_dict()
    base.pop("isOverride")
    base.pop("dayName")
    return {
        "department": template.department,
        **base,
        "overrides": overrides_to_json(template.overrides),
        "isDefault": is_default,
    }


def overrides_from_json(raw: Mapping[str, Any] | None) -> tuple[DayOverride, ...]:
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ValidationError("Configuracion invalida de horarios por dia.")
    return tuple(parse_day_override(raw.get(key), WEEKDAY_NAMES[index]) for index, key in enumerate(WEEKDAY_KEYS))


def overrides_to_json(overrides: tuple[DayOverride, ...]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, override in zip(WEEKDAY_KEYS, overrides):
        if isinstance(override, DayOff):
            payload[key] = {"dayOff": True}
        elif isinstance(override, PartialOverride):
            payload[key] = _partial_to_json(override)
    return payload


_PARTIAL_FIELDS = (
    ("horaEntrada", "hora_entrada"),
    ("horaSalida", "hora_salida"),
    ("horaEntradaTarde", "hora_entrada_tarde"),
    ("horaSalidaMañana", "hora_salida_manana"),
    ("toleranciaMinutos", "tolerancia_minutos"),
    ("flexibleSchedule", "flexible_schedule"),
)


def _partial_to_json(override: PartialOverride) -> dict[str, Any]:
    return {
        json_key: getattr(override, attr)
        for json_key, attr in _PARTIAL_FIELDS
        if getattr(override, attr) is not UNSET
    }


def parse_day_override(raw: Any, day_name: str) -> DayOverride:
    """Turn a stored/submitted override blob into its tagged variant."""
    if raw is None:
        return NO_OVERRIDE
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Configuracion invalida para el {day_name}.")
    day_off = raw.get("dayOff")
    if day_off is not None and not isinstance(day_off, bool):
        raise ValidationError(f"Configuracion invalida para el {day_name}.")
    if day_off:
        return DAY_OFF

    values: dict[str, Any] = {}
    for json_key, attr in _PARTIAL_FIELDS:
        if json_key not in raw:
            continue
        value = raw[json_key]
        if json_key in TIME_FIELD_LABELS:
            if value in (None, ""):
                # Required fields cannot be cleared; split fields can.
                if json_key in ("horaEntradaTarde", "horaSalidaMañana"):
                    values[attr] = None
                continue
            if not is_valid_hhmm(value):
                raise ValidationError(
                    f"Formato de {TIME_FIELD_LABELS[json_key]} invalido para el {day_name}. Use HH:mm"
                )
            values[attr] = normalize_hhmm(value)
        elif json_key == "toleranciaMinutos":
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"La tolerancia del {day_name} debe ser un entero positivo.")
            values[attr] = value
        else:
            if value is None:
                continue
            if not isinstance(value, bool):
                raise ValidationError(f"El horario flexible del {day_name} debe ser true o false.")
            values[attr] = value

    if not values:
        return NO_OVERRIDE
    return PartialOverride(**values)


def validate_template(template: ScheduleTemplate) -> None:
    """Reject templates whose resolved days would have exit before entry."""
    for day_name, day_schedule in all_day_schedules(template).items():
        if day_schedule is None:
            continue
        entrada = time_to_minutes(day_schedule.hora_entrada)
        salida = time_to_minutes(day_schedule.hora_salida)
        if entrada is not None and salida is not None and entrada > salida:
            raise ValidationError(f"La hora de salida debe ser posterior a la de entrada ({day_name}).")
        if bool(day_schedule.hora_entrada_tarde) != bool(day_schedule.hora_salida_manana):
            raise ValidationError(
                f"La jornada partida requiere hora de salida mañana y hora de entrada tarde ({day_name})."
            )
