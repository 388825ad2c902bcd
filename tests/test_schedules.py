from __future__ import annotations

from datetime import date, timedelta

import pytest

from fichajes.errors import ValidationError
from fichajes.schedules import (
    DAY_OFF,
    NO_OVERRIDE,
    DayOff,
    DaySchedule,
    PartialOverride,
    ScheduleTemplate,
    all_day_schedules,
    default_template,
    overrides_from_json,
    overrides_to_json,
    parse_day_override,
    resolve_day_schedule,
    validate_template,
)


MONDAY = date(2025, 3, 10)


def _template(**overrides_by_weekday) -> ScheduleTemplate:
    overrides = [NO_OVERRIDE] * 7
    for weekday, override in overrides_by_weekday.items():
        overrides[int(weekday.lstrip("d"))] = override
    return ScheduleTemplate(
        department="Cocina",
        base=DaySchedule(
            hora_entrada="09:00",
            hora_salida="18:00",
            hora_entrada_tarde="15:00",
            hora_salida_manana="13:00",
            tolerancia_minutos=10,
        ),
        overrides=tuple(overrides),
    )


def test_resolver_returns_complete_schedule_or_none_for_every_weekday():
    template = _template(
        d2=PartialOverride(tolerancia_minutos=5),
        d5=DAY_OFF,
        d6=PartialOverride(hora_entrada_tarde=None, hora_salida_manana=None, hora_salida="14:00"),
    )
    for offset in range(7):
        resolved = resolve_day_schedule(template, MONDAY + timedelta(days=offset))
        if resolved is None:
            assert offset == 5
            continue
        assert resolved.hora_entrada
        assert resolved.hora_salida
        assert resolved.tolerancia_minutos is not None
        assert isinstance(resolved.flexible_schedule, bool)
        assert resolved.day_name


def test_tolerance_only_override_keeps_base_times():
    template = _template(d2=PartialOverride(tolerancia_minutos=25))
    resolved = resolve_day_schedule(template, MONDAY + timedelta(days=2))

    assert resolved.hora_entrada == "09:00"
    assert resolved.hora_salida == "18:00"
    assert resolved.hora_salida_manana == "13:00"
    assert resolved.hora_entrada_tarde == "15:00"
    assert resolved.tolerancia_minutos == 25
    assert resolved.is_override is True
    assert resolved.day_name == "Miércoles"


def test_day_off_override_resolves_to_none():
    template = _template(d0=DAY_OFF)
    assert resolve_day_schedule(template, MONDAY) is None
    assert resolve_day_schedule(template, MONDAY + timedelta(days=1)) is not None


def test_override_can_clear_split_fields():
    template = _template(d4=PartialOverride(hora_entrada_tarde=None, hora_salida_manana=None, hora_salida="15:00"))
    friday = resolve_day_schedule(template, MONDAY + timedelta(days=4))

    assert friday.is_split is False
    assert friday.expected_event_count == 2
    assert friday.hora_salida == "15:00"


def test_missing_template_resolves_to_none():
    assert resolve_day_schedule(None, MONDAY) is None


def test_resolver_does_not_mutate_template():
    template = _template(d1=PartialOverride(hora_entrada="10:00"))
    before = (template.base, template.overrides)
    resolve_day_schedule(template, MONDAY + timedelta(days=1))
    assert (template.base, template.overrides) == before


def test_default_template_uses_configured_hours():
    template = default_template("Sala", {"DEFAULT_HORA_ENTRADA": "08:00", "DEFAULT_HORA_SALIDA": "16:00"})
    resolved = resolve_day_schedule(template, MONDAY)

    assert (resolved.hora_entrada, resolved.hora_salida, resolved.tolerancia_minutos) == ("08:00", "16:00", 10)
    assert resolved.is_split is False


def test_all_day_schedules_uses_spanish_day_names():
    days = all_day_schedules(_template(d6=DAY_OFF))
    assert list(days) == ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]
    assert days["Domingo"] is None


def test_parse_day_override_variants():
    assert parse_day_override(None, "Lunes") is NO_OVERRIDE
    assert isinstance(parse_day_override({"dayOff": True}, "Lunes"), DayOff)
    assert parse_day_override({}, "Lunes") is NO_OVERRIDE

    partial = parse_day_override({"horaEntrada": "8:30", "flexibleSchedule": True}, "Lunes")
    assert partial == PartialOverride(hora_entrada="08:30", flexible_schedule=True)


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ({"horaEntrada": "25:00"}, "Formato de hora de entrada invalido para el Martes. Use HH:mm"),
        ({"horaSalidaMañana": "13:5"}, "Formato de hora de salida mañana invalido para el Martes. Use HH:mm"),
        ({"toleranciaMinutos": -1}, "La tolerancia del Martes debe ser un entero positivo."),
        ("libre", "Configuracion invalida para el Martes."),
        ({"dayOff": "true"}, "Configuracion invalida para el Martes."),
        ({"flexibleSchedule": "false"}, "El horario flexible del Martes debe ser true o false."),
        ({"flexibleSchedule": 1}, "El horario flexible del Martes debe ser true o false."),
    ],
)
def test_parse_day_override_rejects_malformed_values(raw, message):
    with pytest.raises(ValidationError) as exc_info:
        parse_day_override(raw, "Martes")
    assert exc_info.value.message == message


@pytest.mark.parametrize("raw", ["lunes", ["lunes"], 3])
def test_overrides_must_be_an_object(raw):
    with pytest.raises(ValidationError, match="Configuracion invalida de horarios por dia."):
        overrides_from_json(raw)


def test_overrides_json_keeps_only_set_fields():
    overrides = overrides_from_json({"lunes": {"toleranciaMinutos": 0}, "domingo": {"dayOff": True}})
    assert overrides_to_json(overrides) == {"lunes": {"toleranciaMinutos": 0}, "domingo": {"dayOff": True}}


def test_validate_template_rejects_exit_before_entry():
    template = _template(d3=PartialOverride(hora_salida="08:00"))
    with pytest.raises(ValidationError, match="Jueves"):
        validate_template(template)


def test_validate_template_requires_both_split_fields():
    template = _template(d1=PartialOverride(hora_entrada_tarde=None))
    with pytest.raises(ValidationError, match="jornada partida"):
        validate_template(template)
