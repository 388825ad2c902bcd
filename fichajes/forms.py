"""WTForms request schemas.

The API is JSON; ``json_form`` feeds the request body to a form so the usual
WTForms validators apply. Keys that are ``null`` are dropped so optional
fields behave as if they had not been sent.
"""

from __future__ import annotations

from typing import Any, TypeVar

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import (
    BooleanField,
    FloatField,
    IntegerField,
    PasswordField,
    SelectField,
    SelectMultipleField,
    StringField,
    TextAreaField,
)
from wtforms.validators import AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional, Regexp
from wtforms.validators import ValidationError as FieldValidationError

from fichajes.errors import ValidationError
from fichajes.schedules import TIME_PATTERN
from fichajes.shift_matching import SHIFT_DAY_NAMES


_strip = lambda value: value.strip() if isinstance(value, str) else value  # noqa: E731
_upper = lambda value: value.strip().upper() if isinstance(value, str) else value  # noqa: E731


def _time_field(json_name: str, label: str, required: bool = True) -> StringField:
    presence = DataRequired(message=f"El campo {json_name} es obligatorio") if required else Optional()
    return StringField(
        label,
        name=json_name,
        validators=[presence, Regexp(TIME_PATTERN, message=f"Formato de {label} inválido. Use HH:mm")],
        filters=[_strip],
    )


def _was_sent(field) -> bool:
    return bool(field.raw_data) and bool(str(field.raw_data[0]).strip())


class CoordinateField(FloatField):
    def process_formdata(self, valuelist):
        try:
            super().process_formdata(valuelist)
        except ValueError:
            raise ValueError(f"El campo {self.name} debe ser numérico") from None


def _coordinate_field(json_name: str, label: str, minimum: float, maximum: float | None = None) -> CoordinateField:
    if maximum is None:
        message = f"El campo {json_name} no puede ser negativo"
    else:
        message = f"El campo {json_name} debe estar entre {minimum:g} y {maximum:g}"
    return CoordinateField(
        label,
        name=json_name,
        validators=[Optional(), NumberRange(min=minimum, max=maximum, message=message)],
    )


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)], filters=[_strip])
    password = PasswordField("Password", validators=[DataRequired(), Length(max=255)])
    remember = BooleanField("Remember me")


class ClockEventForm(FlaskForm):
    tipo = SelectField(
        "Tipo",
        choices=[("ENTRADA", "Entrada"), ("SALIDA", "Salida")],
        validate_choice=False,
        filters=[_upper],
        validators=[
            DataRequired(message="El tipo debe ser ENTRADA o SALIDA"),
            AnyOf(["ENTRADA", "SALIDA"], message="El tipo debe ser ENTRADA o SALIDA"),
        ],
    )
    latitude = _coordinate_field("latitude", "Latitud", -90, 90)
    longitude = _coordinate_field("longitude", "Longitud", -180, 180)
    accuracy = _coordinate_field("accuracy", "Precisión", 0)

    def validate_latitude(self, field):
        if not _was_sent(self.longitude):
            raise FieldValidationError("latitude y longitude deben enviarse juntas")

    def validate_longitude(self, field):
        if not _was_sent(self.latitude):
            raise FieldValidationError("latitude y longitude deben enviarse juntas")


class ScheduleForm(FlaskForm):
    department = StringField(
        "Departamento",
        validators=[DataRequired(message="El departamento es obligatorio"), Length(max=128)],
        filters=[_strip],
    )
    hora_entrada = _time_field("horaEntrada", "hora de entrada")
    hora_salida = _time_field("horaSalida", "hora de salida")
    hora_entrada_tarde = _time_field("horaEntradaTarde", "hora de entrada tarde", required=False)
    hora_salida_manana = _time_field("horaSalidaMañana", "hora de salida mañana", required=False)
    tolerancia_minutos = IntegerField(
        "Tolerancia",
        name="toleranciaMinutos",
        default=10,
        validators=[Optional(), NumberRange(min=0, max=240, message="La tolerancia debe estar entre 0 y 240 minutos")],
    )
    flexible_schedule = BooleanField("Horario flexible", name="flexibleSchedule")


class ShiftForm(FlaskForm):
    name = StringField(
        "Nombre",
        validators=[DataRequired(message="El nombre del turno es obligatorio"), Length(max=128)],
        filters=[_strip],
    )
    hora_entrada = _time_field("horaEntrada", "hora de entrada")
    hora_salida = _time_field("horaSalida", "hora de salida")
    tolerancia_minutos = IntegerField(
        "Tolerancia",
        name="toleranciaMinutos",
        default=10,
        validators=[Optional(), NumberRange(min=0, max=240, message="La tolerancia debe estar entre 0 y 240 minutos")],
    )
    active_days = SelectMultipleField(
        "Días activos",
        name="activeDays",
        choices=[(day, day.title()) for day in SHIFT_DAY_NAMES],
        validate_choice=False,
        filters=[lambda values: [_upper(value) for value in values or []]],
        validators=[DataRequired(message="Selecciona al menos un día activo")],
    )

    def validate_hora_salida(self, field):
        if self.hora_entrada.data and field.data and self.hora_entrada.data == field.data:
            raise FieldValidationError("La hora de salida debe ser distinta de la de entrada")

    def validate_active_days(self, field):
        unknown = [day for day in field.data if day not in SHIFT_DAY_NAMES]
        if unknown:
            raise FieldValidationError(f"Día no válido: {unknown[0]}")


class AdjustmentForm(FlaskForm):
    fichaje_id = StringField(
        "Fichaje",
        name="fichajeId",
        validators=[DataRequired(message="Se requieren fichajeId, requestedTimestamp y reason")],
        filters=[_strip],
    )
    requested_timestamp = StringField(
        "Hora solicitada",
        name="requestedTimestamp",
        validators=[DataRequired(message="Se requieren fichajeId, requestedTimestamp y reason")],
        filters=[_strip],
    )
    reason = TextAreaField(
        "Motivo",
        validators=[InputRequired(message="Se requieren fichajeId, requestedTimestamp y reason"), Length(max=2000)],
    )


class RejectForm(FlaskForm):
    rejection_reason = TextAreaField("Motivo del rechazo", name="rejectionReason", validators=[Optional(), Length(max=2000)])


class LateNotificationForm(FlaskForm):
    fichaje_id = StringField(
        "Fichaje",
        name="fichajeId",
        validators=[DataRequired(message="El campo fichajeId es obligatorio")],
        filters=[_strip],
    )


class JustifyForm(FlaskForm):
    justificacion = TextAreaField(
        "Justificación",
        validators=[InputRequired(message="La justificación es obligatoria"), Length(max=2000)],
    )


F = TypeVar("F", bound=FlaskForm)


def json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def json_form(form_cls: type[F], payload: dict[str, Any] | None = None) -> F:
    payload = json_payload() if payload is None else payload
    formdata = MultiDict()
    for key, value in payload.items():
        if value is None or isinstance(value, dict):
            continue
        for item in value if isinstance(value, list) else [value]:
            formdata.add(key, _as_form_value(item))
    return form_cls(formdata=formdata)


def _as_form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def validated(form: F) -> F:
    """Return ``form`` if it validates, else raise with the first error."""
    if form.validate():
        return form
    for field in form:
        if field.errors:
            raise ValidationError(str(field.errors[0]))
    raise ValidationError("Datos inválidos")
