from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import select

from conftest import MADRID, login, user_by_email
from fichajes.extensions import db
from fichajes.models import AuditLog, ClockEventType, LateArrivalNotification
from fichajes.sequencing import record_clock_event


# Default schedule is 09:00 with 10 minutes of tolerance (Madrid is UTC+1 in March).
LATE = datetime(2025, 3, 10, 8, 30, tzinfo=timezone.utc)
ON_TIME = datetime(2025, 3, 10, 8, 5, tzinfo=timezone.utc)


def _punch(email: str, when: datetime, tipo: ClockEventType = ClockEventType.ENTRADA) -> str:
    user = user_by_email(email)
    return str(record_clock_event(db.session, user.id, tipo, tz=MADRID, now=when).id)


def _flag(client, fichaje_id: str):
    return client.post("/api/late-notifications", json={"fichajeId": fichaje_id})


def test_manager_flags_late_entry_and_employee_justifies(client):
    fichaje_id = _punch("ana@example.com", LATE)
    login(client, "marta@example.com")

    created = _flag(client, fichaje_id)
    assert created.status_code == 201
    notice = created.get_json()
    assert notice["fichajeId"] == fichaje_id
    assert notice["fecha"] == "2025-03-10"
    assert notice["leido"] is False
    assert notice["justificado"] is False
    assert notice["manager"]["name"] == "Marta Ruiz"
    assert notice["user"]["email"] == "ana@example.com"

    duplicate = _flag(client, fichaje_id)
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "Ya existe una notificación para este fichaje"
    client.post("/logout")

    login(client, "ana@example.com")
    mine = client.get("/api/late-notifications").get_json()["notifications"]
    assert [item["id"] for item in mine] == [notice["id"]]

    blank = client.post(f"/api/late-notifications/{notice['id']}/justify", json={"justificacion": "   "})
    assert blank.status_code == 400
    assert blank.get_json()["error"] == "La justificación es obligatoria"

    justified = client.post(
        f"/api/late-notifications/{notice['id']}/justify",
        json={"justificacion": "  Retraso del metro  "},
    )
    assert justified.status_code == 200
    body = justified.get_json()
    assert body["justificado"] is True
    assert body["leido"] is True
    assert body["justificacionTexto"] == "Retraso del metro"
    assert body["justifiedAt"] is not None
    client.post("/logout")

    login(client, "marta@example.com")
    sent = client.get("/api/late-notifications/sent").get_json()["notifications"]
    assert [item["justificacionTexto"] for item in sent] == ["Retraso del metro"]


def test_justification_is_required(client):
    fichaje_id = _punch("ana@example.com", LATE)
    login(client, "marta@example.com")
    notice_id = _flag(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "ana@example.com")
    response = client.post(f"/api/late-notifications/{notice_id}/justify", json={})
    assert response.status_code == 400
    assert response.get_json()["error"] == "La justificación es obligatoria"


def test_on_time_entry_cannot_be_flagged(client):
    fichaje_id = _punch("ana@example.com", ON_TIME)
    login(client, "marta@example.com")

    response = _flag(client, fichaje_id)
    assert response.status_code == 400
    assert response.get_json()["error"] == "El fichaje no es una llegada tarde"


def test_exit_cannot_be_flagged(client):
    _punch("ana@example.com", LATE)
    salida_id = _punch("ana@example.com", datetime(2025, 3, 10, 17, 0, tzinfo=timezone.utc), ClockEventType.SALIDA)
    login(client, "marta@example.com")

    response = _flag(client, salida_id)
    assert response.status_code == 400
    assert response.get_json()["error"] == "El fichaje no es una llegada tarde"


def test_manager_of_other_department_cannot_flag(client):
    fichaje_id = _punch("ana@example.com", LATE)
    login(client, "pablo@example.com")

    response = _flag(client, fichaje_id)
    assert response.status_code == 403
    assert response.get_json()["error"] == "No puedes enviar notificaciones a usuarios de otro departamento"
    client.post("/logout")

    login(client, "admin@example.com")
    assert _flag(client, fichaje_id).status_code == 201


def test_employees_cannot_send_or_list_sent(client):
    fichaje_id = _punch("luis@example.com", LATE)
    login(client, "ana@example.com")

    send = _flag(client, fichaje_id)
    assert send.status_code == 403
    assert send.get_json()["error"] == "Permisos insuficientes: manager."
    assert client.get("/api/late-notifications/sent").status_code == 403


def test_only_recipient_can_justify_or_mark_read(client):
    fichaje_id = _punch("ana@example.com", LATE)
    login(client, "marta@example.com")
    notice_id = _flag(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "luis@example.com")
    justify = client.post(f"/api/late-notifications/{notice_id}/justify", json={"justificacion": "No era yo"})
    read = client.put(f"/api/late-notifications/{notice_id}/read")
    assert justify.status_code == 403
    assert justify.get_json()["error"] == "No autorizado"
    assert read.status_code == 403
    assert client.get("/api/late-notifications").get_json()["notifications"] == []
    client.post("/logout")

    login(client, "ana@example.com")
    marked = client.put(f"/api/late-notifications/{notice_id}/read")
    assert marked.status_code == 200
    assert marked.get_json()["leido"] is True
    assert marked.get_json()["justificado"] is False

    actions = db.session.execute(
        select(AuditLog.action).where(AuditLog.entity_type == "late_arrival_notifications").order_by(AuditLog.ts)
    ).scalars().all()
    assert actions == ["LATE_NOTICE_CREATED", "LATE_NOTICE_READ"]


def test_unknown_or_missing_ids(client):
    login(client, "marta@example.com")
    unknown = _flag(client, str(uuid.uuid4()))
    assert unknown.status_code == 404
    assert unknown.get_json()["error"] == "Fichaje no encontrado"

    missing = client.post("/api/late-notifications", json={})
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "El campo fichajeId es obligatorio"
    client.post("/logout")

    login(client, "ana@example.com")
    response = client.post(f"/api/late-notifications/{uuid.uuid4()}/justify", json={"justificacion": "Tráfico"})
    assert response.status_code == 404
    assert response.get_json()["error"] == "Notificación no encontrada"


def test_notifiers_receive_late_arrival_events(app, client):
    received = []
    app.config["NOTIFIERS"] = [lambda event_name, notice: received.append((event_name, notice.justificado))]
    fichaje_id = _punch("ana@example.com", LATE)
    login(client, "marta@example.com")
    notice_id = _flag(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "ana@example.com")
    client.post(f"/api/late-notifications/{notice_id}/justify", json={"justificacion": "Cita médica"})

    assert received == [("late_arrival.flagged", False), ("late_arrival.justified", True)]


def test_one_notice_per_fichaje_is_stored(client):
    fichaje_id = _punch("ana@example.com", LATE)
    login(client, "marta@example.com")
    _flag(client, fichaje_id)
    client.post("/logout")
    login(client, "admin@example.com")
    assert _flag(client, fichaje_id).status_code == 409

    stored = db.session.execute(select(LateArrivalNotification)).scalars().all()
    assert len(stored) == 1
    assert stored[0].fecha.isoformat() == "2025-03-10"
