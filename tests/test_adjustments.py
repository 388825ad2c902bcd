from __future__ import annotations

from datetime import datetime, timezone
import uuid

import pytest
from sqlalchemy import select

from conftest import MADRID, login, user_by_email
from fichajes.adjustments import approve_adjustment, create_adjustment
from fichajes.errors import ConflictError
from fichajes.extensions import db
from fichajes.models import AdjustmentStatus, ClockEvent, ClockEventType, FichajeAdjustment
from fichajes.sequencing import record_clock_event


MORNING = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
REQUESTED = "2025-03-10T08:55:00+01:00"


def _event_for(email: str) -> str:
    user = user_by_email(email)
    event_row = record_clock_event(db.session, user.id, ClockEventType.ENTRADA, tz=MADRID, now=MORNING)
    return str(event_row.id)


def _create(client, fichaje_id: str, reason: str = "Olvidé fichar a la hora correcta"):
    return client.post(
        "/api/fichaje-adjustments",
        json={"fichajeId": fichaje_id, "requestedTimestamp": REQUESTED, "reason": reason},
    )


def _stored_ts(fichaje_id: str) -> datetime:
    db.session.expire_all()
    ts = db.session.get(ClockEvent, uuid.UUID(fichaje_id)).ts
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def test_employee_creates_one_pending_adjustment_per_event(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")

    created = _create(client, fichaje_id)
    assert created.status_code == 201
    payload = created.get_json()
    assert payload["status"] == "PENDING"
    assert payload["originalTimestamp"] == "2025-03-10T08:00:00+00:00"
    assert payload["requestedTimestamp"] == "2025-03-10T07:55:00+00:00"
    assert payload["fichaje"]["tipo"] == "ENTRADA"

    duplicate = _create(client, fichaje_id)
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "Ya existe una solicitud de ajuste pendiente para este fichaje"


def test_create_requires_reason_of_minimum_length(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")

    response = _create(client, fichaje_id, reason="  ok ")
    assert response.status_code == 400
    assert response.get_json()["error"] == "El motivo debe tener al menos 5 caracteres"


def test_create_requires_all_fields(client):
    login(client, "ana@example.com")
    response = client.post("/api/fichaje-adjustments", json={"reason": "Motivo suficiente"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Se requieren fichajeId, requestedTimestamp y reason"


def test_create_rejects_invalid_timestamp(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")
    response = client.post(
        "/api/fichaje-adjustments",
        json={"fichajeId": fichaje_id, "requestedTimestamp": "ayer por la tarde", "reason": "Motivo suficiente"},
    )
    assert response.status_code == 400


def test_cannot_adjust_someone_elses_event(client):
    fichaje_id = _event_for("luis@example.com")
    login(client, "ana@example.com")

    response = _create(client, fichaje_id)
    assert response.status_code == 403
    assert response.get_json()["error"] == "No puedes ajustar fichajes de otro usuario"


def test_unknown_event_is_not_found(client):
    login(client, "ana@example.com")
    response = _create(client, str(uuid.uuid4()))
    assert response.status_code == 404
    assert response.get_json()["error"] == "Fichaje no encontrado"


def test_manager_approves_once_and_event_is_rewritten(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")
    adjustment_id = _create(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "marta@example.com")
    approved = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/approve")
    assert approved.status_code == 200
    body = approved.get_json()
    assert body["status"] == "APPROVED"
    assert body["manager"]["name"] == "Marta Ruiz"
    assert body["resolvedAt"] is not None
    assert _stored_ts(fichaje_id) == datetime(2025, 3, 10, 7, 55, tzinfo=timezone.utc)

    again = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/approve")
    assert again.status_code == 409
    assert again.get_json()["error"] == "Esta solicitud ya fue procesada"
    assert _stored_ts(fichaje_id) == datetime(2025, 3, 10, 7, 55, tzinfo=timezone.utc)


def test_manager_of_other_department_cannot_resolve(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")
    adjustment_id = _create(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "pablo@example.com")
    approve = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/approve")
    reject = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/reject", json={})
    assert approve.status_code == 403
    assert approve.get_json()["error"] == "No puedes aprobar solicitudes de otro departamento"
    assert reject.get_json()["error"] == "No puedes rechazar solicitudes de otro departamento"
    assert _stored_ts(fichaje_id) == MORNING


def test_employees_cannot_resolve(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")
    adjustment_id = _create(client, fichaje_id).get_json()["id"]

    response = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/approve")
    assert response.status_code == 403


def test_admin_approves_any_department(client):
    fichaje_id = _event_for("luis@example.com")
    login(client, "luis@example.com")
    adjustment_id = _create(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "admin@example.com")
    response = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/approve")
    assert response.status_code == 200


def test_reject_keeps_event_and_allows_new_request(client):
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")
    adjustment_id = _create(client, fichaje_id).get_json()["id"]
    client.post("/logout")

    login(client, "marta@example.com")
    rejected = client.patch(
        f"/api/fichaje-adjustments/{adjustment_id}/reject",
        json={"rejectionReason": "No consta en cámaras"},
    )
    assert rejected.status_code == 200
    assert rejected.get_json()["status"] == "REJECTED"
    assert rejected.get_json()["rejectionReason"] == "No consta en cámaras"
    assert _stored_ts(fichaje_id) == MORNING

    second_reject = client.patch(f"/api/fichaje-adjustments/{adjustment_id}/reject", json={})
    assert second_reject.status_code == 409
    client.post("/logout")

    login(client, "ana@example.com")
    assert _create(client, fichaje_id).status_code == 201


def test_unknown_adjustment_is_not_found(client):
    login(client, "marta@example.com")
    response = client.patch(f"/api/fichaje-adjustments/{uuid.uuid4()}/approve")
    assert response.status_code == 404
    assert response.get_json()["error"] == "Solicitud no encontrada"


def test_listings_are_scoped_by_department(client):
    ana_event = _event_for("ana@example.com")
    luis_event = _event_for("luis@example.com")
    login(client, "ana@example.com")
    _create(client, ana_event)
    client.post("/logout")
    login(client, "luis@example.com")
    _create(client, luis_event)
    mine = client.get("/api/fichaje-adjustments").get_json()["adjustments"]
    assert [item["fichajeId"] for item in mine] == [luis_event]
    client.post("/logout")

    login(client, "marta@example.com")
    pending = client.get("/api/fichaje-adjustments/pending").get_json()["adjustments"]
    assert [item["fichajeId"] for item in pending] == [ana_event]
    client.post("/logout")

    login(client, "admin@example.com")
    pending = client.get("/api/fichaje-adjustments/pending").get_json()["adjustments"]
    assert [item["fichajeId"] for item in pending] == [ana_event, luis_event]
    recent = client.get("/api/fichaje-adjustments/all").get_json()["adjustments"]
    assert len(recent) == 2


def test_notifiers_run_after_commit_and_failures_are_ignored(app, client):
    received = []

    def record(event_name, adjustment):
        received.append((event_name, adjustment.status.value))

    def broken(_event_name, _adjustment):
        raise RuntimeError("smtp down")

    app.config["NOTIFIERS"] = [broken, record]
    fichaje_id = _event_for("ana@example.com")
    login(client, "ana@example.com")
    adjustment_id = _create(client, fichaje_id).get_json()["id"]
    client.post("/logout")
    login(client, "marta@example.com")
    assert client.patch(f"/api/fichaje-adjustments/{adjustment_id}/approve").status_code == 200

    assert received == [("adjustment.created", "PENDING"), ("adjustment.approved", "APPROVED")]


def test_failed_approval_leaves_nothing_applied(app, monkeypatch):
    fichaje_id = _event_for("ana@example.com")
    ana = user_by_email("ana@example.com")
    marta = user_by_email("marta@example.com")
    with app.test_request_context():
        adjustment = create_adjustment(
            db.session,
            ana,
            fichaje_id=uuid.UUID(fichaje_id),
            requested_ts=REQUESTED,
            reason="Olvidé fichar a la hora correcta",
            tz=MADRID,
        )
        adjustment_id = adjustment.id

        def failing_audit(*_args, **_kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr("fichajes.adjustments.log_audit", failing_audit)
        with pytest.raises(RuntimeError):
            approve_adjustment(db.session, marta, adjustment_id)

    db.session.expire_all()
    stored = db.session.execute(select(FichajeAdjustment).where(FichajeAdjustment.id == adjustment_id)).scalar_one()
    assert stored.status == AdjustmentStatus.PENDING
    assert stored.manager_id is None
    assert _stored_ts(fichaje_id) == MORNING


def test_service_rejects_second_approval(app):
    fichaje_id = _event_for("ana@example.com")
    ana = user_by_email("ana@example.com")
    admin = user_by_email("admin@example.com")
    with app.test_request_context():
        adjustment = create_adjustment(
            db.session,
            ana,
            fichaje_id=uuid.UUID(fichaje_id),
            requested_ts="2025-03-10T09:05:00",
            reason="Llegué antes",
            tz=MADRID,
        )
        approve_adjustment(db.session, admin, adjustment.id)
        with pytest.raises(ConflictError):
            approve_adjustment(db.session, admin, adjustment.id)

    # Naive timestamps are read as Madrid local time.
    assert _stored_ts(fichaje_id) == datetime(2025, 3, 10, 8, 5, tzinfo=timezone.utc)


def test_pending_index_rejects_request_that_slips_past_check(app, monkeypatch):
    fichaje_id = _event_for("ana@example.com")
    ana = user_by_email("ana@example.com")
    request_kwargs = dict(
        fichaje_id=uuid.UUID(fichaje_id),
        requested_ts=REQUESTED,
        reason="Olvidé fichar a la hora correcta",
        tz=MADRID,
    )
    with app.test_request_context():
        create_adjustment(db.session, ana, **request_kwargs)
        monkeypatch.setattr("fichajes.adjustments.has_pending_adjustment", lambda *_args: False)
        with pytest.raises(ConflictError) as exc_info:
            create_adjustment(db.session, ana, **request_kwargs)

    assert exc_info.value.message == "Ya existe una solicitud de ajuste pendiente para este fichaje"
    pending = db.session.execute(
        select(FichajeAdjustment).where(FichajeAdjustment.status == AdjustmentStatus.PENDING)
    ).scalars().all()
    assert len(pending) == 1
