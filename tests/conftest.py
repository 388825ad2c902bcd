from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterator
from zoneinfo import ZoneInfo
import uuid

import pytest
from sqlalchemy.pool import StaticPool

from fichajes import create_app
from fichajes.config import Config
from fichajes.extensions import db
from fichajes.models import ClockEventType, User, UserRole


MADRID = ZoneInfo("Europe/Madrid")
PASSWORD = "password123"


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    APP_TIMEZONE = "Europe/Madrid"
    NOTIFIERS: list = []


@dataclass
class Punch:
    """Minimal stand-in for a stored fichaje in pure aggregation tests."""

    type: ClockEventType
    ts: datetime


def local_dt(day: date, hhmm: str, tz=MADRID) -> datetime:
    hours, minutes = hhmm.split(":")
    return datetime.combine(day, time(int(hours), int(minutes)), tzinfo=tz)


def punches(day: date, *pairs: tuple[str, str]) -> list[Punch]:
    return [Punch(type=ClockEventType(kind), ts=local_dt(day, hhmm)) for hhmm, kind in pairs]


def make_user(email: str, name: str, role: UserRole, department: str | None) -> User:
    user = User(id=uuid.uuid4(), email=email, name=name, role=role, department=department, is_active=True)
    user.set_password(PASSWORD)
    return user


@pytest.fixture()
def app() -> Iterator:
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        db.session.add_all(
            [
                make_user("ana@example.com", "Ana Núñez", UserRole.EMPLOYEE, "Cocina"),
                make_user("luis@example.com", "Luis Gómez", UserRole.EMPLOYEE, "Sala"),
                make_user("marta@example.com", "Marta Ruiz", UserRole.MANAGER, "Cocina"),
                make_user("pablo@example.com", "Pablo Sanz", UserRole.MANAGER, "Sala"),
                make_user("admin@example.com", "Admin", UserRole.ADMIN, "Direccion"),
                make_user("nodept@example.com", "Sin Departamento", UserRole.EMPLOYEE, None),
            ]
        )
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def user_by_email(email: str) -> User:
    return db.session.execute(db.select(User).where(User.email == email)).scalar_one()


def login(client, email: str):
    response = client.post("/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.get_json()
    return response
