"""Flask extension instances."""

from __future__ import annotations

import uuid

from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect


db = SQLAlchemy()
login_manager = LoginManager()
csrf = CSRFProtect()


@login_manager.unauthorized_handler
def handle_unauthorized():
    return {"error": "Autenticacion requerida."}, 401


@login_manager.user_loader
def load_user(user_id: str):
    from fichajes.models import User

    try:
        parsed = uuid.UUID(user_id)
    except ValueError:
        return None
    user = db.session.get(User, parsed)
    if user is None or not user.is_active:
        return None
    return user
