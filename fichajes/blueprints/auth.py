"""Session authentication routes."""

from __future__ import annotations

from flask import Blueprint, current_app
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import select

from fichajes.extensions import db
from fichajes.forms import LoginForm, json_form, validated
from fichajes.models import User


bp = Blueprint("auth", __name__)


@bp.get("/csrf-token")
def csrf_token():
    return {"csrfToken": generate_csrf()}


@bp.post("/login")
def login():
    if current_user.is_authenticated:
        return {"user": current_user.to_summary()}

    form = validated(json_form(LoginForm))
    stmt = select(User).where(User.email == form.email.data.lower())
    user = db.session.execute(stmt).scalar_one_or_none()
    if user is None or not user.check_password(form.password.data):
        current_app.logger.info("Failed login for %s", form.email.data)
        return {"error": "Credenciales inválidas."}, 401

    if not user.is_active:
        return {"error": "Usuario inactivo."}, 403

    login_user(user, remember=form.remember.data)
    return {"user": user.to_summary()}


@bp.post("/logout")
@login_required
def logout():
    logout_user()
    return {"message": "Sesión cerrada."}


@bp.get("/me")
@login_required
def me():
    return {"user": current_user.to_summary()}
