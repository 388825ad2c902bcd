"""Role predicates and permission decorators."""

from __future__ import annotations

import functools
from typing import Any, Callable

from flask import abort
from flask_login import current_user

from fichajes.models import UserRole


def is_admin(user: Any) -> bool:
    return user is not None and user.role == UserRole.ADMIN


def is_manager(user: Any) -> bool:
    return user is not None and user.role == UserRole.MANAGER


def same_department(user: Any, department: str | None) -> bool:
    return bool(department) and user.department == department


def can_manage_department(user: Any, department: str | None) -> bool:
    """Admins manage every department; managers only their own."""
    return is_admin(user) or (is_manager(user) and same_department(user, department))


def can_view_user(actor: Any, target: Any) -> bool:
    if actor.id == target.id:
        return True
    return can_manage_department(actor, target.department)


def can_resolve_adjustment(actor: Any, event_department: str | None) -> bool:
    return can_manage_department(actor, event_department)


def can_manage_schedules(user: Any) -> bool:
    return is_admin(user)


def can_view_other_users(user: Any) -> bool:
    return is_admin(user)


def permission_required(permission_name: str, check: Callable[[Any], bool]):
    def decorator(view: Callable):
        @functools.wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated or not check(current_user):
                abort(403, description=f"Permisos insuficientes: {permission_name}.")
            return view(*args, **kwargs)

        return wrapped

    return decorator


admin_required = permission_required("admin", is_admin)
manager_required = permission_required("manager", lambda user: is_admin(user) or is_manager(user))
manage_schedules_required = permission_required("manage_schedules", can_manage_schedules)
