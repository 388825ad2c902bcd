"""Audit logging helper."""

from __future__ import annotations

import uuid
from typing import Any

from flask import has_request_context
from flask_login import current_user
from sqlalchemy.orm import Session

from fichajes.models import AuditLog


def log_audit(
    session: Session,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None,
    payload: dict[str, Any] | None = None,
    *,
    actor_user_id: uuid.UUID | None = None,
) -> None:
    """Stage an audit row in ``session``; it commits with the audited change."""
    if actor_user_id is None and has_request_context() and current_user.is_authenticated:
        try:
            actor_user_id = uuid.UUID(current_user.get_id())
        except ValueError:
            actor_user_id = None

    session.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            payload_json=payload or {},
        )
    )
