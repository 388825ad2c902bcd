"""Fire-and-forget notifications for workflow transitions.

Delivery (email, push, ...) is configured by listing callables in
``NOTIFIERS``; each one is called as ``notifier(event, subject)`` after the
transition has been committed. ``subject`` is the adjustment request or
late-arrival notice the event is about.
"""

from __future__ import annotations

from typing import Any

from flask import current_app


ADJUSTMENT_CREATED = "adjustment.created"
ADJUSTMENT_APPROVED = "adjustment.approved"
ADJUSTMENT_REJECTED = "adjustment.rejected"
LATE_ARRIVAL_FLAGGED = "late_arrival.flagged"
LATE_ARRIVAL_JUSTIFIED = "late_arrival.justified"


def notify(event_name: str, subject: Any) -> int:
    """Dispatch ``event_name`` to every configured notifier.

    Returns how many notifiers succeeded. A failing notifier is logged and
    skipped.
    """
    delivered = 0
    for notifier in current_app.config.get("NOTIFIERS") or []:
        try:
            notifier(event_name, subject)
        except Exception:
            current_app.logger.warning(
                "Notifier %r failed for %s on %s",
                notifier,
                event_name,
                getattr(subject, "id", None),
                exc_info=True,
            )
            continue
        delivered += 1
    return delivered
