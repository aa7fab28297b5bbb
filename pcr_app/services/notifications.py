"""Queued notification messages and the periodic job that delivers them."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import select

from pcr_app.core.telemetry import get_tracer
from pcr_app.database.connection import session_scope
from pcr_app.database.models import Notification, utcnow

if TYPE_CHECKING:
    from pcr_app.context import AppContext

logger = logging.getLogger(__name__)

MESSAGE_NOTIFICATION_TASK = "message-notification"

# Upper bound on rows delivered per tick; the rest wait for the next one.
BATCH_SIZE = 500


def user_room(user_id: str) -> str:
    """Socket.IO room every connection of *user_id* joins."""
    return f"user:{user_id}"


def create_notification(
    ctx: AppContext,
    recipient: str,
    payload: Dict[str, Any],
    *,
    event: str = "notification",
    delay_seconds: float = 0,
) -> Dict[str, Any]:
    """Queue a message for *recipient*, due after *delay_seconds*."""
    with session_scope(ctx.session_factory) as db:
        row = Notification(
            recipient=recipient,
            event=event,
            payload=payload,
            send_at=utcnow() + timedelta(seconds=delay_seconds),
        )
        db.add(row)
        db.flush()
        return row.to_dict()


def list_notifications(ctx: AppContext, recipient: str, *, limit: int = 50) -> List[Dict[str, Any]]:
    with session_scope(ctx.session_factory) as db:
        rows = db.execute(
            select(Notification)
            .where(Notification.recipient == recipient)
            .order_by(Notification.send_at.desc(), Notification.id.desc())
            .limit(limit)
        ).scalars()
        return [row.to_dict() for row in rows]


def run_message_notification(ctx: AppContext, *, now: Optional[datetime] = None) -> int:
    """
    Deliver every due notification over the realtime channel.

    A row is due when it has not been delivered and its ``send_at`` has
    passed.  Each one is emitted to its recipient's room and stamped
    ``delivered_at`` in the same transaction; if the commit fails the rows
    stay due and go out again on the next tick.

    Returns the number of notifications delivered.
    """
    now = now or utcnow()
    tracer = get_tracer()

    with tracer.start_as_current_span("run_message_notification"), session_scope(ctx.session_factory) as db:
        due = db.execute(
            select(Notification)
            .where(Notification.delivered_at.is_(None), Notification.send_at <= now)
            .order_by(Notification.send_at, Notification.id)
            .limit(BATCH_SIZE)
        ).scalars().all()

        for row in due:
            row.delivered_at = now
            ctx.socketio.emit(row.event, row.to_dict(), to=user_room(row.recipient))

    if due:
        logger.info(f"Delivered {len(due)} notification(s)")
    return len(due)
