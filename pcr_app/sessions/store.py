"""
Database-backed storage for HTTP session records.

Only the session id travels in the cookie; the attribute mapping lives in the
``sessions`` table.  Reads filter on ``expires_at`` so an expired row is
never handed back even before the sweep removes it.

Writes for the same sid are serialised through a striped lock pool, so
concurrent requests on one session end up with last-writer-wins rather than
an interleaved upsert.  Different sids rarely share a stripe and never block
each other for long.
"""

from __future__ import annotations

import logging
import threading
import zlib
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from pcr_app.core.telemetry import get_meter
from pcr_app.database.connection import session_scope
from pcr_app.database.models import SessionRecord, utcnow

logger = logging.getLogger(__name__)

meter = get_meter()
sessions_swept_counter = meter.create_counter(
    "pcr.sessions.swept",
    description="Number of expired session records deleted by the sweep",
)

_LOCK_STRIPES = 64


class SessionStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._factory = session_factory
        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    @contextmanager
    def _locked(self, sid: str) -> Iterator[None]:
        lock = self._locks[zlib.crc32(sid.encode("utf-8")) % _LOCK_STRIPES]
        with lock:
            yield

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        """Return the session data, or None if the sid is unknown or expired."""
        if not sid:
            return None
        with session_scope(self._factory) as db:
            record = db.execute(
                select(SessionRecord).where(
                    SessionRecord.sid == sid,
                    SessionRecord.expires_at > utcnow(),
                )
            ).scalar_one_or_none()
            if record is None:
                return None
            return dict(record.data or {})

    def count(self) -> int:
        """Number of unexpired sessions."""
        with session_scope(self._factory) as db:
            return db.execute(
                select(func.count()).select_from(SessionRecord).where(SessionRecord.expires_at > utcnow())
            ).scalar_one()

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def set(self, sid: str, data: Dict[str, Any], expires_at: datetime) -> None:
        """Insert or replace the record for *sid*."""
        with self._locked(sid), session_scope(self._factory) as db:
            record = db.get(SessionRecord, sid)
            if record is None:
                db.add(SessionRecord(sid=sid, data=dict(data), expires_at=expires_at))
            else:
                record.data = dict(data)
                record.expires_at = expires_at

    def touch(self, sid: str, expires_at: datetime) -> None:
        """Push the expiry of an existing record forward.  Unknown sids are ignored."""
        with self._locked(sid), session_scope(self._factory) as db:
            db.execute(
                update(SessionRecord)
                .where(SessionRecord.sid == sid)
                .values(expires_at=expires_at, updated_at=utcnow())
            )

    def destroy(self, sid: str) -> None:
        """Delete the record.  Destroying an unknown sid is not an error."""
        with self._locked(sid), session_scope(self._factory) as db:
            db.execute(delete(SessionRecord).where(SessionRecord.sid == sid))

    def sweep_expired(self) -> int:
        """Delete every record whose expiry has passed.  Returns the number removed."""
        with session_scope(self._factory) as db:
            result = db.execute(delete(SessionRecord).where(SessionRecord.expires_at <= utcnow()))
            removed = result.rowcount or 0

        if removed:
            sessions_swept_counter.add(removed)
            logger.info(f"Swept {removed} expired session(s)")
        return removed
