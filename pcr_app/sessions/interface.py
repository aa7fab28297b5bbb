"""Flask session interface backed by :class:`SessionStore`."""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from flask import Flask, Request, Response
from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from werkzeug.datastructures import CallbackDict

from pcr_app.sessions.store import SessionStore

logger = logging.getLogger(__name__)


def new_sid() -> str:
    return secrets.token_urlsafe(32)


class ServerSession(CallbackDict, SessionMixin):
    """Session dict that remembers its sid and whether it was changed."""

    #: Every session gets the configured lifetime, never a browser-session cookie.
    permanent = True

    def __init__(self, initial=None, sid: str = "", new: bool = False) -> None:
        def on_update(self):
            self.modified = True

        super().__init__(initial, on_update)
        self.sid = sid
        self.new = new
        self.modified = False
        #: Stored record to drop on save after :meth:`regenerate`.
        self.previous_sid: Optional[str] = None

    def regenerate(self) -> None:
        """Keep the data but move it to a fresh sid (e.g. when a user logs in)."""
        if not self.new and self.previous_sid is None:
            self.previous_sid = self.sid
        self.sid = new_sid()
        self.modified = True


class DatabaseSessionInterface(SessionInterface):
    """Keep session data server-side; the cookie carries the signed sid only.

    Sessions that were never written to are not stored (no cookie either),
    unchanged sessions only get their expiry refreshed, and clearing a
    session destroys its record.
    """

    salt = "pcr-session"

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    def _signer(self, app: Flask) -> Optional[Signer]:
        if not app.secret_key:
            return None
        return Signer(app.secret_key, salt=self.salt, key_derivation="hmac")

    def open_session(self, app: Flask, request: Request) -> Optional[ServerSession]:
        signer = self._signer(app)
        if signer is None:
            return None

        cookie = request.cookies.get(self.get_cookie_name(app))
        if cookie:
            try:
                sid = signer.unsign(cookie).decode("utf-8")
            except BadSignature:
                logger.info("Rejected session cookie with a bad signature")
            else:
                data = self.store.get(sid)
                if data is not None:
                    return ServerSession(data, sid=sid)

        return ServerSession(sid=new_sid(), new=True)

    def save_session(self, app: Flask, session: ServerSession, response: Response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)
        secure = self.get_cookie_secure(app)
        samesite = self.get_cookie_samesite(app)
        httponly = self.get_cookie_httponly(app)

        if session.previous_sid:
            self.store.destroy(session.previous_sid)
            session.previous_sid = None

        if not session:
            if session.modified and not session.new:
                self.store.destroy(session.sid)
                response.delete_cookie(
                    name, domain=domain, path=path, secure=secure, samesite=samesite, httponly=httponly
                )
            return

        if not self.should_set_cookie(app, session):
            return

        expires = self.get_expiration_time(app, session)

        if session.modified or session.new:
            self.store.set(session.sid, dict(session), expires)
        else:
            self.store.touch(session.sid, expires)

        signed = self._signer(app).sign(session.sid.encode("utf-8")).decode("utf-8")
        response.set_cookie(
            name,
            signed,
            expires=expires,
            httponly=httponly,
            domain=domain,
            path=path,
            secure=secure,
            samesite=samesite,
        )
        response.vary.add("Cookie")
