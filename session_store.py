from __future__ import annotations

import secrets
import time
from typing import Any, Dict, Optional

from flask import Flask, Request, Response
from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from werkzeug.datastructures import CallbackDict

from storage import CatalogStore


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class ServerSideSession(CallbackDict, SessionMixin):
    """Session whose data lives in the store; the cookie only names it."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None, sid: str = "", new: bool = False):
        def on_update(self):
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid or new_session_id()
        self.new = new
        self.modified = False
        self.previous_sid: Optional[str] = None
        self.destroyed = False

    def regenerate(self) -> None:
        """Move to a fresh session id with empty state (session-fixation guard)."""
        if self.previous_sid is None and not self.new:
            self.previous_sid = self.sid
        self.sid = new_session_id()
        self.clear()
        self.new = True
        self.modified = True

    def destroy(self) -> None:
        self.clear()
        self.destroyed = True


class SqliteSessionInterface(SessionInterface):
    salt = "catalog-session"

    def __init__(self, store: CatalogStore):
        self.store = store

    def _signer(self, app: Flask) -> Signer:
        return Signer(app.secret_key, salt=self.salt)

    def open_session(self, app: Flask, request: Request) -> Optional[ServerSideSession]:
        if not app.secret_key:
            return None
        cookie = request.cookies.get(self.get_cookie_name(app))
        if cookie:
            try:
                sid = self._signer(app).unsign(cookie).decode("utf-8")
            except BadSignature:
                sid = ""
            if sid:
                data = self.store.load_session(sid)
                if data is not None:
                    return ServerSideSession(data, sid=sid)
        return ServerSideSession(new=True)

    def save_session(self, app: Flask, session: ServerSideSession, response: Response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if session.previous_sid:
            self.store.delete_session(session.previous_sid)

        if session.destroyed or (not session and session.modified and not session.new):
            self.store.delete_session(session.sid)
            response.delete_cookie(name, domain=domain, path=path)
            return

        # Anonymous visitors get no row and no cookie until they store something.
        if not session or not session.modified:
            return

        expires_at = time.time() + app.permanent_session_lifetime.total_seconds()
        self.store.save_session(session.sid, dict(session), expires_at)
        response.vary.add("Cookie")
        response.set_cookie(
            name,
            self._signer(app).sign(session.sid).decode("utf-8"),
            max_age=int(app.permanent_session_lifetime.total_seconds()),
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )
