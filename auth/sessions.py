"""
auth/sessions.py -- In-memory cookie session store.

Each request obtains a SessionHandle through SessionStore.get_session(). The
handle works on a private copy of the stored record: reads and writes touch
only that copy until save() writes it back. Two requests saving the same
session concurrently race; the last save wins.

Expired sessions are removed by an O(n) sweep at the start of every
get_session() call. There is no background task.

The cookie itself is not set here. save() marks the handle, and the
session-cookie middleware in api/main.py calls apply_cookie() on the
outgoing response.

Layer rule: imports from core/ and auth/tokens.py only.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from starlette.responses import Response

from auth.tokens import new_session_id
from core.models import SESSION_COOKIE_NAME, SessionRecord, utc_now

logger = logging.getLogger("piccolo.sessions")

_INVALID_HANDLE_MESSAGE = "invalid session, use get_session() to obtain a valid handle"


class SessionHandle:
    """One request's view of a session.

    A handle built without a store (SessionHandle.invalid()) has an empty id.
    Reading from it logs a warning and returns "", writing and saving are
    no-ops. Routes never see such a handle in normal operation.
    """

    def __init__(self, store: Optional[SessionStore], record: SessionRecord) -> None:
        self._store = store
        self._record = record
        self.cookie_pending = False

    @classmethod
    def invalid(cls) -> SessionHandle:
        return cls(None, SessionRecord(id="", expiry=utc_now()))

    @property
    def id(self) -> str:
        return self._record.id

    @property
    def expiry(self) -> datetime:
        return self._record.expiry

    @property
    def valid(self) -> bool:
        return bool(self._record.id) and self._store is not None

    def _touch(self) -> None:
        self._record.expiry = self._store.clock() + self._store.lifetime

    def get(self, key: str) -> str:
        if not self.valid:
            logger.warning(_INVALID_HANDLE_MESSAGE)
            return ""
        self._touch()
        return self._record.items.get(key, "")

    def set(self, key: str, value: str) -> None:
        if not self.valid:
            return
        self._touch()
        self._record.items[key] = value

    def save(self) -> None:
        """Store a copy of this handle's record and mark the cookie for issue."""
        if not self.valid:
            logger.warning(_INVALID_HANDLE_MESSAGE)
            return
        self._store._put(self._record.copy())
        self.cookie_pending = True

    def expirate(self) -> None:
        """Move the expiry one hour into the past.

        Call save() afterwards and do not use get() or set() again: the next
        sweep removes the record and the browser drops the cookie.
        """
        clock = self._store.clock if self._store is not None else utc_now
        self._record.expiry = clock() - timedelta(hours=1)

    def apply_cookie(self, response: Response, secure: bool = False) -> None:
        if not self.cookie_pending:
            return
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=self._record.id,
            expires=self._record.expiry,
            path="/",
            httponly=True,
            secure=secure,
            samesite="lax",
        )


class SessionStore:
    """Thread-safe map of session id to SessionRecord.

    Usage:
        store = SessionStore(timedelta(hours=6))
        handle = store.get_session(request.cookies.get("msessionid"))
        handle.set("username", "carol")
        handle.save()
    """

    def __init__(
        self,
        lifetime: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.lifetime = lifetime
        self.clock = clock
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get_session(self, cookie: Optional[str]) -> SessionHandle:
        """Return a handle for the session named by cookie, or a new session.

        An unknown or missing cookie allocates a fresh record, stored
        immediately. A known one is copied and its expiry extended on the
        copy; the extension reaches the store only through save().
        """
        self.sweep()
        now = self.clock()
        with self._lock:
            stored = self._records.get(cookie) if cookie else None
            if stored is None:
                record = SessionRecord(id=new_session_id(), expiry=now + self.lifetime)
                self._records[record.id] = record.copy()
                logger.debug("new session allocated")
                return SessionHandle(self, record)
            record = stored.copy()
        record.expiry = now + self.lifetime
        return SessionHandle(self, record)

    def sweep(self) -> int:
        """Remove every record whose expiry is in the past. Returns the count."""
        now = self.clock()
        with self._lock:
            expired = [sid for sid, rec in self._records.items() if rec.expiry < now]
            for sid in expired:
                del self._records[sid]
        if expired:
            logger.debug("%d expired session(s) removed", len(expired))
        return len(expired)

    def _put(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def describe(self) -> str:
        """Printable dump of every live session, for development logging."""
        with self._lock:
            records = [rec.copy() for rec in self._records.values()]
        lines = [f"number of sessions: {len(records)}"]
        for rec in records:
            lines.append(f"\tcookie: {rec.id}")
            lines.append(f"\texpiry: {rec.expiry:%Y-%m-%d %H:%M:%S}")
            for key, value in rec.items.items():
                lines.append(f"\t\tkey: {key}")
                lines.append(f"\t\tval: {value}")
        return "\n".join(lines) + "\n"
