"""
core/models.py -- Domain dataclasses shared by the session store, the
brute-force guard and the browsing layer.

Pure data containers. Stores and routes do the work.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

SESSION_COOKIE_NAME = "msessionid"
USERNAME_KEY = "username"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """One server-side session.

    An empty id marks an uninitialized handle (see auth/sessions.py).
    items is a plain dict: each request works on its own copy and the store
    keeps whatever copy was saved last.
    """

    id: str
    expiry: datetime
    items: dict[str, str] = field(default_factory=dict)

    def copy(self) -> SessionRecord:
        return SessionRecord(id=self.id, expiry=self.expiry, items=dict(self.items))


@dataclass(frozen=True)
class FailedAccess:
    ip: str
    timestamp: datetime


@dataclass
class DirectoryEntry:
    name: str
    is_dir: bool
    size: int = 0
    modified: Optional[datetime] = None  # None when stat failed
