"""
auth/models.py -- Identity resolved for one request.

Pattern: Data class (pure data container, zero logic). Mirrors core/models.py;
the session store and the access functions do the work.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CurrentUser:
    """The user behind a request, read from the session.

    username is "" for anonymous visitors. is_admin is computed from the
    admin_users parameter at the time of the request and never stored.
    """

    username: str
    is_admin: bool = False

    @property
    def anonymous(self) -> bool:
        return not self.username

    @property
    def display_name(self) -> str:
        return self.username or "anonymous"
