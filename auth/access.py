"""
auth/access.py -- Per-request access decisions.

Pure functions over the current permission and admin maps. Nothing is cached:
every call reads the values it is given, so an edit made from the admin
console applies to the very next request.

Private directories match by raw string prefix, not by path segment: a
permission on "/priv" also covers "/private2". This is kept on purpose. It
can only make more paths private, never fewer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class AccessDecision:
    path: str
    private: bool
    allowed: bool

    @property
    def denied(self) -> bool:
        return self.private and not self.allowed


def normalize_path(path: str) -> str:
    """Strip trailing "/" and "\\". The root becomes ""."""
    return path.rstrip("/\\")


def split_user_list(value: str) -> list[str]:
    """Split a comma-joined user list, dropping blanks.

    "alice, bob,," -> ["alice", "bob"]. An empty entry can therefore never
    match the anonymous (empty) username.
    """
    return [name.strip() for name in value.split(",") if name.strip()]


def check_access(path: str, permissions: Mapping[str, str], username: str) -> AccessDecision:
    """Decide whether username may open the logical path.

    The resource is private when any permission key is a prefix of path;
    it is allowed when username appears in at least one of the matching
    allow-lists.

    A key of "" or "/" is a prefix of every path and makes the whole tree
    private; the admin console refuses to create one.
    """
    path = normalize_path(path)
    private = False
    allowed = False
    for directory, user_list in permissions.items():
        if path.startswith(directory):
            private = True
            if username and username in split_user_list(user_list):
                allowed = True
    return AccessDecision(path=path, private=private, allowed=allowed)


def child_path(parent: str, name: str) -> str:
    """Logical path of an entry listed inside parent ("" is the root)."""
    parent = normalize_path(parent)
    return f"{parent}/{name}" if parent else f"/{name}"


def child_visibility(path: str, permissions: Mapping[str, str], username: str) -> tuple[bool, bool]:
    """Return (visible, private) for a sub-directory shown in a listing.

    Only an exact key match marks the child private. Private names are hidden
    from anonymous visitors and shown, marked, to every logged-in user, even
    one without a grant.
    """
    private = path in permissions
    return (not (private and not username), private)


def is_admin(username: str, admin_users: str) -> bool:
    if not username:
        return False
    return username in split_user_list(admin_users)
