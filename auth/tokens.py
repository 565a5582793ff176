"""
auth/tokens.py -- Random identifiers and password hashing.

Security design decisions:
  Session ids: secrets.token_hex(32) -- 256 bits from the OS CSPRNG, rendered
       as 64 upper-case hex characters. Fixed length and alphabet; collision
       probability is negligible.

  Short ids: random_id() draws uniformly from [a-zA-Z0-9] with
       secrets.choice. Used for failed-login record keys and the anti-cache
       "nocache" query parameter. Not secrets, just unique-enough labels.

  Passwords: bcrypt (direct usage). The _DUMMY_HASH constant enables timing
       equalization in authenticate() so response time does not reveal
       whether a username exists.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import secrets
import string

import bcrypt

logger = logging.getLogger("piccolo.auth")

_ALPHANUMERIC = string.ascii_letters + string.digits

SESSION_ID_BYTES = 32
NOCACHE_ID_LENGTH = 10
FAILED_LOGIN_KEY_LENGTH = 10

# ---------------------------------------------------------------------------
# Random identifiers
# ---------------------------------------------------------------------------


def random_id(length: int) -> str:
    """Return length characters drawn uniformly from [a-zA-Z0-9]."""
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def new_session_id() -> str:
    """Return a 64-character upper-case hex session id."""
    return secrets.token_hex(SESSION_ID_BYTES).upper()


def nocache_id() -> str:
    return random_id(NOCACHE_ID_LENGTH)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt ignores bytes past 72; the admin forms cap password length well
    below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash (e.g. hand-edited users.json) counts as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("stored password hash is not a valid bcrypt hash")
        return False


# Computed once at module load so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("piccolo_timing_dummy")


def authenticate(users: dict[str, str], username: str, password: str) -> bool:
    """Check username/password against the users map with timing equalization.

    Always runs bcrypt, against _DUMMY_HASH when the username is unknown, so
    an attacker cannot enumerate usernames by response time.
    """
    hashed = users.get(username) if username else None
    if hashed is None:
        verify_password(password, _DUMMY_HASH)
        return False
    return verify_password(password, hashed)
