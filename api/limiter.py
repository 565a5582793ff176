"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (app.state.limiter, exception handler) and in
web/routes.py (to apply @limiter.limit() on POST /login_action).

Using a single shared instance ensures every import shares the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and the limit would never trigger.

Only the login action is limited. This ceiling is independent of the
brute-force guard: the guard bans an IP after failed logins, the limiter caps
raw request volume on the login endpoint whatever the outcome.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
