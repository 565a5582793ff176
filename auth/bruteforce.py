"""
auth/bruteforce.py -- Sliding-window ban of IP addresses after failed logins.

Every failed login is recorded under a random key. banned() first drops the
records older than the window, then counts what is left for the IP. A ban
lifts itself once enough records age out; there is no manual un-ban and
nothing survives a restart.

All access to the record map goes through one lock.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from auth.tokens import FAILED_LOGIN_KEY_LENGTH, random_id
from core.models import FailedAccess, utc_now

logger = logging.getLogger("piccolo.bruteforce")


class BruteForceGuard:
    def __init__(
        self,
        window: timedelta,
        threshold: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.window = window
        self.threshold = threshold
        self.clock = clock
        self._records: dict[str, FailedAccess] = {}
        self._lock = threading.Lock()

    def record_failed_login(self, ip: str) -> None:
        """Append one failure for ip. No deduplication, no cap."""
        record = FailedAccess(ip=ip, timestamp=self.clock())
        with self._lock:
            key = random_id(FAILED_LOGIN_KEY_LENGTH)
            while key in self._records:
                key = random_id(FAILED_LOGIN_KEY_LENGTH)
            self._records[key] = record

    def _sweep(self) -> None:
        cutoff = self.clock() - self.window
        with self._lock:
            stale = [k for k, rec in self._records.items() if rec.timestamp < cutoff]
            for key in stale:
                del self._records[key]

    def failures(self, ip: str) -> int:
        """Failures recorded for ip inside the current window."""
        self._sweep()
        with self._lock:
            return sum(1 for rec in self._records.values() if rec.ip == ip)

    def banned(self, ip: str) -> bool:
        return self.failures(ip) >= self.threshold

    def __len__(self) -> int:
        self._sweep()
        with self._lock:
            return len(self._records)

    def describe(self) -> str:
        """Printable dump of the failed logins still inside the window."""
        self._sweep()
        with self._lock:
            items = list(self._records.items())
        minutes = int(self.window.total_seconds() // 60)
        lines = [f"number of failed login in the last {minutes} minutes: {len(items)}"]
        for key, rec in items:
            lines.append(f"\tkey = {key}")
            lines.append(f"\t\ttimestamp = {rec.timestamp:%Y-%m-%d %H:%M:%S}")
            lines.append(f"\t\tip = {rec.ip}")
        return "\n".join(lines) + "\n"
