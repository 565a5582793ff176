"""
tests/test_bruteforce.py -- Unit tests for auth/bruteforce.py.

Coverage:
  - threshold failures ban the IP, threshold - 1 do not
  - failures older than the window do not count (21 minutes with a 20 minute window)
  - bans lift by themselves once records age out
  - IPs are counted independently
  - len() and describe() only report records inside the window
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from auth.bruteforce import BruteForceGuard

WINDOW = timedelta(minutes=20)
THRESHOLD = 5


@pytest.fixture
def bf(clock) -> BruteForceGuard:
    return BruteForceGuard(WINDOW, THRESHOLD, clock=clock)


class TestBan:
    def test_threshold_failures_ban(self, bf: BruteForceGuard) -> None:
        for _ in range(THRESHOLD):
            bf.record_failed_login("10.0.0.1")
        assert bf.banned("10.0.0.1")

    def test_one_below_threshold_does_not_ban(self, bf: BruteForceGuard) -> None:
        for _ in range(THRESHOLD - 1):
            bf.record_failed_login("10.0.0.1")
        assert not bf.banned("10.0.0.1")

    def test_unknown_ip_is_not_banned(self, bf: BruteForceGuard) -> None:
        assert not bf.banned("10.0.0.9")

    def test_ips_are_counted_separately(self, bf: BruteForceGuard) -> None:
        for _ in range(THRESHOLD):
            bf.record_failed_login("10.0.0.1")
        bf.record_failed_login("10.0.0.2")
        assert bf.banned("10.0.0.1")
        assert not bf.banned("10.0.0.2")
        assert bf.failures("10.0.0.2") == 1


class TestWindow:
    def test_old_failures_do_not_count(self, bf: BruteForceGuard, clock) -> None:
        for _ in range(THRESHOLD - 1):
            bf.record_failed_login("10.0.0.1")
        clock.advance(minutes=21)
        bf.record_failed_login("10.0.0.1")

        assert bf.failures("10.0.0.1") == 1
        assert not bf.banned("10.0.0.1")

    def test_ban_expires_by_itself(self, bf: BruteForceGuard, clock) -> None:
        for _ in range(THRESHOLD):
            bf.record_failed_login("10.0.0.1")
        assert bf.banned("10.0.0.1")

        clock.advance(minutes=21)
        assert not bf.banned("10.0.0.1")

    def test_sliding_window(self, bf: BruteForceGuard, clock) -> None:
        """Failures spread over the window still add up."""
        for _ in range(THRESHOLD):
            bf.record_failed_login("10.0.0.1")
            clock.advance(minutes=4)
        assert bf.banned("10.0.0.1")

    def test_len_and_describe_after_sweep(self, bf: BruteForceGuard, clock) -> None:
        bf.record_failed_login("10.0.0.1")
        clock.advance(minutes=21)
        bf.record_failed_login("10.0.0.2")

        assert len(bf) == 1
        dump = bf.describe()
        assert dump.startswith("number of failed login in the last 20 minutes: 1")
        assert "10.0.0.2" in dump
        assert "10.0.0.1" not in dump
