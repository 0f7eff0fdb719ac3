"""Tests for Clock and FrozenClock."""

from datetime import datetime, timedelta, timezone

import pytest

from iap_entitlements.services.clock import Clock, FrozenClock


class TestClock:
    def test_now_is_utc_aware(self):
        now = Clock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestFrozenClock:
    def test_time_does_not_move(self, now):
        clock = FrozenClock(now)
        assert clock.now() == now
        assert clock.now() == now

    def test_default_start_is_current_time(self):
        before = datetime.now(timezone.utc)
        clock = FrozenClock()
        assert clock.now() >= before

    def test_set_time(self, clock, now):
        later = now + timedelta(days=400)
        clock.set_time(later)
        assert clock.now() == later

    def test_set_time_rejects_naive_datetime(self, clock):
        with pytest.raises(ValueError):
            clock.set_time(datetime(2026, 1, 1))

    def test_advance(self, clock, now):
        result = clock.advance(days=1, hours=2, minutes=3)

        assert result == now + timedelta(days=1, hours=2, minutes=3)
        assert clock.now() == result

    def test_advance_accumulates(self, clock, now):
        clock.advance(days=10)
        clock.advance(days=21)
        assert clock.now() == now + timedelta(days=31)

    @pytest.mark.parametrize("kwargs", [{"days": -1}, {"hours": -1}, {"minutes": -5}])
    def test_advance_rejects_negative(self, clock, now, kwargs):
        with pytest.raises(ValueError):
            clock.advance(**kwargs)
        assert clock.now() == now
