"""Tests for the location reporting policy and per-trip timers"""
from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from safereturn.services.tracking import (
    SignalStrength,
    TripTimers,
    classify_signal,
    select_interval,
)


class TestClassifySignal:

    @pytest.mark.parametrize("effective_type", ["slow-2g", "2g", "2G"])
    def test_slow_effective_type_is_weak(self, effective_type):
        assert classify_signal(effective_type=effective_type, downlink=10) is SignalStrength.WEAK

    def test_low_downlink_is_weak(self):
        assert classify_signal(effective_type="4g", downlink=0.5) is SignalStrength.WEAK

    def test_limited_cellular_is_weak(self):
        assert classify_signal(effective_type="4g", downlink=1.5, connection_type="cellular") is SignalStrength.WEAK

    def test_same_bandwidth_on_wifi_is_strong(self):
        assert classify_signal(effective_type="4g", downlink=1.5, connection_type="wifi") is SignalStrength.STRONG

    def test_offline_is_weak(self):
        assert classify_signal(online=False) is SignalStrength.WEAK

    def test_no_information_is_strong(self):
        assert classify_signal() is SignalStrength.STRONG


class TestSelectInterval:

    def test_weak_polls_every_minute(self):
        assert select_interval(SignalStrength.WEAK) == 60

    def test_strong_polls_every_five_minutes(self):
        assert select_interval("strong") == 300

    def test_unknown_tier(self):
        with pytest.raises(ValueError):
            select_interval("medium")


@pytest.fixture
def timers():
    return TripTimers(AsyncIOScheduler(), AsyncMock())


class TestTripTimers:

    def test_start_registers_one_job_per_trip(self, timers):
        timers.start(7)
        timers.start(7)
        jobs = [job for job in timers.scheduler.get_jobs() if job.id == TripTimers.job_id(7)]
        assert len(jobs) == 1
        assert jobs[0].args == (7,)
        assert timers.interval_for(7) == 300

    def test_start_with_weak_signal(self, timers):
        timers.start(3, SignalStrength.WEAK)
        assert timers.interval_for(3) == 60

    def test_reschedule_changes_interval(self, timers):
        timers.start(1)
        timers.reschedule(1, "weak")
        assert timers.interval_for(1) == 60
        timers.reschedule(1, "strong")
        assert timers.interval_for(1) == 300

    def test_reschedule_starts_missing_timer(self, timers):
        timers.reschedule(9, SignalStrength.WEAK)
        assert timers.is_tracking(9)
        assert timers.interval_for(9) == 60

    def test_cancel(self, timers):
        timers.start(4)
        timers.start(5)
        assert timers.cancel(4) is True
        assert not timers.is_tracking(4)
        assert timers.is_tracking(5)

    def test_cancel_without_timer(self, timers):
        assert timers.cancel(42) is False
        assert timers.interval_for(42) is None
