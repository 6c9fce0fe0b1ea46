"""
Timing Utility Tests
====================

Tests for Timeout, Stopwatch and IntervalTimer driven by a fake clock.

Run with: python -m pytest tests/test_timing.py -v

Module: tests.test_timing
Version: 1.0.0
"""

import pytest
import sys
from pathlib import Path

# Add src and tests directories to Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

from utils.timing import Timeout, Stopwatch, IntervalTimer
from mocks.ble import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Timeout Tests
# ============================================================================

class TestTimeout:

    def test_not_expired_before_deadline(self, clock):
        timeout = Timeout(15.0, clock=clock)
        clock.advance(10.0)
        assert not timeout.expired()
        assert timeout.remaining() == 5.0

    def test_expired_at_deadline(self, clock):
        timeout = Timeout(15.0, clock=clock)
        clock.advance(15.0)
        assert timeout.expired()
        assert timeout.remaining() == 0.0

    def test_reset_restarts_window(self, clock):
        timeout = Timeout(5.0, clock=clock)
        clock.advance(4.0)
        timeout.reset()
        clock.advance(4.0)
        assert not timeout.expired()


# ============================================================================
# Stopwatch Tests
# ============================================================================

class TestStopwatch:

    def test_elapsed_zero_before_start(self, clock):
        assert Stopwatch(clock=clock).elapsed() == 0.0

    def test_elapsed_while_running(self, clock):
        stopwatch = Stopwatch(clock=clock)
        stopwatch.start()
        clock.advance(3.0)
        assert stopwatch.is_running()
        assert stopwatch.elapsed() == 3.0

    def test_stop_freezes_elapsed(self, clock):
        stopwatch = Stopwatch(clock=clock)
        stopwatch.start()
        clock.advance(2.0)
        stopwatch.stop()
        clock.advance(10.0)
        assert not stopwatch.is_running()
        assert stopwatch.elapsed() == 2.0

    def test_reset(self, clock):
        stopwatch = Stopwatch(clock=clock)
        stopwatch.start()
        clock.advance(1.0)
        stopwatch.reset()
        assert stopwatch.elapsed() == 0.0


# ============================================================================
# IntervalTimer Tests
# ============================================================================

class TestIntervalTimer:

    def test_no_tick_before_interval(self, clock):
        timer = IntervalTimer(1.0, clock=clock)
        clock.advance(0.5)
        assert timer.poll() == 0

    def test_one_tick_per_interval(self, clock):
        timer = IntervalTimer(1.0, clock=clock)
        clock.advance(1.0)
        assert timer.poll() == 1
        assert timer.poll() == 0

    def test_stalled_loop_gets_all_ticks(self, clock):
        timer = IntervalTimer(1.0, clock=clock)
        clock.advance(3.5)
        assert timer.poll() == 3
        clock.advance(0.5)
        assert timer.poll() == 1

    def test_cancelled_timer_never_ticks(self, clock):
        timer = IntervalTimer(1.0, clock=clock)
        timer.cancel()
        clock.advance(10.0)
        assert timer.is_cancelled()
        assert timer.poll() == 0

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_non_positive_interval_rejected(self, interval):
        with pytest.raises(ValueError):
            IntervalTimer(interval)
