"""
Timing Utilities
================
Clock-driven timers for the polled main loop.

All timers take an optional clock function (defaults to time.monotonic)
so tests can drive them with a fake clock instead of sleeping.

- Timeout: Expiration timer for deadline checks
- Stopwatch: Start/stop timer for measuring intervals
- IntervalTimer: Cancellable periodic timer that reports whole elapsed ticks

Module: utils.timing
Version: 1.0.0
"""

import time


class Timeout:
    """
    Expiration timer for deadline checks.

    Usage:
        timeout = Timeout(15.0)  # 15 second scan window
        while not timeout.expired():
            if try_operation():
                break
    """

    def __init__(self, timeout_sec, clock=None):
        """
        Initialize timeout.

        Args:
            timeout_sec: Timeout duration in seconds
            clock: Optional monotonic clock function
        """
        self.timeout_sec = timeout_sec
        self._clock = clock or time.monotonic
        self._start = self._clock()

    def expired(self):
        """
        Check if timeout has expired.

        Returns:
            bool: True if timeout has elapsed
        """
        return (self._clock() - self._start) >= self.timeout_sec

    def remaining(self):
        """
        Return remaining time in seconds.

        Returns:
            float: Remaining time, or 0 if expired
        """
        return max(0.0, self.timeout_sec - (self._clock() - self._start))

    def reset(self):
        """Reset the timeout to start counting again."""
        self._start = self._clock()


class Stopwatch:
    """
    Start/stop timer for measuring intervals.

    Usage:
        stopwatch = Stopwatch()
        stopwatch.start()
        do_set()
        stopwatch.stop()
        print(f"Set took {stopwatch.elapsed():.1f}s")
    """

    def __init__(self, clock=None):
        """Initialize stopwatch in stopped state."""
        self._clock = clock or time.monotonic
        self.start_time = None
        self.stop_time = None

    def start(self):
        """Start the stopwatch."""
        self.start_time = self._clock()
        self.stop_time = None

    def stop(self):
        """Stop the stopwatch, freezing the elapsed time."""
        if self.start_time is not None and self.stop_time is None:
            self.stop_time = self._clock()

    def reset(self):
        """Reset the stopwatch to initial state."""
        self.start_time = None
        self.stop_time = None

    def is_running(self):
        return self.start_time is not None and self.stop_time is None

    def elapsed(self):
        """
        Return elapsed time in seconds.

        Returns:
            float: Elapsed time since start, or 0 if never started
        """
        if self.start_time is None:
            return 0.0
        end = self.stop_time if self.stop_time is not None else self._clock()
        return end - self.start_time


class IntervalTimer:
    """
    Cancellable periodic timer polled from the main loop.

    poll() returns how many whole intervals have elapsed since the last
    poll, so a loop that stalls for 3 seconds still gets 3 one-second ticks.
    A cancelled timer never ticks again.

    Usage:
        timer = IntervalTimer(1.0)
        while running:
            for _ in range(timer.poll()):
                on_tick()
    """

    def __init__(self, interval_sec, clock=None):
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.interval_sec = interval_sec
        self._clock = clock or time.monotonic
        self._next_due = self._clock() + interval_sec
        self._cancelled = False

    def poll(self):
        """
        Return the number of intervals that elapsed since the last poll.

        Returns:
            int: Tick count (0 if none are due or the timer is cancelled)
        """
        if self._cancelled:
            return 0

        now = self._clock()
        ticks = 0
        while now >= self._next_due:
            ticks += 1
            self._next_due += self.interval_sec
        return ticks

    def cancel(self):
        self._cancelled = True

    def is_cancelled(self):
        return self._cancelled
