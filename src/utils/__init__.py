"""
Utils Module
============
Common utility classes for the TapFit Puck rep counter.

Modules:
    timing: Clock-driven timers (Timeout, Stopwatch, IntervalTimer)

Example:
    from utils.timing import IntervalTimer, Timeout

Module: utils
Version: 1.0.0
"""

from utils.timing import (
    Timeout,
    Stopwatch,
    IntervalTimer,
)

__all__ = [
    "Timeout",
    "Stopwatch",
    "IntervalTimer",
]
