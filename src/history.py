"""
Workout History
===============
Records completed sets and forwards them to a persistence sink.

The app stores every finished set (set number, reps, timing) with the
hosted backend. This module keeps a bounded in-memory list of SetRecords
and hands each new record to an optional write-only sink callable. The
session never depends on the sink: sink failures are logged and counted,
never raised.

Module: history
Version: 1.0.0
"""

import time


class SetRecord:
    """
    One completed set.

    Attributes:
        set_index: 1-based set number
        reps: Reps counted when the set ended
        target_reps: Rep target for the set
        started_at: Wall-clock start time (epoch seconds)
        completed_at: Wall-clock completion time (epoch seconds)
    """

    def __init__(self, set_index, reps, target_reps, started_at, completed_at):
        self.set_index = set_index
        self.reps = reps
        self.target_reps = target_reps
        self.started_at = started_at
        self.completed_at = completed_at

    @property
    def duration(self):
        return max(0.0, self.completed_at - self.started_at)

    def reached_target(self):
        return self.reps >= self.target_reps

    def to_dict(self):
        return {
            "set_index": self.set_index,
            "reps": self.reps,
            "target_reps": self.target_reps,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration": self.duration,
        }

    def __repr__(self):
        return "SetRecord(set={}, reps={}/{})".format(self.set_index, self.reps, self.target_reps)


class WorkoutHistory:
    """
    Bounded list of completed sets with an optional persistence sink.

    Usage:
        history = WorkoutHistory(sink=backend.save_set)
        history.record_set(1, 10, 10, started_at, time.time())
        print(history.get_summary())
    """

    def __init__(self, sink=None, max_records=50):
        """
        Args:
            sink: Callable taking a record dict, or None
            max_records: Records kept in memory (oldest dropped first)
        """
        self.sink = sink
        self.max_records = max_records
        self.records = []
        self.total_sets = 0
        self.total_reps = 0
        self.sink_failures = 0

    def record_set(self, set_index, reps, target_reps, started_at=None, completed_at=None):
        """
        Record a completed set and forward it to the sink.

        Returns:
            SetRecord: The stored record
        """
        now = time.time()
        record = SetRecord(
            set_index,
            reps,
            target_reps,
            started_at if started_at is not None else now,
            completed_at if completed_at is not None else now,
        )

        self.records.append(record)
        if len(self.records) > self.max_records:
            self.records.pop(0)

        self.total_sets += 1
        self.total_reps += reps
        print("[HISTORY] Set {} complete: {}/{} reps".format(set_index, reps, target_reps))

        if self.sink is not None:
            try:
                self.sink(record.to_dict())
            except Exception as e:
                self.sink_failures += 1
                print("[HISTORY] WARNING: Failed to persist set {}: {}".format(set_index, e))

        return record

    def get_summary(self):
        """
        Summarize everything recorded since the last clear().

        Returns:
            dict: total_sets, total_reps, sets_on_target, average_reps,
            total_duration, sink_failures
        """
        on_target = sum(1 for r in self.records if r.reached_target())
        duration = sum(r.duration for r in self.records)
        return {
            "total_sets": self.total_sets,
            "total_reps": self.total_reps,
            "sets_on_target": on_target,
            "average_reps": (self.total_reps / self.total_sets) if self.total_sets else 0.0,
            "total_duration": duration,
            "sink_failures": self.sink_failures,
        }

    def clear(self):
        self.records = []
        self.total_sets = 0
        self.total_reps = 0
        self.sink_failures = 0
