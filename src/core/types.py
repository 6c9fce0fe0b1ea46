"""
Core Types
==========
Shared value types for the TapFit Puck rep counter.

Contains:
    - SessionKind: Names of the workout session states
    - SessionState: Immutable snapshot of the live session (tagged union)
    - DeviceHandle: Connected peripheral identity
    - ReconnectState: Snapshot of the reconnection supervisor
    - Transport errors raised by the BLE layer and the supervisor

Module: core.types
Version: 1.0.0
"""


class SessionKind:
    """Workout session state names."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAIT_START = "awaitStart"
    IN_SET = "inSet"
    REST = "rest"
    DONE = "done"

    ALL = (IDLE, CONNECTING, AWAIT_START, IN_SET, REST, DONE)


class SessionState:
    """
    Immutable snapshot of the workout session.

    Each kind carries only the fields that belong to it:
        - inSet: set_index (1-based), reps
        - rest: set_index (the set just completed), seconds
        - all other kinds: no fields

    Build instances through the class constructors (SessionState.idle(),
    SessionState.in_set(1, 0), ...) rather than calling __init__ directly.
    """

    __slots__ = ("_kind", "_set_index", "_reps", "_seconds")

    def __init__(self, kind, set_index=None, reps=None, seconds=None):
        if kind not in SessionKind.ALL:
            raise ValueError("Unknown session kind: {}".format(kind))
        object.__setattr__(self, "_kind", kind)
        object.__setattr__(self, "_set_index", set_index)
        object.__setattr__(self, "_reps", reps)
        object.__setattr__(self, "_seconds", seconds)

    def __setattr__(self, name, value):
        raise AttributeError("SessionState is immutable")

    @classmethod
    def idle(cls):
        return cls(SessionKind.IDLE)

    @classmethod
    def connecting(cls):
        return cls(SessionKind.CONNECTING)

    @classmethod
    def await_start(cls):
        return cls(SessionKind.AWAIT_START)

    @classmethod
    def in_set(cls, set_index, reps=0):
        if set_index < 1:
            raise ValueError("set_index is 1-based")
        if reps < 0:
            raise ValueError("reps cannot be negative")
        return cls(SessionKind.IN_SET, set_index=set_index, reps=reps)

    @classmethod
    def rest(cls, set_index, seconds):
        if set_index < 1:
            raise ValueError("set_index is 1-based")
        if seconds < 0:
            raise ValueError("seconds cannot be negative")
        return cls(SessionKind.REST, set_index=set_index, seconds=seconds)

    @classmethod
    def done(cls):
        return cls(SessionKind.DONE)

    @property
    def kind(self):
        return self._kind

    @property
    def set_index(self):
        return self._set_index

    @property
    def reps(self):
        return self._reps

    @property
    def seconds(self):
        return self._seconds

    def is_active(self):
        """Return True while a set or a rest period is running."""
        return self._kind in (SessionKind.IN_SET, SessionKind.REST)

    def is_connected_state(self):
        """Return True for states that require a live device link."""
        return self._kind in (SessionKind.AWAIT_START, SessionKind.IN_SET, SessionKind.REST)

    def to_dict(self):
        """
        Serialize the snapshot.

        Returns:
            dict: {"kind": ...} plus only the fields of this variant
        """
        data = {"kind": self._kind}
        if self._kind == SessionKind.IN_SET:
            data["setIndex"] = self._set_index
            data["reps"] = self._reps
        elif self._kind == SessionKind.REST:
            data["setIndex"] = self._set_index
            data["seconds"] = self._seconds
        return data

    def __eq__(self, other):
        if not isinstance(other, SessionState):
            return NotImplemented
        return (
            self._kind == other._kind
            and self._set_index == other._set_index
            and self._reps == other._reps
            and self._seconds == other._seconds
        )

    def __hash__(self):
        return hash((self._kind, self._set_index, self._reps, self._seconds))

    def __repr__(self):
        if self._kind == SessionKind.IN_SET:
            return "inSet(set={}, reps={})".format(self._set_index, self._reps)
        if self._kind == SessionKind.REST:
            return "rest(set={}, seconds={})".format(self._set_index, self._seconds)
        return self._kind


class DeviceHandle:
    """Identity of a connected Puck, returned by a successful connect."""

    def __init__(self, device_id, name=None):
        self.device_id = device_id
        self.name = name

    def __eq__(self, other):
        if not isinstance(other, DeviceHandle):
            return NotImplemented
        return self.device_id == other.device_id and self.name == other.name

    def __hash__(self):
        return hash((self.device_id, self.name))

    def __repr__(self):
        return "DeviceHandle(device_id={!r}, name={!r})".format(self.device_id, self.name)


class ReconnectState:
    """Snapshot of the reconnection supervisor."""

    def __init__(self, is_reconnecting=False, attempts=0):
        self.is_reconnecting = is_reconnecting
        self.attempts = attempts

    def __eq__(self, other):
        if not isinstance(other, ReconnectState):
            return NotImplemented
        return self.is_reconnecting == other.is_reconnecting and self.attempts == other.attempts

    def __repr__(self):
        return "ReconnectState(is_reconnecting={}, attempts={})".format(
            self.is_reconnecting, self.attempts
        )


# ============================================================================
# Transport errors
# ============================================================================

class TransportError(Exception):
    """Base class for BLE transport failures."""


class ConnectTimeout(TransportError):
    """No matching peripheral was found before the scan timeout."""


class ConnectError(TransportError):
    """The adapter failed while scanning or connecting."""


class WriteError(TransportError):
    """A write was attempted on a missing link or rejected by the peripheral."""


class ReconnectExhausted(TransportError):
    """The supervisor used its whole retry budget without reconnecting."""
