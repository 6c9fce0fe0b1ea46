"""
Workout State Machine
=====================
Rep session state machine for the TapFit Puck workout.

Pure transition logic: events in, next state and transport commands out.
The machine never touches the transport itself; commands it wants sent
(the puck reset byte) are attached to the StateTransition and relayed by
the caller.

States (see core.types.SessionKind):

    idle --HANDSHAKE--> connecting --CONNECTED--> awaitStart --START--> inSet(1, 0)
                        connecting --CONNECT_FAILED--> idle

    inSet --REP--> inSet(reps + 1)          reps clamped to max_reps
    inSet --target reached / COMPLETE_SET--> rest(set, rest_seconds)   set < max_sets (resets puck)
                                         --> done                      set == max_sets
    rest --TICK--> rest(seconds - 1)
    rest --TICK at 1s / SKIP_REST--> inSet(set + 1, 0)

    END from any non-idle state --> idle
    RECONNECT_EXHAUSTED from awaitStart/inSet/rest --> idle

Every session has a generation number. END, CONNECT_FAILED,
RECONNECT_EXHAUSTED and reset() start a new generation; events tagged with
an older generation are discarded so a late callback cannot resurrect an
abandoned session.

Module: state
Version: 1.0.0
"""

import time

from core.constants import MAX_REPS, MAX_SETS, REST_SECONDS, DEBUG_ENABLED
from core.types import SessionKind, SessionState
from protocol import encode_reset


class StateTrigger:
    """Events accepted by WorkoutStateMachine.transition()."""

    # User commands
    HANDSHAKE = "handshake"
    START = "start"
    COMPLETE_SET = "complete_set"
    SKIP_REST = "skip_rest"
    END = "end"

    # Transport events
    CONNECTED = "connected"
    CONNECT_FAILED = "connect_failed"
    REP = "rep"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"

    # Timer
    TICK = "tick"


class StateTransition:
    """
    Record of one accepted transition.

    Attributes:
        from_state: SessionState before the event
        to_state: SessionState after the event
        trigger: StateTrigger that caused it
        commands: List of byte strings to write to the puck, in order
        metadata: Extra details (completed set info, error name)
        timestamp: Monotonic time of the transition
    """

    def __init__(self, from_state, to_state, trigger, commands=None, metadata=None):
        self.from_state = from_state
        self.to_state = to_state
        self.trigger = trigger
        self.commands = commands or []
        self.metadata = metadata or {}
        self.timestamp = time.monotonic()

    def __repr__(self):
        return "StateTransition({} -> {} [{}])".format(self.from_state, self.to_state, self.trigger)


class WorkoutStateMachine:
    """
    Rep counting session state machine.

    Usage:
        >>> machine = WorkoutStateMachine()
        >>> machine.transition(StateTrigger.HANDSHAKE)
        True
        >>> machine.transition(StateTrigger.CONNECTED)
        True
        >>> machine.transition(StateTrigger.START)
        True
        >>> machine.get_current_state()
        inSet(set=1, reps=0)
    """

    MAX_HISTORY = 20

    def __init__(self, max_reps=MAX_REPS, max_sets=MAX_SETS, rest_seconds=REST_SECONDS):
        """
        Args:
            max_reps: Target reps per set
            max_sets: Sets per session
            rest_seconds: Rest countdown length between sets
        """
        if max_reps < 1 or max_sets < 1 or rest_seconds < 1:
            raise ValueError("max_reps, max_sets and rest_seconds must be positive")

        self.max_reps = max_reps
        self.max_sets = max_sets
        self.rest_seconds = rest_seconds

        self.generation = 0
        self._state = SessionState.idle()
        self._callbacks = []
        self._history = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_state(self):
        return self._state

    def get_history(self):
        """Return the most recent transitions, oldest first."""
        return list(self._history)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_state_change(self, callback):
        """
        Register a listener called with each accepted StateTransition.

        Args:
            callback: Function taking a StateTransition
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_state_change(self, callback):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def reset(self):
        """
        Start a fresh session in idle.

        This is how a consumer leaves done without going through END.
        """
        from_state = self._state
        self.generation += 1
        self._state = SessionState.idle()
        if from_state != self._state:
            self._record(StateTransition(from_state, self._state, "reset"))

    def transition(self, trigger, value=None, generation=None):
        """
        Apply one event to the session.

        Args:
            trigger: StateTrigger constant
            value: Event payload (cumulative rep count for REP, else unused)
            generation: Session generation the event was produced for, or
                None for events that are not tied to a session

        Returns:
            bool: True if the event was accepted, False if it was ignored
        """
        if generation is not None and generation != self.generation:
            if DEBUG_ENABLED:
                print("[STATE] Dropping stale {} (generation {} != {})".format(
                    trigger, generation, self.generation))
            return False

        handler = self._HANDLERS.get(self._state.kind)
        if handler is None:
            return False

        result = handler(self, trigger, value)
        if result is None:
            return False

        to_state, commands, metadata = result
        transition = StateTransition(self._state, to_state, trigger, commands, metadata)
        self._state = to_state

        if trigger in (StateTrigger.END, StateTrigger.CONNECT_FAILED, StateTrigger.RECONNECT_EXHAUSTED):
            self.generation += 1

        self._record(transition)
        return True

    def _record(self, transition):
        self._history.append(transition)
        if len(self._history) > self.MAX_HISTORY:
            self._history.pop(0)

        for callback in list(self._callbacks):
            try:
                callback(transition)
            except Exception as e:
                print("[STATE] ERROR: State change callback failed: {}".format(e))

    # ------------------------------------------------------------------
    # Per-state handlers: return (to_state, commands, metadata) or None
    # ------------------------------------------------------------------

    def _from_idle(self, trigger, value):
        if trigger == StateTrigger.HANDSHAKE:
            return SessionState.connecting(), [], None
        return None

    def _from_connecting(self, trigger, value):
        if trigger == StateTrigger.CONNECTED:
            # Clear whatever the puck counted before we paired
            return SessionState.await_start(), [encode_reset()], None
        if trigger == StateTrigger.CONNECT_FAILED:
            return SessionState.idle(), [], {"error": value}
        if trigger == StateTrigger.END:
            return SessionState.idle(), [], None
        return None

    def _from_await_start(self, trigger, value):
        if trigger == StateTrigger.START:
            return SessionState.in_set(1, 0), [encode_reset()], None
        if trigger == StateTrigger.END:
            return SessionState.idle(), [], None
        if trigger == StateTrigger.RECONNECT_EXHAUSTED:
            return SessionState.idle(), [], {"error": value}
        return None

    def _from_in_set(self, trigger, value):
        state = self._state

        if trigger == StateTrigger.REP:
            if value is None:
                reps = state.reps + 1
            else:
                # Puck reports its cumulative count since the last reset
                reps = value
            reps = min(reps, self.max_reps)
            if reps <= state.reps:
                return None
            if reps >= self.max_reps:
                return self._complete_set(state.set_index, reps)
            return SessionState.in_set(state.set_index, reps), [], None

        if trigger == StateTrigger.COMPLETE_SET:
            return self._complete_set(state.set_index, state.reps)

        if trigger == StateTrigger.END:
            return SessionState.idle(), [], None

        if trigger == StateTrigger.RECONNECT_EXHAUSTED:
            return SessionState.idle(), [], {"error": value}

        return None

    def _from_rest(self, trigger, value):
        state = self._state

        if trigger == StateTrigger.TICK:
            if state.seconds > 1:
                return SessionState.rest(state.set_index, state.seconds - 1), [], None
            return self._next_set(state.set_index)

        if trigger == StateTrigger.SKIP_REST:
            return self._next_set(state.set_index)

        if trigger == StateTrigger.END:
            return SessionState.idle(), [], None

        if trigger == StateTrigger.RECONNECT_EXHAUSTED:
            return SessionState.idle(), [], {"error": value}

        return None

    def _from_done(self, trigger, value):
        if trigger == StateTrigger.END:
            return SessionState.idle(), [], None
        return None

    def _complete_set(self, set_index, reps):
        metadata = {"completed_set": set_index, "reps": reps}
        if set_index < self.max_sets:
            # Rest clears the puck counter as well
            return SessionState.rest(set_index, self.rest_seconds), [encode_reset()], metadata
        return SessionState.done(), [], metadata

    def _next_set(self, set_index):
        metadata = {"rest_complete": set_index}
        return SessionState.in_set(set_index + 1, 0), [encode_reset()], metadata

    _HANDLERS = {
        SessionKind.IDLE: _from_idle,
        SessionKind.CONNECTING: _from_connecting,
        SessionKind.AWAIT_START: _from_await_start,
        SessionKind.IN_SET: _from_in_set,
        SessionKind.REST: _from_rest,
        SessionKind.DONE: _from_done,
    }

    def __repr__(self):
        return "WorkoutStateMachine(state={}, generation={})".format(self._state, self.generation)
