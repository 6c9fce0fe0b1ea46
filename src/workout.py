"""
Puck Workout
============
Consumer-facing adapter for a Puck rep counting workout.

PuckWorkout is what a screen talks to. It exposes:

    state            current SessionState snapshot (read-only)
    is_reconnecting  True while the supervisor is retrying a dropped link
    last_error       name of the last user-visible failure, or None

    handshake()      idle -> connecting -> awaitStart
    start_workout()  awaitStart -> inSet(1, 0)
    end_workout()    any state -> idle, link released
    skip_rest()      rest -> next set
    complete_set()   end the current set early

and calls subscribers with (state, is_reconnecting) after every change.
It holds no workout rules itself: commands are forwarded to the
WorkoutStateMachine, transport events come from the ReconnectSupervisor,
and update() must be called from the main loop to deliver notifications
and rest countdown ticks.

Module: workout
Version: 1.0.0
"""

import time

from config import get_default_config
from core.constants import DEBUG_ENABLED
from core.types import SessionKind, TransportError, WriteError
from protocol import encode_reset, encode_rep_count
from state import WorkoutStateMachine, StateTrigger
from utils.timing import IntervalTimer, Stopwatch, Timeout


class PuckWorkout:
    """
    Adapter between a workout screen and the Puck session.

    Cue callbacks (optional attributes, e.g. for audio):
        on_set_complete(set_index, reps)
        on_rest_complete(set_index)
        on_workout_complete()

    Usage:
        >>> supervisor = ReconnectSupervisor(BLE())
        >>> workout = PuckWorkout(supervisor)
        >>> workout.subscribe(lambda state, reconnecting: render(state))
        >>> workout.handshake()
        >>> workout.start_workout()
        >>> while workout.state.kind != SessionKind.DONE:
        ...     workout.update()
    """

    # Minimum gap between retries of a rejected reset write
    RESET_RETRY_SEC = 1.0

    def __init__(self, supervisor, config=None, recorder=None, clock=None):
        """
        Args:
            supervisor: ReconnectSupervisor owning the puck link
            config: Configuration dictionary (defaults when None)
            recorder: Optional WorkoutHistory receiving completed sets
            clock: Optional monotonic clock function for the rest timer
        """
        self.config = config if config is not None else get_default_config()
        self.supervisor = supervisor
        self.recorder = recorder
        self._clock = clock or time.monotonic

        self.machine = WorkoutStateMachine(
            max_reps=self.config["max_reps"],
            max_sets=self.config["max_sets"],
            rest_seconds=self.config["rest_seconds"],
        )

        self.last_error = None
        self._listeners = []

        self._rest_timer = None
        self._rest_generation = None
        self._set_stopwatch = Stopwatch(clock=self._clock)
        self._set_started_at = None

        # Generation of the session the current link belongs to
        self._link_generation = None

        # Reset byte the puck has not acknowledged yet
        self._reset_pending = False
        self._reset_retry = Timeout(self.RESET_RETRY_SEC, clock=self._clock)
        # Reps already counted before the puck's counter was last cleared mid-set
        self._rep_base = 0
        # Last raw count reported by the puck, None until a frame arrives
        self._last_raw = None
        # Raw count that maps to _rep_base; None means calibrate on the next frame
        self._raw_offset = 0

        self.on_set_complete = None
        self.on_rest_complete = None
        self.on_workout_complete = None

        self.machine.on_state_change(self._on_transition)
        self.supervisor.add_listener(self._on_rep_count)
        self.supervisor.on_reconnecting = self._on_reconnecting
        self.supervisor.on_reconnected = self._on_reconnected
        self.supervisor.on_exhausted = self._on_reconnect_exhausted

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self):
        return self.machine.get_current_state()

    @property
    def is_reconnecting(self):
        return self.supervisor.is_reconnecting

    def subscribe(self, callback):
        """Register a listener called with (state, is_reconnecting)."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self):
        state = self.state
        reconnecting = self.is_reconnecting
        for callback in list(self._listeners):
            try:
                callback(state, reconnecting)
            except Exception as e:
                print("[WORKOUT] ERROR: Listener failed: {}".format(e))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def handshake(self):
        """
        Connect to the puck. No-op unless idle.

        Connect failures are not retried; they return the session to idle
        and set last_error to "ConnectTimeout" or "ConnectError".

        Returns:
            bool: True if the session reached awaitStart
        """
        if self.state.kind != SessionKind.IDLE:
            return False

        self.last_error = None
        self.machine.transition(StateTrigger.HANDSHAKE)
        generation = self.machine.generation

        try:
            self.supervisor.connect()
        except TransportError as e:
            print("[WORKOUT] Handshake failed: {}".format(e))
            self.last_error = type(e).__name__
            self.machine.transition(StateTrigger.CONNECT_FAILED, value=self.last_error, generation=generation)
            return False

        self._link_generation = generation
        self._reset_pending = False
        self._rep_base = 0
        # Whatever the puck counted before pairing is unknown
        self._last_raw = None
        self._raw_offset = None

        if not self.machine.transition(StateTrigger.CONNECTED, generation=generation):
            # Session was ended while the scan was running
            self.supervisor.disconnect()
            return False
        return True

    def start_workout(self):
        """
        Begin set 1. No-op unless awaiting start.

        Returns:
            bool: True if the first set started
        """
        if self.state.kind != SessionKind.AWAIT_START:
            return False
        return self.machine.transition(StateTrigger.START, generation=self._link_generation)

    def end_workout(self):
        """
        Abort the session and release the puck. No-op when idle.

        Cancels the rest timer and any pending reconnection before the
        disconnect, so nothing from the old session fires afterwards.

        Returns:
            bool: True if a session was ended
        """
        if self.state.kind == SessionKind.IDLE:
            return False

        self._cancel_rest_timer()
        self.supervisor.disconnect()
        self._link_generation = None
        self._reset_pending = False
        return self.machine.transition(StateTrigger.END)

    def skip_rest(self):
        """Skip the rest countdown and start the next set."""
        if self.state.kind != SessionKind.REST:
            return False
        return self.machine.transition(StateTrigger.SKIP_REST)

    def complete_set(self):
        """End the current set with the reps counted so far."""
        if self.state.kind != SessionKind.IN_SET:
            return False
        return self.machine.transition(StateTrigger.COMPLETE_SET)

    def new_session(self):
        """
        Start over in idle after a finished (or abandoned) workout.

        Returns:
            bool: True if a fresh session was created
        """
        if self.state.kind not in (SessionKind.IDLE, SessionKind.DONE):
            return False
        self._cancel_rest_timer()
        self.supervisor.disconnect()
        self._link_generation = None
        self.last_error = None
        self.machine.reset()
        return True

    def run_auto_start(self):
        """Handshake and start in one go (the auto_start flow)."""
        if not self.handshake():
            return False
        return self.start_workout()

    def send_test_reps(self, count):
        """
        Ask the puck to report a rep count (test harness command).

        Returns:
            bool: True if the command was written
        """
        try:
            self.supervisor.write(encode_rep_count(count))
        except WriteError as e:
            print("[WORKOUT] Test rep command failed: {}".format(e))
            return False
        return True

    # ------------------------------------------------------------------
    # Main loop step
    # ------------------------------------------------------------------

    def update(self):
        """
        Poll the link, retry a rejected reset and deliver due rest
        countdown ticks.

        Must be called regularly from the main loop.
        """
        self.supervisor.update()

        if (self._reset_pending and self._reset_retry.expired()
                and self.supervisor.is_connected() and self.state.is_connected_state()):
            self._send_reset()

        timer = self._rest_timer
        if timer is None:
            return

        for _ in range(timer.poll()):
            if timer is not self._rest_timer or timer.is_cancelled():
                break
            self.machine.transition(StateTrigger.TICK, generation=self._rest_generation)

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _on_rep_count(self, count):
        if self._link_generation is None:
            return

        if self._raw_offset is None:
            # No trusted baseline: this frame is the first rep
            self._raw_offset = max(count - 1, 0)
        self._last_raw = count

        self.machine.transition(
            StateTrigger.REP,
            value=self._rep_base + max(count - self._raw_offset, 0),
            generation=self._link_generation,
        )

    def _on_reconnecting(self):
        if not self.state.is_connected_state():
            # Nothing to resume, let the link go
            self.supervisor.disconnect()
            return
        print("[WORKOUT] Puck link lost, reconnecting...")
        self._notify()

    def _on_reconnected(self, handle):
        print("[WORKOUT] Puck reconnected, resuming {}".format(self.state))
        if self._reset_pending:
            self._send_reset()
        self._notify()

    def _on_reconnect_exhausted(self, error):
        self.last_error = type(error).__name__
        self._cancel_rest_timer()
        self.machine.transition(
            StateTrigger.RECONNECT_EXHAUSTED,
            value=self.last_error,
            generation=self._link_generation,
        )
        self.supervisor.disconnect()
        self._link_generation = None
        self._notify()

    # ------------------------------------------------------------------
    # State machine events
    # ------------------------------------------------------------------

    def _on_transition(self, transition):
        from_kind = transition.from_state.kind
        to_state = transition.to_state

        for command in transition.commands:
            if command == encode_reset():
                self._send_reset()
            else:
                self._write(command)

        if from_kind == SessionKind.REST and to_state.kind != SessionKind.REST:
            self._cancel_rest_timer()
        if to_state.kind == SessionKind.REST and from_kind != SessionKind.REST:
            self._start_rest_timer()

        if to_state.kind == SessionKind.IN_SET and from_kind != SessionKind.IN_SET:
            self._set_stopwatch.start()
            self._set_started_at = time.time()

        completed_set = transition.metadata.get("completed_set")
        if completed_set is not None:
            self._record_set(completed_set, transition.metadata.get("reps", 0))

        if "rest_complete" in transition.metadata:
            self._cue(self.on_rest_complete, transition.metadata["rest_complete"])

        if to_state.kind == SessionKind.DONE:
            print("[WORKOUT] Workout complete")
            self._cue(self.on_workout_complete)

        self._notify()

    def _write(self, data):
        try:
            self.supervisor.write(data)
        except WriteError as e:
            print("[WORKOUT] WARNING: Write failed: {}".format(e))
            return False
        return True

    def _send_reset(self):
        """
        Clear the puck's counter, keeping rep counting correct if it fails.

        Reps counted so far in the current set become the base for later
        puck counts. When the write is rejected the puck keeps counting from
        its old value, so later counts are read relative to the last frame
        seen and the reset is retried from update() and after a reconnect.

        Returns:
            bool: True if the reset was written
        """
        state = self.state
        self._rep_base = state.reps if state.kind == SessionKind.IN_SET else 0

        if self._write(encode_reset()):
            self._reset_pending = False
            self._raw_offset = 0
            self._last_raw = 0
            return True

        self._reset_pending = True
        self._reset_retry.reset()
        self._raw_offset = self._last_raw
        return False

    def _record_set(self, set_index, reps):
        self._set_stopwatch.stop()
        if DEBUG_ENABLED:
            print("[WORKOUT] Set {} took {:.1f}s".format(set_index, self._set_stopwatch.elapsed()))

        if self.recorder is not None:
            completed_at = time.time()
            started_at = self._set_started_at
            if started_at is None:
                started_at = completed_at - self._set_stopwatch.elapsed()
            self.recorder.record_set(set_index, reps, self.machine.max_reps, started_at, completed_at)

        self._cue(self.on_set_complete, set_index, reps)

    def _cue(self, callback, *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            print("[WORKOUT] ERROR: Cue callback failed: {}".format(e))

    # ------------------------------------------------------------------
    # Rest timer
    # ------------------------------------------------------------------

    def _start_rest_timer(self):
        self._cancel_rest_timer()
        self._rest_timer = IntervalTimer(1.0, clock=self._clock)
        self._rest_generation = self.machine.generation

    def _cancel_rest_timer(self):
        if self._rest_timer is not None:
            self._rest_timer.cancel()
        self._rest_timer = None
        self._rest_generation = None

    def get_status(self):
        """
        Snapshot for logging and diagnostics.

        Returns:
            dict: state, reconnect info, last error, generation
        """
        reconnect = self.supervisor.reconnect_state()
        return {
            "state": self.state.to_dict(),
            "is_reconnecting": reconnect.is_reconnecting,
            "reconnect_attempts": reconnect.attempts,
            "last_error": self.last_error,
            "generation": self.machine.generation,
            "device": repr(self.supervisor.handle) if self.supervisor.handle else None,
        }

    def __repr__(self):
        return "PuckWorkout(state={}, reconnecting={})".format(self.state, self.is_reconnecting)
