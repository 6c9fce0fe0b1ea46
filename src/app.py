"""
TapFit Puck Application
=======================

Application orchestrator that wires the Puck workout components together.

This module implements the TapFitPuckApplication class which:
- Creates the BLE transport, reconnection supervisor and workout adapter
- Injects the transport into the supervisor (no module-level BLE state)
- Logs every session state change and reconnect flag change
- Runs the polled main loop until the workout is done or interrupted
- Shuts down cleanly (workout ended, links dropped)

Layers (outer to inner):
    1. Presentation - console status lines (this module)
    2. Application - PuckWorkout adapter, WorkoutHistory
    3. Domain - WorkoutStateMachine
    4. Infrastructure - ReconnectSupervisor, BLE transport

Classes:
    - TapFitPuckApplication: Main application orchestrator

Module: app
Version: 1.0.0
"""

import time

import config
from core.constants import APP_VERSION, SERVICE_UUID
from core.types import SessionKind
from history import WorkoutHistory
from reconnect import ReconnectSupervisor
from workout import PuckWorkout


class TapFitPuckApplication:
    """
    Main application orchestrator for a Puck rep counting workout.

    Attributes:
        config: Configuration dictionary
        ble: BLE transport
        supervisor: ReconnectSupervisor owning the puck link
        workout: PuckWorkout adapter
        history: WorkoutHistory of completed sets
        running: Application running flag

    Usage:
        >>> app_config = config.load_config("settings.json")
        >>> app = TapFitPuckApplication(app_config)
        >>> app.run()  # Synchronous - blocks until done or Ctrl+C
    """

    def __init__(self, app_config, transport=None, sink=None):
        """
        Initialize the application.

        Args:
            app_config: Configuration dictionary from config.load_config()
            transport: Optional transport (defaults to the adafruit_ble BLE class)
            sink: Optional callable persisting completed set records
        """
        self.config = app_config
        self.device_tag = config.get_device_tag(app_config)
        self.running = False

        print(f"{self.device_tag} Initializing TapFit Puck v{APP_VERSION}")

        if transport is None:
            # Deferred so tests and tools can run without BLE libraries
            from ble import BLE
            transport = BLE(puck_names=app_config["puck_names"])
        self.ble = transport

        self.supervisor = ReconnectSupervisor(
            self.ble,
            service_uuid=SERVICE_UUID,
            connect_timeout=app_config["connect_timeout"],
            retry_delays=app_config["reconnect_delays"],
        )

        self.history = WorkoutHistory(sink=sink, max_records=app_config["history_size"])
        self.workout = PuckWorkout(self.supervisor, config=app_config, recorder=self.history)

        self.workout.machine.on_state_change(self._on_state_change)
        self.workout.subscribe(self._on_workout_update)
        self.workout.on_set_complete = self._on_set_complete
        self.workout.on_rest_complete = self._on_rest_complete
        self.workout.on_workout_complete = self._on_workout_complete

        self._last_reconnecting = False
        self._last_rest_print = None

        print(f"{self.device_tag} Initialization complete")

    # ============================================================================
    # Event handlers
    # ============================================================================

    def _on_state_change(self, transition):
        print(f"{self.device_tag} State transition: {transition.from_state} → {transition.to_state} [{transition.trigger}]")

    def _on_workout_update(self, state, is_reconnecting):
        if is_reconnecting != self._last_reconnecting:
            self._last_reconnecting = is_reconnecting
            if is_reconnecting:
                print(f"{self.device_tag} [RECOVERY] Puck disconnected - reconnecting...")
            else:
                print(f"{self.device_tag} [RECOVERY] Puck link restored")

        if state.kind == SessionKind.IN_SET:
            print(f"{self.device_tag} Set {state.set_index}/{self.config['max_sets']}: "
                  f"{state.reps}/{self.config['max_reps']} reps")
        elif state.kind == SessionKind.REST:
            # One line every 15 seconds is plenty
            if state.seconds % 15 == 0 or state.seconds <= 3:
                if state.seconds != self._last_rest_print:
                    self._last_rest_print = state.seconds
                    print(f"{self.device_tag} Rest: {state.seconds}s")

    def _on_set_complete(self, set_index, reps):
        print(f"{self.device_tag} Set {set_index} complete ({reps} reps)")

    def _on_rest_complete(self, set_index):
        print(f"{self.device_tag} Rest over - starting set {set_index + 1}")

    def _on_workout_complete(self):
        summary = self.history.get_summary()
        print(f"{self.device_tag} Workout complete: {summary['total_sets']} sets, "
              f"{summary['total_reps']} reps")

    # ============================================================================
    # Main loop
    # ============================================================================

    def run(self):
        """
        Main application loop.

        This method:
        1. Connects to the puck and starts the workout
        2. Polls the workout until done (or the session falls back to idle)
        3. Handles graceful shutdown
        """
        print(f"{self.device_tag} Starting TapFit Puck application...")
        self.running = True

        try:
            if not self.workout.handshake():
                print(f"{self.device_tag} [ERROR] Could not connect to a Puck: {self.workout.last_error}")
                return

            if self.config["auto_start"]:
                self.workout.start_workout()
            else:
                input(f"{self.device_tag} Puck ready - press Enter to start set 1...")
                self.workout.start_workout()

            while self.running:
                self.workout.update()

                kind = self.workout.state.kind
                if kind == SessionKind.DONE:
                    break
                if kind == SessionKind.IDLE:
                    print(f"{self.device_tag} [ERROR] Session ended: {self.workout.last_error}")
                    break

                # Brief sleep to avoid busy-waiting
                time.sleep(self.config["loop_interval"])

        except KeyboardInterrupt:
            print(f"{self.device_tag} Keyboard interrupt - shutting down")
        except Exception as e:
            print(f"{self.device_tag} [ERROR] Fatal error: {e}")
            raise
        finally:
            self._shutdown()

    def _shutdown(self):
        """
        Graceful application shutdown.

        Ends any running workout and drops every BLE link.
        """
        print(f"{self.device_tag} Shutting down TapFit Puck application...")
        self.running = False

        try:
            self.workout.end_workout()
            self.ble.disconnect_all()
            print(f"{self.device_tag} Shutdown complete")
        except Exception as e:
            print(f"{self.device_tag} [ERROR] Error during shutdown: {e}")

    def get_status(self):
        """
        Get current application status.

        Returns:
            Dictionary with comprehensive status information
        """
        status = self.workout.get_status()
        status["version"] = APP_VERSION
        status["running"] = self.running
        status["history"] = self.history.get_summary()
        return status

    def __repr__(self):
        """String representation for logging."""
        return f"TapFitPuckApplication(state={self.workout.state})"
