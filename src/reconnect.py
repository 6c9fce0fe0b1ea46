"""
Reconnection Supervisor
=======================
Owns the single Puck link and recovers it after unexpected drops.

The supervisor is the only component that talks to the transport. It
relays writes, fans notifications out to long-lived listeners, and when
the link drops without a caller-initiated disconnect it retries
connect_first() on an explicit backoff schedule:

    retry_delays = (1, 2, 4, 8, 16)   # attempt N waits retry_delays[N-1]

One attempt per entry, so the default budget is 5 attempts over ~31s of
waiting plus scan time. Attempts are driven from update(), so the main loop
keeps running (rest countdowns keep ticking) while the puck is away.

Disconnect events that arrive while a reconnection is already underway are
coalesced; at most one attempt is in flight.

Module: reconnect
Version: 1.0.0
"""

import time

from core.constants import SERVICE_UUID, CONNECT_TIMEOUT_SEC, RECONNECT_DELAYS_SEC, DEBUG_ENABLED
from core.types import ReconnectState, ReconnectExhausted, TransportError, WriteError


class ReconnectSupervisor:
    """
    Single-link owner with bounded reconnection.

    Callbacks (all optional, set as attributes):
        on_reconnecting(): link lost, retries starting
        on_reconnected(handle): link restored
        on_exhausted(error): retry budget used up, handle released

    Usage:
        supervisor = ReconnectSupervisor(ble, retry_delays=(1, 2, 4))
        supervisor.add_listener(on_rep_count)
        handle = supervisor.connect()
        while running:
            supervisor.update()
    """

    def __init__(
        self,
        transport,
        service_uuid=SERVICE_UUID,
        connect_timeout=CONNECT_TIMEOUT_SEC,
        retry_delays=RECONNECT_DELAYS_SEC,
        clock=None):
        """
        Args:
            transport: Object with connect_first/write/disconnect/subscribe/poll
            service_uuid: Service UUID passed to every connect
            connect_timeout: Scan window per connect attempt, in seconds
            retry_delays: Delay before each reconnect attempt, in seconds
            clock: Optional monotonic clock function
        """
        self.transport = transport
        self.service_uuid = service_uuid
        self.connect_timeout = connect_timeout
        self.retry_delays = tuple(retry_delays)
        self._clock = clock or time.monotonic

        self.handle = None
        self._lost_handle = None
        self._listeners = []
        self._unsubscribe = None

        # Bumped on every connect and caller-initiated disconnect so that
        # disconnect callbacks from an older link are ignored
        self._link_token = 0

        self._reconnecting = False
        self._attempts = 0
        self._next_attempt_at = None
        self._attempt_in_flight = False

        self.on_reconnecting = None
        self.on_reconnected = None
        self.on_exhausted = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_reconnecting(self):
        return self._reconnecting

    @property
    def attempts(self):
        return self._attempts

    def reconnect_state(self):
        return ReconnectState(self._reconnecting, self._attempts)

    def is_connected(self):
        return self.handle is not None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback):
        """Register a rep count listener that survives reconnects."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _dispatch(self, count):
        for callback in list(self._listeners):
            try:
                callback(count)
            except Exception as e:
                print("[RECONNECT] ERROR: Listener failed: {}".format(e))

    # ------------------------------------------------------------------
    # Link control
    # ------------------------------------------------------------------

    def connect(self):
        """
        First connection. Not retried; failures go to the caller.

        Returns:
            DeviceHandle: The connected device

        Raises:
            ConnectTimeout, ConnectError: From the transport
        """
        if self.handle is not None:
            return self.handle

        self._cancel_reconnect()
        handle = self._connect_once()
        self._attempts = 0
        return handle

    def _connect_once(self):
        self._link_token += 1
        token = self._link_token

        def on_disconnect(handle=None):
            self._on_link_lost(token)

        handle = self.transport.connect_first(
            service_uuid=self.service_uuid,
            timeout=self.connect_timeout,
            on_disconnect=on_disconnect,
        )

        self.handle = handle
        self._unsubscribe = self.transport.subscribe(handle.device_id, self._dispatch)
        return handle

    def write(self, data):
        """
        Relay a command to the connected puck.

        Raises:
            WriteError: No link, or the transport rejected the write
        """
        if self.handle is None:
            raise WriteError("No device connected")
        self.transport.write(self.handle.device_id, data)

    def disconnect(self):
        """
        Caller-initiated disconnect. Cancels any pending reconnection.

        Idempotent; never raises.
        """
        self._cancel_reconnect()
        self._link_token += 1
        self._release_handle(disconnect=True)

    def _release_handle(self, disconnect):
        if self._unsubscribe is not None:
            try:
                self._unsubscribe()
            except Exception as e:
                print("[RECONNECT] WARNING: Unsubscribe failed: {}".format(e))
            self._unsubscribe = None

        if disconnect:
            # Make sure a dropped link is torn down on the adapter side too
            for handle in (self.handle, self._lost_handle):
                if handle is not None:
                    self.transport.disconnect(handle.device_id)
            self._lost_handle = None
        self.handle = None

    def _cancel_reconnect(self):
        if self._reconnecting:
            print("[RECONNECT] Reconnection cancelled")
        self._reconnecting = False
        self._next_attempt_at = None

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _on_link_lost(self, token):
        if token != self._link_token:
            if DEBUG_ENABLED:
                print("[RECONNECT] Ignoring disconnect from an old link")
            return

        if self._reconnecting:
            if DEBUG_ENABLED:
                print("[RECONNECT] Disconnect coalesced, already reconnecting")
            return

        print("[RECONNECT] Link lost - starting reconnection ({} attempts)".format(len(self.retry_delays)))

        # The transport already dropped the link; just forget the handle
        self._lost_handle = self.handle
        self._release_handle(disconnect=False)
        self._reconnecting = True
        self._attempts = 0

        if self.on_reconnecting:
            self.on_reconnecting()
            if not self._reconnecting:
                # Listener decided the link is no longer needed
                return

        if not self.retry_delays:
            self._exhaust()
            return

        self._next_attempt_at = self._clock() + self.retry_delays[0]

    def update(self, now=None):
        """
        One main loop step: poll the transport, then run a due attempt.

        Args:
            now: Optional current time (defaults to the supervisor clock)
        """
        self.transport.poll()

        if not self._reconnecting or self._attempt_in_flight:
            return

        if now is None:
            now = self._clock()

        if self._next_attempt_at is None or now < self._next_attempt_at:
            return

        self._attempt_in_flight = True
        self._attempts += 1
        print("[RECONNECT] Attempt {}/{}".format(self._attempts, len(self.retry_delays)))

        try:
            handle = self._connect_once()
        except TransportError as e:
            print("[RECONNECT] Attempt {} failed: {}".format(self._attempts, e))
            if not self._reconnecting:
                # Cancelled from a callback while connecting
                return
            if self._attempts >= len(self.retry_delays):
                self._exhaust()
            else:
                self._next_attempt_at = now + self.retry_delays[self._attempts]
            return
        finally:
            self._attempt_in_flight = False

        if not self._reconnecting:
            # disconnect() ran while the attempt was in flight
            self.disconnect()
            return

        print("[RECONNECT] Reconnected to {} after {} attempt(s)".format(handle, self._attempts))
        self._reconnecting = False
        self._attempts = 0
        self._next_attempt_at = None
        self._lost_handle = None

        if self.on_reconnected:
            self.on_reconnected(handle)

    def _exhaust(self):
        attempts = self._attempts
        print("[RECONNECT] Failed to reconnect after {} attempts".format(attempts))
        self._reconnecting = False
        self._next_attempt_at = None
        self._link_token += 1
        self._release_handle(disconnect=True)

        if self.on_exhausted:
            self.on_exhausted(ReconnectExhausted(
                "Gave up after {} reconnect attempts".format(attempts)))

    def __repr__(self):
        return "ReconnectSupervisor(handle={}, reconnecting={}, attempts={})".format(
            self.handle, self._reconnecting, self._attempts)
