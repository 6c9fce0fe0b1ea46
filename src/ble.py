"""
BLE - Puck Transport
====================
Central-role BLE transport for the TapFit Puck.

Scans for a Puck, connects, writes commands to characteristic 0xFFE1 and
reads rep notifications from the same characteristic. Everything runs from
the polled main loop: poll() drains notification buffers and notices
dropped links, firing the on_disconnect callback registered at connect.

Only one connect_first() may be in flight at a time.

Module: ble
Version: 1.0.0
"""

import time

from adafruit_ble import BLERadio
from adafruit_ble.advertising import Advertisement
from adafruit_ble.advertising.standard import ProvideServicesAdvertisement
from adafruit_ble.characteristics import Characteristic
from adafruit_ble.characteristics.stream import StreamOut
from adafruit_ble.services import Service
from adafruit_ble.uuid import StandardUUID

from core.constants import (
    DEBUG_ENABLED,
    SERVICE_UUID,
    SERVICE_UUID_16,
    CHARACTERISTIC_UUID_16,
    PUCK_NAMES,
)
from core.types import DeviceHandle, ConnectTimeout, ConnectError, WriteError
from protocol import RepPacketParser
from utils.timing import Timeout


class PuckService(Service):
    """
    Rep counter service exposed by the Puck firmware.

    The firmware uses one characteristic for both directions: the app
    writes commands to it and the puck notifies rep counts on it.
    """

    uuid = StandardUUID(SERVICE_UUID_16)

    notifications = StreamOut(
        uuid=StandardUUID(CHARACTERISTIC_UUID_16),
        timeout=0.1,
        buffer_size=64,
    )

    command = Characteristic(
        uuid=StandardUUID(CHARACTERISTIC_UUID_16),
        properties=Characteristic.WRITE | Characteristic.WRITE_NO_RESPONSE,
        max_length=20,
        fixed_length=False,
    )


class BLEConnection:
    def __init__(self, handle, ble_connection, service, on_disconnect=None):
        self.handle = handle
        self.ble_connection = ble_connection
        self.service = service
        self.on_disconnect = on_disconnect
        self.connected_at = time.monotonic()
        self.last_seen = time.monotonic()

        self.parser = RepPacketParser()
        self._rx_buffer = bytearray(64)
        self._subscribers = []

    def update_last_seen(self):
        self.last_seen = time.monotonic()

    def is_connected(self):
        try:
            return self.ble_connection.connected
        except Exception:
            return False


class BLE:
    def __init__(self, puck_names=PUCK_NAMES, radio=None):
        """
        Args:
            puck_names: Advertised names accepted as a Puck when the
                advertisement does not list the service UUID
            radio: Optional BLERadio, created on demand otherwise
        """
        print("[BLE] Initializing BLE radio...")
        self.ble = radio if radio is not None else BLERadio()
        self.puck_names = tuple(puck_names)
        self._connections = {}
        self._connecting = False
        print("[BLE] BLE radio initialized")

    def _matches(self, advertisement, service_uuid):
        services = getattr(advertisement, "services", None)
        if services and service_uuid.upper() == SERVICE_UUID and PuckService in services:
            return True
        name = getattr(advertisement, "complete_name", None)
        return bool(name) and (name in self.puck_names or name.startswith("TapFit-Puck"))

    def connect_first(self, service_uuid=SERVICE_UUID, timeout=15.0, on_disconnect=None):
        """
        Connect to the first Puck found.

        Args:
            service_uuid: Service the peripheral must expose
            timeout: Scan window in seconds
            on_disconnect: Called once with the DeviceHandle if the link
                drops after this call succeeded (never after disconnect())

        Returns:
            DeviceHandle: The connected device

        Raises:
            ConnectTimeout: No matching peripheral inside the scan window
            ConnectError: Adapter failure, missing service, or a connect
                already in progress
        """
        if self._connecting:
            raise ConnectError("connect_first() already in progress")

        self._connecting = True
        scan_window = Timeout(timeout)
        print("[BLE] Scanning for Puck (service {})...".format(service_uuid))

        try:
            while not scan_window.expired():
                remaining = scan_window.remaining()
                try:
                    for advertisement in self.ble.start_scan(
                        ProvideServicesAdvertisement,
                        Advertisement,
                        timeout=min(remaining, 5.0),
                    ):
                        if self._matches(advertisement, service_uuid):
                            self.ble.stop_scan()
                            return self._connect_advertisement(advertisement, on_disconnect)
                except (ConnectError, ConnectTimeout):
                    raise
                except Exception as e:
                    raise ConnectError("BLE scan failed: {}".format(e))

                time.sleep(0.1)

            print("[BLE] Scan timeout after {:.1f}s".format(timeout))
            raise ConnectTimeout("No Puck found within {:.1f}s".format(timeout))
        finally:
            self._connecting = False
            try:
                self.ble.stop_scan()
            except Exception as e:
                if DEBUG_ENABLED:
                    print("[BLE] stop_scan() failed: {}".format(e))

    def _connect_advertisement(self, advertisement, on_disconnect):
        name = getattr(advertisement, "complete_name", None)
        device_id = str(getattr(advertisement, "address", name))
        print("[BLE] Found '{}', connecting...".format(name))

        try:
            connection = self.ble.connect(advertisement)
        except Exception as e:
            raise ConnectError("Connection to '{}' failed: {}".format(name, e))

        link_wait = Timeout(5.0)
        while not connection.connected and not link_wait.expired():
            time.sleep(0.1)

        if not connection.connected:
            raise ConnectError("Connection to '{}' failed to establish".format(name))

        try:
            service = connection[PuckService]
        except KeyError:
            try:
                connection.disconnect()
            except Exception as e:
                print("[BLE] disconnect() after failed discovery raised: {}".format(e))
            raise ConnectError("'{}' has no rep counter service".format(name))

        handle = DeviceHandle(device_id, name)
        self._connections[device_id] = BLEConnection(handle, connection, service, on_disconnect)
        print("[BLE] *** {} CONNECTED ***".format(handle))
        return handle

    def subscribe(self, device_id, callback):
        """
        Register a notification callback for a device.

        Args:
            device_id: Connected device
            callback: Function taking the rep count from each REP_COUNT frame

        Returns:
            Function that removes the callback (safe to call twice)

        Raises:
            ConnectError: Device is not connected
        """
        if device_id not in self._connections:
            raise ConnectError("Device '{}' is not connected".format(device_id))

        conn = self._connections[device_id]
        conn._subscribers.append(callback)

        def unsubscribe():
            if callback in conn._subscribers:
                conn._subscribers.remove(callback)

        return unsubscribe

    def write(self, device_id, data):
        """
        Write a command to the Puck.

        Raises:
            WriteError: Unknown or disconnected device, or rejected write
        """
        if device_id not in self._connections:
            raise WriteError("Device '{}' not found".format(device_id))

        conn = self._connections[device_id]
        if not conn.is_connected():
            raise WriteError("Device '{}' not connected".format(device_id))

        if DEBUG_ENABLED:
            print("[BLE] WRITE {} -> {}".format(bytes(data).hex(), device_id))

        try:
            conn.service.command = bytes(data)
        except Exception as e:
            raise WriteError("Write to '{}' failed: {}".format(device_id, e))

        conn.update_last_seen()

    def poll(self):
        """
        Process notifications and link drops for every connection.

        Returns:
            int: Number of rep frames delivered to subscribers
        """
        delivered = 0

        for device_id in list(self._connections.keys()):
            conn = self._connections[device_id]

            if not conn.is_connected():
                print("[BLE] Link to '{}' lost".format(device_id))
                del self._connections[device_id]
                if conn.on_disconnect:
                    try:
                        conn.on_disconnect(conn.handle)
                    except Exception as e:
                        print("[BLE] ERROR: on_disconnect callback failed: {}".format(e))
                continue

            try:
                in_waiting = conn.service.notifications.in_waiting
                if in_waiting <= 0:
                    continue
                bytes_read = conn.service.notifications.readinto(conn._rx_buffer)
            except Exception as e:
                print("[BLE] Receive error on '{}': {}".format(device_id, e))
                continue

            if not bytes_read:
                continue

            conn.update_last_seen()
            for count in conn.parser.feed(conn._rx_buffer[:bytes_read]):
                if DEBUG_ENABLED:
                    print("[BLE] Rep count {} from '{}'".format(count, device_id))
                for callback in list(conn._subscribers):
                    try:
                        callback(count)
                    except Exception as e:
                        print("[BLE] ERROR: Notification callback failed: {}".format(e))
                delivered += 1

        return delivered

    def disconnect(self, device_id):
        """Caller-initiated disconnect. Idempotent, never raises."""
        conn = self._connections.pop(device_id, None)
        if conn is None:
            return
        try:
            conn.ble_connection.disconnect()
        except Exception as e:
            if DEBUG_ENABLED:
                print("[BLE] disconnect() on '{}' raised: {}".format(device_id, e))
        print("[BLE] Disconnected '{}'".format(device_id))

    def is_connected(self, device_id):
        if device_id not in self._connections:
            return False
        return self._connections[device_id].is_connected()

    def get_all_connections(self):
        return list(self._connections.keys())

    def disconnect_all(self):
        for device_id in list(self._connections.keys()):
            self.disconnect(device_id)
