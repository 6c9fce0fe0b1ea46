"""
BLE Transport Tests
===================

Tests for the adafruit_ble based Puck transport.

The adafruit_ble package is replaced with lightweight stand-ins while
ble.py is imported, and every test injects a mock BLERadio, so no
Bluetooth adapter is needed.

Test Categories:
    - Advertisement matching tests
    - connect_first tests
    - Write tests
    - Notification polling tests
    - Link loss tests
    - Disconnect tests

Run with: python -m pytest tests/test_ble.py -v

Module: tests.test_ble
Version: 1.0.0
"""

import pytest
import sys
import types
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


# ============================================================================
# adafruit_ble stand-ins (import time only)
# ============================================================================

class _Service:
    pass


class _Characteristic:
    WRITE = 0x08
    WRITE_NO_RESPONSE = 0x04

    def __init__(self, **kwargs):
        self.kwargs = kwargs


class _StreamOut:
    def __init__(self, **kwargs):
        self.kwargs = kwargs


class _StandardUUID:
    def __init__(self, value):
        self.value = value


class _Advertisement:
    pass


class _ProvideServicesAdvertisement(_Advertisement):
    pass


def _adafruit_ble_modules():
    root = types.ModuleType("adafruit_ble")
    root.BLERadio = MagicMock(name="BLERadio")

    advertising = types.ModuleType("adafruit_ble.advertising")
    advertising.Advertisement = _Advertisement
    standard = types.ModuleType("adafruit_ble.advertising.standard")
    standard.ProvideServicesAdvertisement = _ProvideServicesAdvertisement

    characteristics = types.ModuleType("adafruit_ble.characteristics")
    characteristics.Characteristic = _Characteristic
    stream = types.ModuleType("adafruit_ble.characteristics.stream")
    stream.StreamOut = _StreamOut

    services = types.ModuleType("adafruit_ble.services")
    services.Service = _Service

    uuid = types.ModuleType("adafruit_ble.uuid")
    uuid.StandardUUID = _StandardUUID

    return {
        "adafruit_ble": root,
        "adafruit_ble.advertising": advertising,
        "adafruit_ble.advertising.standard": standard,
        "adafruit_ble.characteristics": characteristics,
        "adafruit_ble.characteristics.stream": stream,
        "adafruit_ble.services": services,
        "adafruit_ble.uuid": uuid,
    }


# Project modules are imported first so they stay in sys.modules once the
# patch is undone
from core.constants import SERVICE_UUID
from core.types import DeviceHandle, ConnectTimeout, ConnectError, WriteError
import protocol  # noqa: F401
import utils.timing  # noqa: F401

with patch.dict(sys.modules, _adafruit_ble_modules()):
    sys.modules.pop("ble", None)
    import ble


DEVICE_ID = "AA:BB:CC:DD:EE:FF"


# ============================================================================
# Mock Radio
# ============================================================================

class MockNotifyStream:
    """Stand-in for the StreamOut notification buffer."""

    def __init__(self):
        self.pending = bytearray()
        self.fail = False

    def push(self, data):
        self.pending.extend(data)

    @property
    def in_waiting(self):
        if self.fail:
            raise RuntimeError("GATT read failed")
        return len(self.pending)

    def readinto(self, buf):
        n = min(len(buf), len(self.pending))
        buf[:n] = self.pending[:n]
        del self.pending[:n]
        return n


class MockPuckService:
    def __init__(self):
        self.notifications = MockNotifyStream()
        self.written = []
        self.reject_writes = False

    @property
    def command(self):
        return self.written[-1] if self.written else None

    @command.setter
    def command(self, value):
        if self.reject_writes:
            raise RuntimeError("GATT write failed")
        self.written.append(value)


class MockConnection:
    def __init__(self, service=None):
        self.connected = True
        self.service = service if service is not None else MockPuckService()
        self.disconnect_calls = 0

    def __getitem__(self, service_class):
        if self.service is False:
            raise KeyError(service_class)
        return self.service

    def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False


class MockRadio:
    def __init__(self, advertisements=None, connection=None):
        self.advertisements = advertisements or []
        self.connection = connection or MockConnection()
        self.scan_error = None
        self.connect_error = None
        self.scan_calls = []
        self.stop_scan_calls = 0

    def start_scan(self, *advertisement_types, timeout=None):
        self.scan_calls.append((advertisement_types, timeout))
        if self.scan_error:
            raise self.scan_error
        for advertisement in self.advertisements:
            yield advertisement

    def stop_scan(self):
        self.stop_scan_calls += 1

    def connect(self, advertisement):
        if self.connect_error:
            raise self.connect_error
        return self.connection


def make_advertisement(name="TapFit Puck", address=DEVICE_ID, services=None):
    return types.SimpleNamespace(complete_name=name, address=address, services=services or [])


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def radio():
    return MockRadio(advertisements=[make_advertisement()])


@pytest.fixture
def transport(radio):
    return ble.BLE(radio=radio)


@pytest.fixture
def connected(transport, radio):
    on_disconnect = MagicMock()
    handle = transport.connect_first(SERVICE_UUID, timeout=5.0, on_disconnect=on_disconnect)
    return transport, handle, on_disconnect


# ============================================================================
# Advertisement Matching Tests
# ============================================================================

class TestMatching:
    """Test which advertisements count as a Puck."""

    @pytest.mark.parametrize("name", ["TapFit Puck", "TapFit", "TapFit-Puck", "TapFit-Puck-02"])
    def test_known_names_match(self, transport, name):
        assert transport._matches(make_advertisement(name=name), SERVICE_UUID)

    def test_other_names_ignored(self, transport):
        assert not transport._matches(make_advertisement(name="Heart Rate"), SERVICE_UUID)

    def test_nameless_advertisement_ignored(self, transport):
        assert not transport._matches(make_advertisement(name=None), SERVICE_UUID)

    def test_service_uuid_match(self, transport):
        advertisement = make_advertisement(name=None, services=[ble.PuckService])
        assert transport._matches(advertisement, SERVICE_UUID.lower())

    def test_custom_names(self, radio):
        transport = ble.BLE(puck_names=["Gym Puck"], radio=radio)
        assert transport._matches(make_advertisement(name="Gym Puck"), SERVICE_UUID)


# ============================================================================
# connect_first Tests
# ============================================================================

class TestConnectFirst:
    """Test scanning and connecting."""

    def test_connects_to_first_match(self, transport, radio):
        radio.advertisements = [
            make_advertisement(name="Heart Rate", address="11:22:33:44:55:66"),
            make_advertisement(),
        ]
        handle = transport.connect_first(SERVICE_UUID, timeout=5.0)

        assert handle == DeviceHandle(DEVICE_ID, "TapFit Puck")
        assert transport.is_connected(DEVICE_ID)
        assert transport.get_all_connections() == [DEVICE_ID]

    def test_scan_accepts_name_only_advertisements(self, transport, radio):
        transport.connect_first(SERVICE_UUID, timeout=5.0)
        advertisement_types, _ = radio.scan_calls[0]
        assert _Advertisement in advertisement_types

    def test_timeout_when_nothing_found(self, transport, radio):
        radio.advertisements = []
        with pytest.raises(ConnectTimeout):
            transport.connect_first(SERVICE_UUID, timeout=0.0)

    def test_scan_repeats_until_window_closes(self, transport, radio):
        radio.advertisements = []
        with pytest.raises(ConnectTimeout):
            transport.connect_first(SERVICE_UUID, timeout=0.25)

        assert len(radio.scan_calls) >= 2
        for _, scan_timeout in radio.scan_calls:
            assert 0 <= scan_timeout <= 0.25

    def test_scan_failure_is_connect_error(self, transport, radio):
        radio.scan_error = RuntimeError("adapter off")
        with pytest.raises(ConnectError):
            transport.connect_first(SERVICE_UUID, timeout=5.0)

    def test_connect_failure_is_connect_error(self, transport, radio):
        radio.connect_error = RuntimeError("refused")
        with pytest.raises(ConnectError):
            transport.connect_first(SERVICE_UUID, timeout=5.0)
        assert transport.get_all_connections() == []

    def test_missing_service_is_connect_error(self, radio):
        radio.connection = MockConnection(service=False)
        transport = ble.BLE(radio=radio)

        with pytest.raises(ConnectError):
            transport.connect_first(SERVICE_UUID, timeout=5.0)

        assert radio.connection.disconnect_calls == 1

    def test_concurrent_connect_rejected(self, transport):
        transport._connecting = True
        with pytest.raises(ConnectError):
            transport.connect_first(SERVICE_UUID, timeout=5.0)

    def test_connecting_flag_cleared_after_failure(self, transport, radio):
        radio.scan_error = RuntimeError("adapter off")
        with pytest.raises(ConnectError):
            transport.connect_first(SERVICE_UUID, timeout=5.0)

        radio.scan_error = None
        assert transport.connect_first(SERVICE_UUID, timeout=5.0).device_id == DEVICE_ID

    def test_scan_stopped(self, transport, radio):
        transport.connect_first(SERVICE_UUID, timeout=5.0)
        assert radio.stop_scan_calls >= 1


# ============================================================================
# Write Tests
# ============================================================================

class TestWrite:
    """Test command writes."""

    def test_write_sets_characteristic(self, connected, radio):
        transport, handle, _ = connected
        transport.write(handle.device_id, b"\x00")
        assert radio.connection.service.written == [b"\x00"]

    def test_write_unknown_device(self, transport):
        with pytest.raises(WriteError):
            transport.write("00:00:00:00:00:00", b"\x00")

    def test_write_after_link_dropped(self, connected, radio):
        transport, handle, _ = connected
        radio.connection.connected = False
        with pytest.raises(WriteError):
            transport.write(handle.device_id, b"\x00")

    def test_rejected_write(self, connected, radio):
        transport, handle, _ = connected
        radio.connection.service.reject_writes = True
        with pytest.raises(WriteError):
            transport.write(handle.device_id, b"\x01\x05")


# ============================================================================
# Notification Polling Tests
# ============================================================================

class TestPoll:
    """Test notification delivery."""

    def test_counts_delivered_in_order(self, connected, radio):
        transport, handle, _ = connected
        received = []
        transport.subscribe(handle.device_id, received.append)

        radio.connection.service.notifications.push(b"\x01\x01\x01\x02")
        assert transport.poll() == 2
        assert received == [1, 2]

    def test_split_frame_completed_on_next_poll(self, connected, radio):
        transport, handle, _ = connected
        received = []
        transport.subscribe(handle.device_id, received.append)

        radio.connection.service.notifications.push(b"\x01")
        transport.poll()
        radio.connection.service.notifications.push(b"\x07")
        transport.poll()

        assert received == [7]

    def test_nothing_waiting(self, connected):
        transport, _, _ = connected
        assert transport.poll() == 0

    def test_unsubscribe(self, connected, radio):
        transport, handle, _ = connected
        callback = MagicMock()
        unsubscribe = transport.subscribe(handle.device_id, callback)
        unsubscribe()
        unsubscribe()

        radio.connection.service.notifications.push(b"\x01\x03")
        transport.poll()
        callback.assert_not_called()

    def test_subscribe_unknown_device(self, transport):
        with pytest.raises(ConnectError):
            transport.subscribe("00:00:00:00:00:00", MagicMock())

    def test_receive_error_does_not_raise(self, connected, radio):
        transport, _, _ = connected
        radio.connection.service.notifications.fail = True
        assert transport.poll() == 0

    def test_subscriber_exception_does_not_stop_others(self, connected, radio):
        transport, handle, _ = connected
        good = MagicMock()
        transport.subscribe(handle.device_id, MagicMock(side_effect=Exception("boom")))
        transport.subscribe(handle.device_id, good)

        radio.connection.service.notifications.push(b"\x01\x04")
        transport.poll()
        good.assert_called_once_with(4)


# ============================================================================
# Link Loss Tests
# ============================================================================

class TestLinkLoss:
    """Dropped links are noticed by poll()."""

    def test_on_disconnect_fired_once(self, connected, radio):
        transport, handle, on_disconnect = connected
        radio.connection.connected = False

        transport.poll()
        transport.poll()

        on_disconnect.assert_called_once_with(handle)
        assert not transport.is_connected(handle.device_id)

    def test_no_callback_after_explicit_disconnect(self, connected, radio):
        transport, handle, on_disconnect = connected
        transport.disconnect(handle.device_id)
        transport.poll()
        on_disconnect.assert_not_called()


# ============================================================================
# Disconnect Tests
# ============================================================================

class TestDisconnect:

    def test_disconnect_closes_link(self, connected, radio):
        transport, handle, _ = connected
        transport.disconnect(handle.device_id)
        assert radio.connection.disconnect_calls == 1
        assert not transport.is_connected(handle.device_id)

    def test_disconnect_idempotent(self, connected, radio):
        transport, handle, _ = connected
        transport.disconnect(handle.device_id)
        transport.disconnect(handle.device_id)
        transport.disconnect("never-connected")
        assert radio.connection.disconnect_calls == 1

    def test_disconnect_never_raises(self, connected, radio):
        transport, handle, _ = connected
        radio.connection.disconnect = MagicMock(side_effect=RuntimeError("already gone"))
        transport.disconnect(handle.device_id)
        assert transport.get_all_connections() == []

    def test_disconnect_all(self, connected):
        transport, _, _ = connected
        transport.disconnect_all()
        assert transport.get_all_connections() == []
