"""
Core Constants
==============
Protocol and session constants for the TapFit Puck rep counter.

The session constants mirror what the workout screens expect
("Set X/4", "/10 reps", 90 second rest) and are the defaults for the
matching configuration keys in config.py.

Module: core.constants
Version: 1.0.0
"""

APP_VERSION = "1.0.0"

# Verbose logging in hot paths (notifications, writes)
DEBUG_ENABLED = False

DEVICE_TAG = "[TAPFIT]"

# BLE service exposed by the Puck firmware
SERVICE_UUID = "0000FFE0-0000-1000-8000-00805F9B34FB"
CHARACTERISTIC_UUID = "0000FFE1-0000-1000-8000-00805F9B34FB"
SERVICE_UUID_16 = 0xFFE0
CHARACTERISTIC_UUID_16 = 0xFFE1

# Names advertised by the Puck firmware builds
PUCK_NAMES = ("TapFit Puck", "TapFit", "TapFit-Puck")

# Wire op-codes
CMD_RESET = 0x00
OP_REP_COUNT = 0x01

# Session defaults
MAX_REPS = 10
MAX_SETS = 4
REST_SECONDS = 90

# Transport defaults
CONNECT_TIMEOUT_SEC = 15.0
RECONNECT_DELAYS_SEC = (1.0, 2.0, 4.0, 8.0, 16.0)

# Main loop rate (20Hz)
LOOP_INTERVAL_SEC = 0.05
