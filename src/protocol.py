"""
Puck Wire Protocol
==================
Byte-level commands and notification framing for the TapFit Puck.

Commands written to characteristic 0xFFE1:
    - RESET:     [0x00]          clear the puck's rep counter
    - REP_COUNT: [0x01, count]   set the rep count (test harness only)

Notifications from the puck use the same REP_COUNT frame, carrying the
cumulative number of reps detected since the last reset (8 bits).

Notifications are read from a stream buffer, so several frames can arrive
in one read and a frame can be split across two reads. RepPacketParser
reassembles them.

Module: protocol
Version: 1.0.0
"""

from core.constants import CMD_RESET, OP_REP_COUNT, DEBUG_ENABLED


def encode_reset():
    """
    Build the reset command.

    Returns:
        bytes: Single 0x00 byte
    """
    return bytes([CMD_RESET])


def encode_rep_count(count):
    """
    Build a "set rep count" command.

    Args:
        count: Rep count, 0-255

    Returns:
        bytes: [0x01, count]

    Raises:
        ValueError: If count does not fit in one byte
    """
    if not isinstance(count, int) or count < 0 or count > 0xFF:
        raise ValueError("Rep count must be an integer in 0..255, got {!r}".format(count))
    return bytes([OP_REP_COUNT, count])


class RepPacketParser:
    """
    Reassemble REP_COUNT frames from the notification byte stream.

    Usage:
        parser = RepPacketParser()
        counts = parser.feed(b"\\x01\\x03\\x01")   # -> [3], 0x01 kept pending
        counts = parser.feed(b"\\x04")            # -> [4]
    """

    def __init__(self):
        self._pending = bytearray()
        self.dropped_bytes = 0

    def feed(self, data):
        """
        Consume bytes and return the rep counts of every complete frame.

        Args:
            data: Bytes read from the notification buffer

        Returns:
            list: Rep counts in arrival order
        """
        if not data:
            return []

        buf = self._pending + bytearray(data)
        counts = []
        i = 0
        while i < len(buf):
            if buf[i] != OP_REP_COUNT:
                # Unknown op-code, resync on the next byte
                self.dropped_bytes += 1
                if DEBUG_ENABLED:
                    print("[PROTOCOL] Skipping unknown byte 0x{:02x}".format(buf[i]))
                i += 1
                continue
            if i + 1 >= len(buf):
                break
            counts.append(buf[i + 1])
            i += 2

        self._pending = bytearray(buf[i:])
        return counts

    def has_partial(self):
        """Return True if a frame is waiting for its count byte."""
        return len(self._pending) > 0

    def reset(self):
        """Drop any partially received frame."""
        self._pending = bytearray()
