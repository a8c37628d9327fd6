"""Tests for the buffered and raw serial transports."""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest

from rt950_flasher.protocol.transport import (
    RawTransport,
    SerialTransport,
    TransportError,
    TransportOpenError,
    TransportReadError,
    list_serial_ports,
    open_transport,
)


class TestSerialTransport:
    """PySerial-backed transport over the loop:// URL."""

    def test_write_then_read_back(self):
        with SerialTransport("loop://") as transport:
            transport.write_all(b"\xAA\x42")
            assert transport.read(2, timeout=0.5) == b"\xAA\x42"

    def test_short_read_is_not_an_error(self):
        with SerialTransport("loop://") as transport:
            transport.write_all(b"\x06")
            assert transport.read(16, timeout=0.05) == b"\x06"
            assert transport.read(1, timeout=0.05) == b""

    def test_discard_buffers_drops_input(self):
        with SerialTransport("loop://") as transport:
            transport.write_all(b"junk")
            transport.discard_buffers()
            assert transport.read(4, timeout=0.05) == b""

    def test_closed_port_raises(self):
        transport = SerialTransport("loop://")
        with pytest.raises(TransportError):
            transport.write_all(b"x")
        with pytest.raises(TransportError):
            transport.read(1, timeout=0.01)

    def test_open_failure(self):
        with pytest.raises(TransportOpenError):
            SerialTransport("/dev/does-not-exist-rt950").open()

    def test_open_transport_returns_open_buffered_transport(self):
        transport = open_transport("loop://")
        try:
            assert isinstance(transport, SerialTransport)
            assert transport.ser.is_open
            assert transport.ser.baudrate == 115200
        finally:
            transport.close()


@pytest.mark.skipif(
    sys.platform.startswith("win") or not hasattr(os, "openpty"),
    reason="raw transport needs a POSIX pty",
)
class TestRawTransport:
    """termios transport against a pseudo-terminal pair."""

    @pytest.fixture
    def pty_pair(self):
        master, slave = os.openpty()
        path = os.ttyname(slave)
        yield master, path
        os.close(slave)
        os.close(master)

    def test_round_trip_through_pty(self, pty_pair):
        master, path = pty_pair
        with RawTransport(path) as transport:
            transport.write_all(b"PROGRAMBT9000U")
            assert os.read(master, 64) == b"PROGRAMBT9000U"

            os.write(master, b"\x06")
            assert transport.read(4, timeout=0.5) == b"\x06"

    def test_binary_bytes_pass_unmodified(self, pty_pair):
        """Raw mode must not translate CR/LF or swallow control bytes."""
        master, path = pty_pair
        payload = bytes([0xAA, 0x0D, 0x0A, 0x03, 0x11, 0x13, 0x55])
        with RawTransport(path) as transport:
            os.write(master, payload)
            data = b""
            for _ in range(10):
                data += transport.read(len(payload) - len(data), timeout=0.1)
                if len(data) == len(payload):
                    break
            assert data == payload

    def test_read_timeout_returns_empty(self, pty_pair):
        _, path = pty_pair
        with RawTransport(path) as transport:
            assert transport.read(1, timeout=0.05) == b""

    def test_hangup_raises_instead_of_spinning(self, pty_pair):
        """Readable with zero bytes means the device went away."""
        _, path = pty_pair
        with RawTransport(path) as transport:
            with patch(
                "rt950_flasher.protocol.transport.select.select",
                side_effect=lambda r, w, x, t: (r, [], []),
            ), patch("rt950_flasher.protocol.transport.os.read", return_value=b""):
                with pytest.raises(TransportReadError, match="disconnected"):
                    transport.read(1, timeout=0.2)

    def test_closed_raises(self, pty_pair):
        _, path = pty_pair
        transport = RawTransport(path)
        with pytest.raises(TransportError):
            transport.read(1, timeout=0.01)

    def test_open_missing_node(self):
        with pytest.raises(TransportOpenError):
            RawTransport("/dev/does-not-exist-rt950").open()


def test_list_serial_ports_orders_callout_nodes_first() -> None:
    """macOS cu.* nodes come before their tty.* twins."""
    fake_ports = [
        MagicMock(device="/dev/tty.usbserial-1"),
        MagicMock(device="/dev/cu.usbserial-1"),
        MagicMock(device="/dev/ttyUSB0"),
    ]
    with patch("serial.tools.list_ports.comports", return_value=fake_ports):
        ports = list_serial_ports()

    assert ports.index("/dev/cu.usbserial-1") < ports.index("/dev/tty.usbserial-1")
    assert set(ports) == {"/dev/tty.usbserial-1", "/dev/cu.usbserial-1", "/dev/ttyUSB0"}
