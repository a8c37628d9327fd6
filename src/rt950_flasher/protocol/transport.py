"""
RT-950 Serial Transport Layer

Two interchangeable ways of talking to the radio's K-plug serial adapter:

- SerialTransport: buffered I/O through PySerial with a per-call read timeout.
- RawTransport: the device node opened directly and put into termios raw
  mode, with select()-polled reads. Some USB serial drivers misbehave under
  the higher level abstraction; this path talks to the driver directly.

Both satisfy the same contract:
- write_all() sends every byte or raises TransportWriteError
- read() returns 0..max_bytes bytes; a short or empty read is "not yet",
  never an error
- discard_buffers() drops pending input/output on a best-effort basis
"""

import logging
import os
import select
import time
from typing import List, Optional

try:
    import serial
    import serial.tools.list_ports
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

try:
    import termios
except ImportError:  # pragma: no cover - Windows
    termios = None

from ..config import SERIAL_SETTINGS

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Base exception for transport layer errors"""
    pass


class TransportOpenError(TransportError):
    """Port could not be opened or configured"""
    pass


class TransportWriteError(TransportError):
    """Write failed or was incomplete"""
    pass


class TransportReadError(TransportError):
    """Read failed at the OS/driver level"""
    pass


def _hex_preview(data: bytes, limit: int = 32) -> str:
    return data[:limit].hex().upper() + ("..." if len(data) > limit else "")


class Transport:
    """
    Byte pipe to the radio.

    Implementations own their connection; the bootloader engine only
    borrows a transport and never closes it.
    """

    def write_all(self, data: bytes) -> None:
        raise NotImplementedError

    def read(self, max_bytes: int, timeout: float) -> bytes:
        raise NotImplementedError

    def discard_buffers(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SerialTransport(Transport):
    """
    Buffered transport over PySerial.

    ``port`` may be a device path ("/dev/ttyUSB0", "COM3") or any PySerial
    URL ("loop://", "socket://host:port").

    Example:
        with SerialTransport("/dev/ttyUSB0") as transport:
            transport.write_all(b"PROGRAMBT9000U")
            ack = transport.read(1, timeout=3.0)
    """

    def __init__(
        self,
        port: str,
        baudrate: int = SERIAL_SETTINGS["baudrate"],
        timeout: float = 0.1,
        write_timeout: float = 2.0,
    ):
        """
        Args:
            port: Serial port or PySerial URL
            baudrate: Serial baud rate (default 115200)
            timeout: Default read timeout in seconds
            write_timeout: Write timeout in seconds
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.write_timeout = write_timeout
        self.ser: Optional["serial.Serial"] = None

    def open(self) -> "SerialTransport":
        """
        Open and configure the port (8N1, DTR/RTS asserted, buffers cleared).

        Raises:
            TransportOpenError: If the port cannot be opened
        """
        try:
            self.ser = serial.serial_for_url(
                self.port,
                baudrate=self.baudrate,
                bytesize=SERIAL_SETTINGS["bytesize"],
                parity=SERIAL_SETTINGS["parity"],
                stopbits=SERIAL_SETTINGS["stopbits"],
                timeout=self.timeout,
                write_timeout=self.write_timeout,
                rtscts=False,
                dsrdtr=False,
            )
            self.ser.dtr = True
            self.ser.rts = True
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
        except (serial.SerialException, ValueError) as e:
            raise TransportOpenError(f"Cannot open port {self.port}: {e}")

        logger.debug(f"Opened {self.port} at {self.baudrate} bps (buffered)")
        return self

    def close(self) -> None:
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    def __enter__(self) -> "SerialTransport":
        if not self.ser:
            self.open()
        return self

    def _require_open(self) -> "serial.Serial":
        if not self.ser or not self.ser.is_open:
            raise TransportError("Serial port not open")
        return self.ser

    def write_all(self, data: bytes) -> None:
        ser = self._require_open()
        try:
            written = ser.write(data)
            ser.flush()
        except serial.SerialException as e:
            raise TransportWriteError(f"Write error: {e}")
        if written is not None and written != len(data):
            raise TransportWriteError(f"Incomplete write: sent {written}/{len(data)} bytes")
        logger.debug(f">>> {_hex_preview(data)}")

    def read(self, max_bytes: int, timeout: float) -> bytes:
        ser = self._require_open()
        if max_bytes <= 0:
            return b""
        try:
            if ser.timeout != timeout:
                ser.timeout = timeout
            data = ser.read(max_bytes)
        except serial.SerialException as e:
            raise TransportReadError(f"Read error: {e}")
        if data:
            logger.debug(f"<<< {_hex_preview(data)}")
        return bytes(data)

    def discard_buffers(self) -> None:
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
            ser.reset_output_buffer()
        except serial.SerialException as e:
            logger.warning(f"Could not discard serial buffers: {e}")


def configure_raw_mode(fd: int, baudrate: int = SERIAL_SETTINGS["baudrate"]) -> None:
    """
    Put a tty file descriptor into 8N1 raw mode (cfmakeraw equivalent).

    Canonical mode, echo, signal generation and all input/output
    post-processing are disabled. VMIN=0/VTIME=0 so read() never blocks.
    """
    if termios is None:
        raise TransportOpenError("Raw serial mode requires a POSIX termios platform")

    speed = getattr(termios, f"B{baudrate}", None)
    if speed is None:
        raise TransportOpenError(f"Unsupported baud rate for raw mode: {baudrate}")

    iflag, oflag, cflag, lflag, _ispeed, _ospeed, cc = termios.tcgetattr(fd)

    iflag &= ~(
        termios.IGNBRK | termios.BRKINT | termios.PARMRK | termios.ISTRIP
        | termios.INLCR | termios.IGNCR | termios.ICRNL
        | termios.IXON | termios.IXOFF | termios.IXANY
    )
    oflag &= ~termios.OPOST
    lflag &= ~(termios.ECHO | termios.ECHONL | termios.ICANON | termios.ISIG | termios.IEXTEN)
    cflag &= ~(termios.CSIZE | termios.PARENB | termios.CSTOPB | getattr(termios, "CRTSCTS", 0))
    cflag |= termios.CS8 | termios.CREAD | termios.CLOCAL

    cc = list(cc)
    cc[termios.VMIN] = 0
    cc[termios.VTIME] = 0

    termios.tcsetattr(fd, termios.TCSANOW, [iflag, oflag, cflag, lflag, speed, speed, cc])
    termios.tcflush(fd, termios.TCIOFLUSH)


class RawTransport(Transport):
    """
    Direct device-node transport using POSIX termios and select().

    Reads are bounded by polling for readability in ``poll_slice`` steps
    until the requested count arrives or the timeout elapses, which gives
    the same short-read behaviour as SerialTransport.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = SERIAL_SETTINGS["baudrate"],
        write_timeout: float = 2.0,
        poll_slice: float = 0.01,
    ):
        self.port = port
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self.poll_slice = poll_slice
        self.fd: Optional[int] = None

    def open(self) -> "RawTransport":
        """
        Raises:
            TransportOpenError: If the node cannot be opened or configured
        """
        try:
            fd = os.open(self.port, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
        except OSError as e:
            raise TransportOpenError(f"Cannot open port {self.port}: {e}")

        try:
            configure_raw_mode(fd, self.baudrate)
        except TransportOpenError:
            os.close(fd)
            raise
        except (OSError, termios.error) as e:
            os.close(fd)
            raise TransportOpenError(f"Cannot configure raw mode on {self.port}: {e}")

        self.fd = fd
        logger.debug(f"Opened {self.port} at {self.baudrate} bps (raw, fd={fd})")
        return self

    def close(self) -> None:
        if self.fd is not None:
            os.close(self.fd)
            logger.debug(f"Closed {self.port} (fd={self.fd})")
            self.fd = None

    def __enter__(self) -> "RawTransport":
        if self.fd is None:
            self.open()
        return self

    def _require_open(self) -> int:
        if self.fd is None:
            raise TransportError("Serial port not open")
        return self.fd

    def write_all(self, data: bytes) -> None:
        fd = self._require_open()
        view = memoryview(bytes(data))
        deadline = time.monotonic() + self.write_timeout
        while view:
            try:
                written = os.write(fd, view)
            except BlockingIOError:
                written = 0
            except OSError as e:
                raise TransportWriteError(f"Write error: {e}")
            view = view[written:]
            if not view:
                break
            if time.monotonic() >= deadline:
                raise TransportWriteError(
                    f"Incomplete write: sent {len(data) - len(view)}/{len(data)} bytes"
                )
            select.select([], [fd], [], self.poll_slice)
        logger.debug(f">>> {_hex_preview(bytes(data))}")

    def read(self, max_bytes: int, timeout: float) -> bytes:
        fd = self._require_open()
        if max_bytes <= 0:
            return b""

        out = bytearray()
        deadline = time.monotonic() + max(timeout, 0.0)
        while len(out) < max_bytes:
            wait = min(max(deadline - time.monotonic(), 0.0), self.poll_slice)
            try:
                readable, _, _ = select.select([fd], [], [], wait)
            except (OSError, ValueError) as e:
                raise TransportReadError(f"Poll error: {e}")
            if readable:
                try:
                    chunk = os.read(fd, max_bytes - len(out))
                except BlockingIOError:
                    chunk = None
                except OSError as e:
                    raise TransportReadError(f"Read error: {e}")
                if chunk == b"":
                    # readable with nothing to read: the line was hung up
                    raise TransportReadError(
                        "device reports readiness to read but returned no data "
                        "(disconnected?)"
                    )
                if chunk:
                    out.extend(chunk)
            if time.monotonic() >= deadline:
                break

        if out:
            logger.debug(f"<<< {_hex_preview(bytes(out))}")
        return bytes(out)

    def discard_buffers(self) -> None:
        fd = self._require_open()
        try:
            termios.tcflush(fd, termios.TCIOFLUSH)
        except (OSError, termios.error) as e:
            logger.warning(f"Could not discard serial buffers: {e}")


def open_transport(port: str, raw: bool = False, **kwargs) -> Transport:
    """
    Open a radio transport connection.

    Args:
        port: Serial port name (or PySerial URL for the buffered strategy)
        raw: Use the termios RawTransport instead of PySerial
        **kwargs: Passed to the transport constructor

    Returns:
        Transport instance (already open)
    """
    transport = RawTransport(port, **kwargs) if raw else SerialTransport(port, **kwargs)
    transport.open()
    return transport


def list_serial_ports() -> List[str]:
    """
    List serial port identifiers.

    On macOS the call-out ``/dev/cu.*`` nodes are listed before their
    ``/dev/tty.*`` twins; cu nodes do not wait for carrier detect.
    """
    ports = [p.device for p in serial.tools.list_ports.comports()]
    return sorted(ports, key=lambda p: (1 if "/tty." in p else 0, p))
