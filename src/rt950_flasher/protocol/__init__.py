"""Radio protocol layer - packet codec, transports and the bootloader engine."""

from .packet import (
    Packet,
    PacketError,
    DeviceErrorCode,
    crc16_xmodem,
    encode_packet,
    decode_packet,
    command_name,
)
from .transport import (
    Transport,
    SerialTransport,
    RawTransport,
    TransportError,
    TransportOpenError,
    TransportWriteError,
    TransportReadError,
    open_transport,
    list_serial_ports,
)
from .states import FlashOutcome, Stage
from .clock import Clock, MonotonicClock
from .bootloader import BootloaderEngine
from .simulator import SimulatedRadio, SimulatedTransport

__all__ = [
    # Packet codec
    "Packet",
    "PacketError",
    "DeviceErrorCode",
    "crc16_xmodem",
    "encode_packet",
    "decode_packet",
    "command_name",
    # Transport
    "Transport",
    "SerialTransport",
    "RawTransport",
    "TransportError",
    "TransportOpenError",
    "TransportWriteError",
    "TransportReadError",
    "open_transport",
    "list_serial_ports",
    # Engine
    "BootloaderEngine",
    "FlashOutcome",
    "Stage",
    "Clock",
    "MonotonicClock",
    # Simulator
    "SimulatedRadio",
    "SimulatedTransport",
]
