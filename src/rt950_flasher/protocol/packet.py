"""
RT-950 bootloader packet codec.

Wire format (all multi-byte fields big-endian):

    0xAA | cmd | args_hi | args_lo | len_hi | len_lo | data[len] | crc_hi | crc_lo | 0x55

The CRC is CRC16-XMODEM computed over ``cmd .. data`` (5 + len bytes).
Replies use the same framing; ``args == 0x06`` marks an ACK, anything else
is a device error code.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

PACKAGE_HEADER = 0xAA
PACKAGE_END = 0x55
ACK = 0x06

CMD_CHECKMODELTYPE = 0x02
CMD_UPDATE = 0x03
CMD_UPDATE_DATA_PACKAGES = 0x04
CMD_HANDSHAKE = 0x0A
CMD_INTO_BOOT = 0x42
CMD_UPDATE_END = 0x45
CMD_INTO_ERASE_MODE = 0xEE  # known to the device, never sent by this tool

COMMAND_NAMES = {
    CMD_CHECKMODELTYPE: "CHECKMODELTYPE",
    CMD_UPDATE: "UPDATE",
    CMD_UPDATE_DATA_PACKAGES: "UPDATE_DATA_PACKAGES",
    CMD_HANDSHAKE: "HANDSHAKE",
    CMD_INTO_BOOT: "INTO_BOOT",
    CMD_UPDATE_END: "UPDATE_END",
    CMD_INTO_ERASE_MODE: "INTO_ERASE_MODE",
}

# header + cmd + args(2) + len(2)
FIXED_HEADER_LEN = 6
# crc(2) + trailer
TRAILER_LEN = 3


class PacketError(Exception):
    """Raised when a packet cannot be built from the given fields."""


class DeviceErrorCode(IntEnum):
    """Error codes reported by the bootloader in the args field of a reply."""

    HANDSHAKE_CODE = 0xE1
    DATA_VERIFICATION = 0xE2
    WRONG_ADDRESS = 0xE3
    FLASH_WRITE = 0xE4
    COMMAND = 0xE5
    MODEL_MISMATCH = 0xE6

    @property
    def description(self) -> str:
        return _ERROR_DESCRIPTIONS[self]

    @property
    def is_fatal(self) -> bool:
        """Only a data verification error is worth resending for."""
        return self is not DeviceErrorCode.DATA_VERIFICATION


_ERROR_DESCRIPTIONS = {
    DeviceErrorCode.HANDSHAKE_CODE: "Handshake Code Error!",
    DeviceErrorCode.DATA_VERIFICATION: "Data Verification Error!",
    DeviceErrorCode.WRONG_ADDRESS: "Wrong Address!",
    DeviceErrorCode.FLASH_WRITE: "Flash Write Error!",
    DeviceErrorCode.COMMAND: "Command Error!",
    DeviceErrorCode.MODEL_MISMATCH: "Model Mismatch!",
}


def lookup_error_code(value: int) -> Optional[DeviceErrorCode]:
    """Return the DeviceErrorCode for ``value`` or None if it is not a known code."""
    try:
        return DeviceErrorCode(value)
    except ValueError:
        return None


def command_name(cmd: int) -> str:
    return COMMAND_NAMES.get(cmd, f"0x{cmd:02X}")


def crc16_xmodem(data: bytes, offset: int = 0, count: Optional[int] = None) -> int:
    """
    Calculate CRC16-XMODEM (poly 0x1021, init 0, MSB first, no final XOR).

    Args:
        data: Buffer to checksum
        offset: First byte to include
        count: Number of bytes to include (default: to end of buffer)

    Returns:
        16-bit CRC value
    """
    if count is None:
        count = len(data) - offset
    crc = 0
    for byte in data[offset:offset + count]:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ 0x1021
            else:
                crc <<= 1
            crc &= 0xFFFF
    return crc & 0xFFFF


@dataclass(frozen=True)
class Packet:
    """A decoded bootloader packet."""

    command: int
    command_args: int
    data: bytes
    verify: bool

    @property
    def data_length(self) -> int:
        return len(self.data)

    @property
    def is_ack(self) -> bool:
        return self.command_args == ACK


def encode_packet(command: int, command_args: int = 0, data: Optional[bytes] = None) -> bytes:
    """
    Build a complete framed packet.

    Args:
        command: Command byte
        command_args: 16-bit argument (chunk sequence number for CMD_UPDATE)
        data: Optional payload

    Returns:
        Packet bytes ready for the wire
    """
    if not (0 <= command <= 0xFF):
        raise PacketError(f"command must fit in uint8, got {command}")
    if not (0 <= command_args <= 0xFFFF):
        raise PacketError(f"command_args must fit in uint16, got {command_args}")
    payload = bytes(data) if data else b""
    if len(payload) > 0xFFFF:
        raise PacketError(f"payload too large for uint16 length: {len(payload)} bytes")

    frame = bytearray([PACKAGE_HEADER, command])
    frame += command_args.to_bytes(2, "big")
    frame += len(payload).to_bytes(2, "big")
    frame += payload

    crc = crc16_xmodem(frame, offset=1, count=5 + len(payload))
    frame += crc.to_bytes(2, "big")
    frame.append(PACKAGE_END)
    return bytes(frame)


def decode_packet(raw: bytes) -> Packet:
    """
    Decode a framed packet and check its CRC.

    A CRC mismatch or a buffer too short for its declared length gives
    ``verify=False``; the caller decides what to do with a corrupt reply.
    """
    if len(raw) < FIXED_HEADER_LEN:
        return Packet(command=0, command_args=0, data=b"", verify=False)

    command = raw[1]
    command_args = int.from_bytes(raw[2:4], "big")
    data_length = int.from_bytes(raw[4:6], "big")
    data = bytes(raw[FIXED_HEADER_LEN:FIXED_HEADER_LEN + data_length])

    crc_at = FIXED_HEADER_LEN + data_length
    if len(raw) < crc_at + 2:
        return Packet(command=command, command_args=command_args, data=data, verify=False)

    received_crc = int.from_bytes(raw[crc_at:crc_at + 2], "big")
    calculated_crc = crc16_xmodem(raw, offset=1, count=5 + data_length)
    return Packet(
        command=command,
        command_args=command_args,
        data=data,
        verify=received_crc == calculated_crc,
    )
