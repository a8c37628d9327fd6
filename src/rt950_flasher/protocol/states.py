"""
States of the bootloader transfer.

Each state is a small immutable value. The engine maps a state to the next
one; response reassembly is carried in AwaitResponse rather than in shared
buffers and offsets.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from .packet import (
    CMD_CHECKMODELTYPE,
    CMD_HANDSHAKE,
    CMD_INTO_BOOT,
    CMD_UPDATE,
    CMD_UPDATE_DATA_PACKAGES,
    CMD_UPDATE_END,
)


class Stage(Enum):
    """Binary phase commands, in protocol order."""
    INTO_BOOT = "into_boot"
    HANDSHAKE = "handshake"
    CHECK_MODEL = "check_model"
    SEND_PACKAGES = "send_packages"
    READ_FILE = "read_file"
    END = "end"

    @property
    def command(self) -> int:
        return STAGE_COMMANDS[self]


STAGE_COMMANDS = {
    Stage.INTO_BOOT: CMD_INTO_BOOT,
    Stage.HANDSHAKE: CMD_HANDSHAKE,
    Stage.CHECK_MODEL: CMD_CHECKMODELTYPE,
    Stage.SEND_PACKAGES: CMD_UPDATE_DATA_PACKAGES,
    Stage.READ_FILE: CMD_UPDATE,
    Stage.END: CMD_UPDATE_END,
}


class ResponsePhase(Enum):
    WAIT_HEADER = "wait_header"
    WAIT_FIXED_FIELDS = "wait_fixed_fields"
    WAIT_PAYLOAD_AND_TRAILER = "wait_payload_and_trailer"


class FlashOutcome(Enum):
    """How a transfer session ended."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TRANSPORT_FAULT = "transport_fault"
    HANDSHAKE_FAILED = "handshake_failed"
    TRANSFER_FAILED = "transfer_failed"
    DEVICE_ERROR = "device_error"
    FIRMWARE_ERROR = "firmware_error"


@dataclass(frozen=True)
class HandshakeInit:
    """Drain the line and send the ASCII program request."""


@dataclass(frozen=True)
class HandshakeAwaitAck:
    """Waiting for the 0x06 answering ASCII handshake ``step`` (1 or 2)."""
    step: int


@dataclass(frozen=True)
class SendCommand:
    """Entry action of a binary stage: build and send its packet."""
    stage: Stage


@dataclass(frozen=True)
class AwaitResponse:
    """
    Reassembling the reply to the last command.

    ``buffer`` holds the bytes collected so far, starting at the 0xAA header.
    """
    phase: ResponsePhase = ResponsePhase.WAIT_HEADER
    buffer: bytes = b""
    data_length: int = 0


@dataclass(frozen=True)
class Finished:
    outcome: FlashOutcome


State = Union[HandshakeInit, HandshakeAwaitAck, SendCommand, AwaitResponse, Finished]


_NEXT_AFTER_ACK = {
    CMD_INTO_BOOT: SendCommand(Stage.HANDSHAKE),
    CMD_HANDSHAKE: SendCommand(Stage.CHECK_MODEL),
    CMD_CHECKMODELTYPE: SendCommand(Stage.SEND_PACKAGES),
    CMD_UPDATE_DATA_PACKAGES: SendCommand(Stage.READ_FILE),
    CMD_UPDATE: SendCommand(Stage.READ_FILE),
    CMD_UPDATE_END: Finished(FlashOutcome.COMPLETED),
}


def next_state_after_ack(last_command: int) -> State:
    """
    Where an ACK leads, keyed by the command that was acknowledged.

    After a chunk the next state is always READ_FILE; that stage moves on
    to END itself when the image is exhausted.
    """
    try:
        return _NEXT_AFTER_ACK[last_command]
    except KeyError:
        raise ValueError(f"No transition for ACK of command 0x{last_command:02X}")


def is_waiting(state: State) -> bool:
    """True for states bounded by the retry deadline."""
    return isinstance(state, (HandshakeAwaitAck, AwaitResponse))
