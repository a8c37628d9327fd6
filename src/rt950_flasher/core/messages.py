"""
Standardized warning and message system for the RT-950 flasher.

Provides structured warning items with stable codes the CLI can display
consistently.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Dict


class MessageLevel(Enum):
    """Severity level for messages."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class WarningCode(Enum):
    """Stable warning codes for known conditions."""
    # Connection
    W_DEVICE_NOT_FOUND = "W_DEVICE_NOT_FOUND"
    W_SERIAL_ERROR = "W_SERIAL_ERROR"
    W_HANDSHAKE_FAILED = "W_HANDSHAKE_FAILED"

    # Transfer
    W_TRANSFER_FAILED = "W_TRANSFER_FAILED"
    W_DEVICE_ERROR = "W_DEVICE_ERROR"
    W_MODEL_MISMATCH = "W_MODEL_MISMATCH"
    W_CANCELLED = "W_CANCELLED"

    # Firmware image
    W_FIRMWARE_UNREADABLE = "W_FIRMWARE_UNREADABLE"
    W_MODEL_FIELD_SHORT = "W_MODEL_FIELD_SHORT"

    # Operation
    W_SIMULATED = "W_SIMULATED"

    # Generic
    W_UNKNOWN = "W_UNKNOWN"


# Default remediation hints for each warning code
WARNING_REMEDIATIONS: Dict[WarningCode, str] = {
    WarningCode.W_DEVICE_NOT_FOUND:
        "Check USB connection, try 'ports' command to list available ports.",
    WarningCode.W_SERIAL_ERROR:
        "Close other serial apps (CHIRP, vendor tools). Check USB driver and permissions.",
    WarningCode.W_HANDSHAKE_FAILED:
        "Radio did not answer the program request. Power cycle it and retry, "
        "or enter flashing mode with the side-key combo and use --key-combo.",
    WarningCode.W_TRANSFER_FAILED:
        "Radio stopped answering mid-transfer. Check the cable, then restart "
        "the radio in flashing mode and flash again.",
    WarningCode.W_DEVICE_ERROR:
        "The bootloader rejected a command. Check the log for the reported error.",
    WarningCode.W_MODEL_MISMATCH:
        "This firmware is for a different radio model. Do not force it.",
    WarningCode.W_CANCELLED:
        "Transfer was interrupted. The radio stays in the bootloader; flash again.",
    WarningCode.W_FIRMWARE_UNREADABLE:
        "Check the firmware path and file permissions.",
    WarningCode.W_MODEL_FIELD_SHORT:
        "Image is smaller than the model field; it is probably not RT-950 firmware.",
    WarningCode.W_SIMULATED:
        "No radio was touched. Remove --simulate to flash a real device.",
    WarningCode.W_UNKNOWN:
        "Check logs for more details (run with --verbose).",
}


@dataclass
class WarningItem:
    """
    Structured warning message with stable code.

    Attributes:
        level: Severity (INFO, WARN, ERROR)
        code: Stable warning code for programmatic handling
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: WarningCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        if not self.remediation and self.code in WARNING_REMEDIATIONS:
            self.remediation = WARNING_REMEDIATIONS[self.code]


# FlashOutcome value -> code used for the primary error of a failed transfer
OUTCOME_CODES: Dict[str, WarningCode] = {
    "cancelled": WarningCode.W_CANCELLED,
    "transport_fault": WarningCode.W_SERIAL_ERROR,
    "handshake_failed": WarningCode.W_HANDSHAKE_FAILED,
    "transfer_failed": WarningCode.W_TRANSFER_FAILED,
    "device_error": WarningCode.W_DEVICE_ERROR,
    "firmware_error": WarningCode.W_FIRMWARE_UNREADABLE,
}


def _classify(message: str) -> WarningCode:
    msg_lower = message.lower()
    if "model mismatch" in msg_lower:
        return WarningCode.W_MODEL_MISMATCH
    if "simulat" in msg_lower:
        return WarningCode.W_SIMULATED
    if "model field" in msg_lower:
        return WarningCode.W_MODEL_FIELD_SHORT
    if "cannot open port" in msg_lower:
        return WarningCode.W_DEVICE_NOT_FOUND
    return WarningCode.W_UNKNOWN


def result_to_warnings(result: "OperationResult") -> List[WarningItem]:
    """
    Convert a result's warnings and errors to WarningItem list.

    Errors of a failed transfer fall back to the code of its outcome when
    their text matches nothing more specific.
    """
    items = []

    for msg in result.warnings:
        code = _classify(msg)
        level = MessageLevel.INFO if code is WarningCode.W_SIMULATED else MessageLevel.WARN
        items.append(WarningItem(level, code, msg))

    for err in result.errors:
        code = _classify(err)
        if code is WarningCode.W_UNKNOWN:
            code = OUTCOME_CODES.get(result.outcome, WarningCode.W_UNKNOWN)
        level = MessageLevel.WARN if code is WarningCode.W_CANCELLED else MessageLevel.ERROR
        items.append(WarningItem(level, code, err))

    return items
