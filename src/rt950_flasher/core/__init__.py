"""
Core module for the RT-950 flasher.

Single entry point for the CLI:
- Result objects (results.py)
- Flash / inspect / port workflows (actions.py)
- Standardized warnings/messages (messages.py)
"""

from .results import OperationResult
from .messages import (
    MessageLevel,
    WarningCode,
    WarningItem,
    result_to_warnings,
)
from .actions import (
    flash_firmware,
    inspect_firmware_file,
    list_ports,
)

__all__ = [
    # Results
    "OperationResult",
    # Messages
    "MessageLevel",
    "WarningCode",
    "WarningItem",
    "result_to_warnings",
    # Actions
    "flash_firmware",
    "inspect_firmware_file",
    "list_ports",
]
