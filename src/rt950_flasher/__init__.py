"""
RT-950 Firmware Flasher - bootloader update utility for Radtel RT-950 radios

Serial transport, framed bootloader protocol and a retrying transfer engine.
"""

__version__ = "0.1.0"

from rt950_flasher.protocol import BootloaderEngine, FlashOutcome, open_transport
from rt950_flasher.config import FlashConfig, DEFAULT_CONFIG

__all__ = [
    "BootloaderEngine",
    "FlashOutcome",
    "open_transport",
    "FlashConfig",
    "DEFAULT_CONFIG",
    "__version__",
]
