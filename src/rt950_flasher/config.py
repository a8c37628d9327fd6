"""
Serial settings and protocol timings for the RT-950 bootloader.

The serial line settings are fixed by the device. Timings follow the vendor
updater; they are exposed so bench debugging can stretch them.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict

SERIAL_SETTINGS: Dict[str, Any] = {
    "baudrate": 115200,
    "bytesize": 8,
    "parity": "N",
    "stopbits": 1,
}


class ConfigError(ValueError):
    """Raised for an invalid configuration override."""


@dataclass(frozen=True)
class FlashConfig:
    """
    Protocol timing and sizing parameters.

    Attributes:
        baudrate: Serial baud rate (fixed by the device)
        chunk_size: Firmware bytes per CMD_UPDATE packet
        handshake_timeout: Seconds to wait for an ASCII handshake ACK
        command_timeout: Seconds to wait for a binary command reply
        retry_budget: Consecutive unanswered attempts before giving up
        poll_interval: Seconds between polls while waiting on the radio
        pre_handshake_delay: Pause before draining spontaneous bytes
        handshake_settle: Pause after the handshake before binary commands
        write_timeout: Seconds the raw transport may take to push one write
    """
    baudrate: int = 115200
    chunk_size: int = 1024
    handshake_timeout: float = 3.0
    command_timeout: float = 2.0
    retry_budget: int = 5
    poll_interval: float = 0.01
    pre_handshake_delay: float = 0.5
    handshake_settle: float = 0.08
    write_timeout: float = 2.0

    def __post_init__(self) -> None:
        if self.retry_budget < 1:
            raise ConfigError("retry_budget must be >= 1")
        if self.chunk_size <= 0 or self.chunk_size > 0xFFFF:
            raise ConfigError("chunk_size must be 1..65535")
        for name in ("handshake_timeout", "command_timeout", "poll_interval", "write_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")
        for name in ("pre_handshake_delay", "handshake_settle"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")

    def with_overrides(self, **overrides: Any) -> "FlashConfig":
        """Return a copy with the non-None ``overrides`` applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


DEFAULT_CONFIG = FlashConfig()
