"""Tests for protocol timing configuration."""

import pytest

from rt950_flasher.config import DEFAULT_CONFIG, SERIAL_SETTINGS, ConfigError, FlashConfig


def test_defaults_match_device_protocol() -> None:
    assert DEFAULT_CONFIG.baudrate == 115200
    assert DEFAULT_CONFIG.chunk_size == 1024
    assert DEFAULT_CONFIG.handshake_timeout == 3.0
    assert DEFAULT_CONFIG.command_timeout == 2.0
    assert DEFAULT_CONFIG.retry_budget == 5
    assert SERIAL_SETTINGS == {"baudrate": 115200, "bytesize": 8, "parity": "N", "stopbits": 1}


class TestOverrides:
    """with_overrides() copies and validates."""

    def test_none_values_are_ignored(self):
        cfg = DEFAULT_CONFIG.with_overrides(command_timeout=None, retry_budget=3)
        assert cfg.retry_budget == 3
        assert cfg.command_timeout == DEFAULT_CONFIG.command_timeout
        assert DEFAULT_CONFIG.retry_budget == 5

    def test_unknown_field(self):
        with pytest.raises(ConfigError):
            DEFAULT_CONFIG.with_overrides(speed=9600)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("retry_budget", 0),
            ("command_timeout", 0),
            ("poll_interval", -1.0),
            ("chunk_size", 0x10000),
            ("handshake_settle", -0.1),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigError):
            FlashConfig(**{field: value})
