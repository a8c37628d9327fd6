"""Tests for the rt950-flasher command line."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from rt950_flasher.cli import EXIT_CANCELLED, EXIT_FAILED, app, exit_code_for
from rt950_flasher.core.results import OperationResult


runner = CliRunner()


class TestFlashCommand:
    """flash against the simulator."""

    def test_simulated_flash(self, firmware_path):
        result = runner.invoke(
            app, ["flash", "--simulate", "--key-combo", "--yes", "-f", str(firmware_path)]
        )
        assert result.exit_code == 0, result.output
        assert "Download Completed!" in result.output
        assert "Firmware flashed" in result.output

    def test_key_combo_prints_flashing_instructions(self, firmware_path):
        result = runner.invoke(
            app, ["flash", "--simulate", "--key-combo", "--yes", "-f", str(firmware_path)]
        )
        assert "side keys 3 and 4" in result.output

    def test_port_required_without_simulate(self, firmware_path):
        result = runner.invoke(app, ["flash", "--yes", "-f", str(firmware_path)])
        assert result.exit_code != 0

    def test_invalid_retries_rejected(self, firmware_path):
        result = runner.invoke(
            app, ["flash", "--simulate", "--yes", "--retries", "0", "-f", str(firmware_path)]
        )
        assert result.exit_code != 0

    def test_declined_prompt_aborts(self, firmware_path):
        with patch("rt950_flasher.cli.core_flash_firmware") as flash:
            result = runner.invoke(
                app, ["flash", "--simulate", "-f", str(firmware_path)], input="n\n"
            )
        assert result.exit_code != 0
        flash.assert_not_called()

    def test_failed_flash_exits_1(self, tmp_path):
        result = runner.invoke(
            app, ["flash", "--simulate", "--yes", "-f", str(tmp_path / "missing.bin")]
        )
        assert result.exit_code == EXIT_FAILED
        assert "W_FIRMWARE_UNREADABLE" in result.output


class TestOtherCommands:
    """ports and inspect."""

    def test_inspect(self, firmware_path):
        result = runner.invoke(app, ["inspect", str(firmware_path)])
        assert result.exit_code == 0, result.output
        assert "RT-950" in result.output
        assert "3,000" in result.output

    def test_inspect_missing(self, tmp_path):
        result = runner.invoke(app, ["inspect", str(tmp_path / "missing.bin")])
        assert result.exit_code == EXIT_FAILED

    def test_ports(self):
        with patch(
            "rt950_flasher.protocol.transport.list_serial_ports",
            return_value=["/dev/ttyUSB0"],
        ):
            result = runner.invoke(app, ["ports"])
        assert result.exit_code == 0
        assert "/dev/ttyUSB0" in result.output


@pytest.mark.parametrize(
    "ok, outcome, code",
    [
        (True, "completed", 0),
        (False, "cancelled", EXIT_CANCELLED),
        (False, "handshake_failed", EXIT_FAILED),
    ],
)
def test_exit_codes(ok, outcome, code) -> None:
    result = OperationResult(ok=ok, operation="flash_firmware", outcome=outcome)
    assert exit_code_for(result) == code
