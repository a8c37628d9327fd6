"""Tests for core workflow actions."""

from unittest.mock import patch

from rt950_flasher.core.actions import flash_firmware, inspect_firmware_file, list_ports
from rt950_flasher.core.messages import WarningCode, result_to_warnings
from rt950_flasher.core.results import OperationResult
from rt950_flasher.protocol.transport import TransportOpenError

from conftest import make_image


class TestFlashFirmware:
    """flash_firmware() end to end on the simulator."""

    def test_simulated_flash_succeeds(self, firmware_path):
        progress = []
        lines = []

        result = flash_firmware(
            "",
            str(firmware_path),
            key_combo=True,
            simulate=True,
            on_progress=progress.append,
            on_message=lines.append,
        )

        assert result.ok, result.to_summary()
        assert result.outcome == "completed"
        assert result.bytes_len == 3000
        assert result.model == "RT-950"
        assert result.metadata["resends"] == 0
        assert result.metadata["simulated"] is True
        assert progress[-1] == 100.0
        assert "Download Completed!\r\n" in lines
        assert any("Simulation" in w for w in result.warnings)
        assert any("Transfer finished: completed" in line for line in result.logs)

    def test_simulated_upgrade_mode(self, firmware_path):
        result = flash_firmware("", str(firmware_path), key_combo=False, simulate=True)
        assert result.ok
        assert "Handshake...\r\n" in result.metadata["messages"]

    def test_missing_firmware(self, tmp_path):
        result = flash_firmware("loop://", str(tmp_path / "none.bin"), key_combo=True)
        assert not result.ok
        assert result.outcome == "firmware_error"
        assert "not found" in result.errors[0]

    def test_open_failure_reported(self, firmware_path):
        with patch(
            "rt950_flasher.protocol.transport.open_transport",
            side_effect=TransportOpenError("Cannot open port /dev/ttyUSB9: busy"),
        ):
            result = flash_firmware("/dev/ttyUSB9", str(firmware_path), key_combo=True)

        assert not result.ok
        assert result.outcome == "transport_fault"
        codes = [w.code for w in result_to_warnings(result)]
        assert WarningCode.W_DEVICE_NOT_FOUND in codes

    def test_silent_port_fails_and_closes_transport(self, firmware_path):
        """loop:// echoes our own packets back; none of them is an ACK."""
        from rt950_flasher.config import FlashConfig
        from rt950_flasher.protocol.transport import SerialTransport

        closed = []
        real_close = SerialTransport.close

        def tracking_close(self):
            closed.append(self.port)
            real_close(self)

        config = FlashConfig(command_timeout=0.05, retry_budget=2)
        with patch.object(SerialTransport, "close", tracking_close):
            result = flash_firmware("loop://", str(firmware_path), key_combo=True, config=config)

        assert not result.ok
        assert result.outcome == "transfer_failed"
        assert closed == ["loop://"]

    def test_cancel_maps_to_cancelled(self, firmware_path):
        class AlwaysSet:
            def is_set(self):
                return True

        result = flash_firmware(
            "", str(firmware_path), key_combo=True, simulate=True, cancel=AlwaysSet()
        )
        assert not result.ok
        assert result.cancelled
        codes = [w.code for w in result_to_warnings(result)]
        assert WarningCode.W_CANCELLED in codes


class TestInspectAndPorts:
    """Offline helpers."""

    def test_inspect(self, firmware_path):
        result = inspect_firmware_file(str(firmware_path))
        assert result.ok
        assert result.metadata["chunks"] == 3
        assert result.metadata["packages_field"] == 2
        assert result.warnings == []

    def test_inspect_short_image_warns(self, tmp_path):
        path = tmp_path / "short.bin"
        path.write_bytes(make_image(500))
        result = inspect_firmware_file(str(path))
        assert result.ok
        codes = [w.code for w in result_to_warnings(result)]
        assert codes == [WarningCode.W_MODEL_FIELD_SHORT]

    def test_list_ports(self):
        with patch(
            "rt950_flasher.protocol.transport.list_serial_ports",
            return_value=["/dev/cu.usbserial", "/dev/tty.usbserial"],
        ):
            result = list_ports()
        assert result.ok
        assert result.metadata["ports"] == ["/dev/cu.usbserial", "/dev/tty.usbserial"]

    def test_list_ports_empty_warns(self):
        with patch("rt950_flasher.protocol.transport.list_serial_ports", return_value=[]):
            result = list_ports()
        assert result.ok
        assert result.warnings == ["No serial ports found"]


def test_result_summary_and_dict() -> None:
    result = OperationResult.failure("flash_firmware", "Handshake failed!", port="COM3")
    result.outcome = "handshake_failed"
    assert "[FAILED] flash_firmware" in result.to_summary()
    assert result.to_dict()["port"] == "COM3"
    items = result_to_warnings(result)
    assert items[0].code is WarningCode.W_HANDSHAKE_FAILED
    assert items[0].remediation
