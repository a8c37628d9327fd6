"""
Core workflow actions for the RT-950 flasher.

Plain functions the CLI calls. Each returns an OperationResult and never
raises for runtime faults; captured log lines travel with the result.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional

from ..config import DEFAULT_CONFIG, FlashConfig
from ..firmware import MODEL_FIELD_OFFSET, MODEL_FIELD_SIZE, FirmwareError, inspect_firmware
from .results import OperationResult

logger = logging.getLogger(__name__)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "rt950_flasher"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def inspect_firmware_file(path: str) -> OperationResult:
    """
    Summarise a firmware image offline.

    Returns:
        OperationResult with model, bytes_len, hashes["sha256"] and
        metadata chunks/packages_field/padding/model_field
    """
    try:
        info = inspect_firmware(path)
    except FirmwareError as e:
        return OperationResult.failure(operation="inspect", error=str(e))

    result = OperationResult.success(
        operation="inspect",
        model=info.model,
        bytes_len=info.size,
    )
    result.hashes["sha256"] = info.sha256
    result.metadata.update(
        {
            "path": info.path,
            "chunks": info.chunks,
            "packages_field": info.packages_field,
            "padding": info.padding,
            "model_field": info.model_field.hex(),
        }
    )
    if info.size < MODEL_FIELD_OFFSET + MODEL_FIELD_SIZE:
        result.add_warning(
            f"Image is {info.size} bytes; model field at 0x{MODEL_FIELD_OFFSET:X} is zero-padded"
        )
    return result


def list_ports() -> OperationResult:
    """Enumerate serial ports; metadata["ports"] holds the identifiers."""
    from ..protocol.transport import list_serial_ports

    try:
        ports = list_serial_ports()
    except Exception as e:
        logger.exception("Port enumeration failed")
        return OperationResult.failure(operation="ports", error=str(e))

    result = OperationResult.success(operation="ports")
    result.metadata["ports"] = ports
    if not ports:
        result.add_warning("No serial ports found")
    return result


def flash_firmware(
    port: str,
    firmware_path: str,
    *,
    key_combo: bool,
    raw: bool = False,
    simulate: bool = False,
    config: Optional[FlashConfig] = None,
    on_message: Optional[Callable[[str], None]] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    cancel=None,
) -> OperationResult:
    """
    Flash a firmware image to the radio on ``port``.

    The transport is opened here and closed on every exit path; the engine
    only borrows it.

    Args:
        port: Serial port path or PySerial URL (ignored when simulating)
        firmware_path: Path to the update image
        key_combo: Radio was powered on holding the side-key combo
        raw: Use the termios raw transport instead of PySerial
        simulate: Talk to an in-memory radio instead of a port
        config: Protocol timings (DEFAULT_CONFIG when omitted)
        on_message: Receives each status line as it happens
        on_progress: Receives percent complete
        cancel: Object with ``is_set()`` checked once per engine step

    Returns:
        OperationResult with outcome, metadata["messages"] and metadata["resends"]
    """
    from ..protocol.bootloader import BootloaderEngine
    from ..protocol.clock import MonotonicClock
    from ..protocol.simulator import SimulatedRadio, SimulatedTransport
    from ..protocol.transport import TransportError, open_transport

    config = config or DEFAULT_CONFIG
    operation = "flash_firmware"
    target = "simulator" if simulate else port

    if not Path(firmware_path).is_file():
        return OperationResult.failure(
            operation=operation,
            error=f"Firmware file not found: {firmware_path}",
            port=target,
            outcome="firmware_error",
        )

    with _capture_logs() as logs:
        inspected = inspect_firmware_file(firmware_path)
        if not inspected.ok:
            inspected.operation = operation
            inspected.port = target
            inspected.outcome = "firmware_error"
            inspected.logs = logs
            return inspected

        try:
            if simulate:
                clock = MonotonicClock()
                transport = SimulatedTransport(
                    SimulatedRadio(in_bootloader=key_combo), clock=clock
                )
            else:
                clock = None
                transport = open_transport(
                    port,
                    raw=raw,
                    baudrate=config.baudrate,
                    write_timeout=config.write_timeout,
                )
        except TransportError as e:
            logger.error(f"Cannot open {port}: {e}")
            result = OperationResult.failure(
                operation=operation,
                error=str(e),
                port=target,
                model=inspected.model,
                bytes_len=inspected.bytes_len,
                outcome="transport_fault",
            )
            result.logs = logs
            return result

        engine = BootloaderEngine(
            key_combo=key_combo,
            config=config,
            clock=clock,
            on_message=on_message,
            on_progress=on_progress,
        )
        try:
            with open(firmware_path, "rb") as firmware:
                ok = engine.run(transport, firmware, cancel=cancel)
        finally:
            transport.close()

        result = OperationResult(
            ok=ok,
            operation=operation,
            port=target,
            model=inspected.model,
            bytes_len=inspected.bytes_len,
            outcome=engine.outcome.value,
        )
        result.hashes.update(inspected.hashes)
        result.warnings.extend(inspected.warnings)
        result.metadata.update(
            {
                "messages": list(engine.messages),
                "resends": engine.resends,
                "percent": engine.percent,
                "chunks": inspected.metadata["chunks"],
                "key_combo": key_combo,
                "raw": raw,
            }
        )
        if simulate:
            result.metadata["simulated"] = True
            result.add_warning("Simulation mode - no radio was flashed")
        if not ok:
            last = engine.messages[-1].strip() if engine.messages else ""
            result.add_error(last or f"Transfer ended: {engine.outcome.value}")
        result.logs = logs
        return result
