"""
RT-950 Bootloader Protocol Engine

Drives one firmware transfer over a borrowed Transport:

1. ASCII handshake (skipped when the radio was powered on holding the
   side-key combo, which already puts it in bootloader mode):
   "PROGRAMBT9000U" -> 0x06, "UPDATE" -> 0x06
2. Framed binary phase, one command in flight at a time:
   INTO_BOOT -> HANDSHAKE("BOOTLOADER_V3") -> CHECKMODELTYPE(model field)
   -> UPDATE_DATA_PACKAGES(count) -> UPDATE(chunk) x N -> UPDATE_END

Every command arms a deadline. When it passes without a verified reply the
exact same bytes are resent and the retry budget shrinks; any verified ACK
refills it. Corrupt replies are ignored and left to the deadline.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable, List, Optional

from ..config import DEFAULT_CONFIG, FlashConfig
from ..firmware import (
    FirmwareError,
    count_chunks,
    packages_field,
    read_chunk,
    read_model_field,
    stream_length,
)
from .clock import Clock, MonotonicClock
from .packet import (
    ACK,
    CMD_CHECKMODELTYPE,
    CMD_HANDSHAKE,
    CMD_INTO_BOOT,
    CMD_UPDATE,
    CMD_UPDATE_DATA_PACKAGES,
    CMD_UPDATE_END,
    FIXED_HEADER_LEN,
    PACKAGE_HEADER,
    TRAILER_LEN,
    Packet,
    command_name,
    decode_packet,
    encode_packet,
    lookup_error_code,
)
from .states import (
    AwaitResponse,
    Finished,
    FlashOutcome,
    HandshakeAwaitAck,
    HandshakeInit,
    ResponsePhase,
    SendCommand,
    Stage,
    State,
    is_waiting,
    next_state_after_ack,
)
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)

HANDSHAKE_MAGIC = b"PROGRAMBT9000U"
UPDATE_MAGIC = b"UPDATE"
BOOTLOADER_VERSION = b"BOOTLOADER_V3"

MessageCallback = Callable[[str], None]
ProgressCallback = Callable[[float], None]


@dataclass
class TransferSession:
    """Mutable bookkeeping for one run(); owned by the engine loop."""

    retries: int
    last_command: Optional[int] = None
    last_sent: bytes = b""
    deadline: float = 0.0
    file_length: int = 0
    total_chunks: int = 0
    chunk_index: int = 0
    percent: float = 0.0
    resends: int = 0


class BootloaderEngine:
    """
    Firmware transfer state machine.

    Example:
        engine = BootloaderEngine(key_combo=False, on_progress=print)
        with open("RT950.BTF", "rb") as fw, open_transport("/dev/ttyUSB0") as t:
            ok = engine.run(t, fw, cancel=threading.Event())
    """

    def __init__(
        self,
        key_combo: bool = False,
        config: FlashConfig = DEFAULT_CONFIG,
        clock: Optional[Clock] = None,
        on_message: Optional[MessageCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            key_combo: Radio was powered on into bootloader mode with the
                side-key combo; skip the ASCII handshake
            config: Protocol timings
            clock: Time source (monotonic wall clock by default)
            on_message: Called with each CRLF-terminated status line
            on_progress: Called with percent complete (0.0-100.0)
        """
        self.key_combo = key_combo
        self.config = config
        self.clock = clock or MonotonicClock()
        self.on_message = on_message
        self.on_progress = on_progress

        self.messages: List[str] = []
        self.outcome: Optional[FlashOutcome] = None
        self.session = TransferSession(retries=config.retry_budget)

        self._transport: Optional[Transport] = None
        self._firmware: Optional[BinaryIO] = None
        self._cancel = None
        self._handlers = {
            HandshakeInit: self._handshake_init,
            HandshakeAwaitAck: self._handshake_await_ack,
            SendCommand: self._send_command,
            AwaitResponse: self._await_response,
        }

    @property
    def percent(self) -> float:
        return self.session.percent

    @property
    def resends(self) -> int:
        return self.session.resends

    @property
    def log_text(self) -> str:
        return "".join(self.messages)

    def run(self, transport: Transport, firmware: BinaryIO, cancel=None) -> bool:
        """
        Flash ``firmware`` through ``transport``.

        Args:
            transport: Open transport; left open on every exit path
            firmware: Seekable binary stream of the update image
            cancel: Optional object with ``is_set()`` (e.g. threading.Event),
                checked once per loop iteration

        Returns:
            True only when the whole image was sent and UPDATE_END issued
        """
        self.messages = []
        self.outcome = None
        self.session = TransferSession(retries=self.config.retry_budget)
        self._transport = transport
        self._firmware = firmware
        self._cancel = cancel

        try:
            state = self._run_loop()
        finally:
            self._transport = None
            self._firmware = None
            self._cancel = None

        self.outcome = state.outcome
        logger.info(
            "Transfer finished: %s (%d resends)", state.outcome.value, self.session.resends
        )
        return state.outcome is FlashOutcome.COMPLETED

    def _run_loop(self) -> Finished:
        try:
            self.session.file_length = stream_length(self._firmware)
            self.session.total_chunks = count_chunks(
                self.session.file_length, self.config.chunk_size
            )
        except (OSError, FirmwareError) as e:
            self._message(f"Error: cannot read firmware: {e}")
            return Finished(FlashOutcome.FIRMWARE_ERROR)

        logger.info(
            "Firmware: %d bytes, %d chunks of %d",
            self.session.file_length,
            self.session.total_chunks,
            self.config.chunk_size,
        )

        if self.key_combo:
            self._message("Bootloader entered via key combo")
            state: State = SendCommand(Stage.HANDSHAKE)
        else:
            self._message("Handshake...")
            state = HandshakeInit()

        try:
            while not isinstance(state, Finished):
                if self._cancelled():
                    self._message(" Cancelled.")
                    return Finished(FlashOutcome.CANCELLED)

                if is_waiting(state) and self.clock.now() >= self.session.deadline:
                    state = self._on_timeout(state)
                    continue

                previous = state
                state = self._step(state)
                if type(state) is not type(previous):
                    logger.debug("State %s -> %s", previous, state)
        except TransportError as e:
            self._message(f"Error: {e}")
            return Finished(FlashOutcome.TRANSPORT_FAULT)
        except (OSError, FirmwareError) as e:
            self._message(f"Error: cannot read firmware: {e}")
            return Finished(FlashOutcome.FIRMWARE_ERROR)

        return state

    def _step(self, state: State) -> State:
        return self._handlers[type(state)](state)

    # ------------------------------------------------------------------
    # ASCII handshake
    # ------------------------------------------------------------------

    def _handshake_init(self, state: HandshakeInit) -> State:
        self._transport.discard_buffers()
        self._pause(self.config.pre_handshake_delay)
        if self._cancelled():
            return state

        junk = self._transport.read(256, self.config.poll_interval)
        if junk:
            logger.debug(f"Drained {len(junk)} spontaneous bytes: {junk.hex()}")

        logger.info("Sending program request...")
        self._send_raw(HANDSHAKE_MAGIC, timeout=self.config.handshake_timeout)
        return HandshakeAwaitAck(step=1)

    def _handshake_await_ack(self, state: HandshakeAwaitAck) -> State:
        data = self._transport.read(1, self.config.poll_interval)
        if data != bytes([ACK]):
            if data:
                logger.debug(f"Ignoring handshake byte {data.hex()}")
            return state

        self._refill_retries()
        if state.step == 1:
            self._send_raw(UPDATE_MAGIC, timeout=self.config.handshake_timeout)
            return HandshakeAwaitAck(step=2)

        logger.info("ASCII handshake acknowledged")
        self._pause(self.config.handshake_settle)
        return SendCommand(Stage.INTO_BOOT)

    # ------------------------------------------------------------------
    # Binary phase
    # ------------------------------------------------------------------

    def _send_command(self, state: SendCommand) -> State:
        stage = state.stage
        session = self.session

        if stage is Stage.INTO_BOOT:
            packet = encode_packet(CMD_INTO_BOOT)
        elif stage is Stage.HANDSHAKE:
            packet = encode_packet(CMD_HANDSHAKE, 0, BOOTLOADER_VERSION)
        elif stage is Stage.CHECK_MODEL:
            packet = encode_packet(CMD_CHECKMODELTYPE, 0, read_model_field(self._firmware))
        elif stage is Stage.SEND_PACKAGES:
            count = packages_field(session.total_chunks)
            packet = encode_packet(CMD_UPDATE_DATA_PACKAGES, 0, count.to_bytes(2, "big"))
            self._firmware.seek(0)
            session.chunk_index = 0
        elif stage is Stage.READ_FILE:
            chunk = read_chunk(self._firmware, self.config.chunk_size)
            if chunk is None:
                return SendCommand(Stage.END)
            packet = encode_packet(CMD_UPDATE, session.chunk_index & 0xFFFF, chunk)
            session.chunk_index += 1
        else:
            self._send_packet(CMD_UPDATE_END, encode_packet(CMD_UPDATE_END))
            self._message("Download Completed!")
            self._progress(100.0)
            return Finished(FlashOutcome.COMPLETED)

        self._send_packet(stage.command, packet)
        return AwaitResponse()

    def _await_response(self, state: AwaitResponse) -> State:
        poll = self.config.poll_interval

        if state.phase is ResponsePhase.WAIT_HEADER:
            data = self._transport.read(1, poll)
            if data and data[0] == PACKAGE_HEADER:
                return AwaitResponse(ResponsePhase.WAIT_FIXED_FIELDS, data)
            return state

        if state.phase is ResponsePhase.WAIT_FIXED_FIELDS:
            buffer = state.buffer + self._transport.read(FIXED_HEADER_LEN - len(state.buffer), poll)
            if len(buffer) < FIXED_HEADER_LEN:
                return AwaitResponse(state.phase, buffer)
            data_length = int.from_bytes(buffer[4:6], "big")
            return AwaitResponse(ResponsePhase.WAIT_PAYLOAD_AND_TRAILER, buffer, data_length)

        total = FIXED_HEADER_LEN + state.data_length + TRAILER_LEN
        buffer = state.buffer + self._transport.read(total - len(state.buffer), poll)
        if len(buffer) < total:
            return AwaitResponse(state.phase, buffer, state.data_length)
        return self._on_packet(decode_packet(buffer))

    def _on_packet(self, packet: Packet) -> State:
        if not packet.verify:
            logger.debug("Discarding reply with bad CRC")
            return AwaitResponse()

        if packet.is_ack:
            self._refill_retries()
            return self._on_ack(self.session.last_command)

        code = lookup_error_code(packet.command_args)
        if code is None:
            logger.warning(
                f"Ignoring reply with unknown status 0x{packet.command_args:04X} "
                f"to {command_name(self.session.last_command)}"
            )
            return AwaitResponse()

        self._message(f" {code.description}")
        if code.is_fatal:
            return Finished(FlashOutcome.DEVICE_ERROR)

        # Data verification error: the device wants the same packet again.
        return self._retry(AwaitResponse(), FlashOutcome.TRANSFER_FAILED)

    def _on_ack(self, command: int) -> State:
        session = self.session
        logger.debug(f"ACK for {command_name(command)}")

        if command == CMD_INTO_BOOT:
            self._message(" Entered Boot Mode Successfully!")
        elif command == CMD_HANDSHAKE:
            self._message(" Handshake Successful!")
        elif command == CMD_CHECKMODELTYPE:
            self._message(" Model Validation Passed!")
            self._message(" Download Progress: 0%")
            self._progress(0.0)
        elif command == CMD_UPDATE:
            self._progress(session.chunk_index * 100.0 / session.total_chunks)

        return next_state_after_ack(command)

    # ------------------------------------------------------------------
    # Timeouts and retries
    # ------------------------------------------------------------------

    def _on_timeout(self, state: State) -> State:
        if isinstance(state, HandshakeAwaitAck):
            logger.warning(f"No handshake ACK (step {state.step})")
            return self._retry(state, FlashOutcome.HANDSHAKE_FAILED)

        logger.warning(f"No reply to {command_name(self.session.last_command)}")
        return self._retry(AwaitResponse(), FlashOutcome.TRANSFER_FAILED)

    def _retry(self, resume: State, failure: FlashOutcome) -> State:
        """Spend one retry and resend the last bytes, or give up."""
        session = self.session
        session.retries -= 1
        if session.retries <= 0:
            if failure is FlashOutcome.HANDSHAKE_FAILED:
                self._message("Handshake failed!")
            else:
                self._message(" Failure!")
            return Finished(failure)

        attempt = self.config.retry_budget - session.retries
        session.resends += 1
        if isinstance(resume, AwaitResponse):
            self._message(f" {attempt}th Resend...")
        logger.warning(f"Resending ({attempt}/{self.config.retry_budget - 1})")

        timeout = (
            self.config.handshake_timeout
            if isinstance(resume, HandshakeAwaitAck)
            else self.config.command_timeout
        )
        self._send_raw(session.last_sent, timeout=timeout)
        return resume

    def _refill_retries(self) -> None:
        self.session.retries = self.config.retry_budget

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send_packet(self, command: int, packet: bytes) -> None:
        self.session.last_command = command
        logger.debug(f"Sending {command_name(command)} ({len(packet)} bytes)")
        self._send_raw(packet, timeout=self.config.command_timeout)

    def _send_raw(self, data: bytes, timeout: float) -> None:
        """Write ``data`` and arm the reply deadline."""
        self._transport.write_all(data)
        self.session.last_sent = data
        self.session.deadline = self.clock.now() + timeout

    def _pause(self, seconds: float) -> None:
        """Sleep in poll-sized slices so cancellation stays prompt."""
        end = self.clock.now() + seconds
        while not self._cancelled():
            remaining = end - self.clock.now()
            if remaining <= 0:
                break
            self.clock.sleep(min(remaining, self.config.poll_interval))

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def _message(self, text: str) -> None:
        line = text + "\r\n"
        self.messages.append(line)
        logger.info(text.strip() or "-")
        self._notify("Message", self.on_message, line)

    def _progress(self, percent: float) -> None:
        self.session.percent = percent
        self._notify("Progress", self.on_progress, percent)

    def _notify(self, name: str, callback, value) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("%s observer failed; transfer continues", name)
