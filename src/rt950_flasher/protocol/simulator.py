"""
In-memory RT-950 bootloader simulator.

SimulatedRadio answers like the real bootloader; SimulatedTransport exposes it
through the Transport contract. Used by `flash --simulate` and by the tests,
which inject latency, short reads, noise, corrupt replies and error codes.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .clock import Clock
from .packet import (
    ACK,
    CMD_UPDATE,
    FIXED_HEADER_LEN,
    PACKAGE_HEADER,
    TRAILER_LEN,
    Packet,
    command_name,
    decode_packet,
    encode_packet,
)
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)

ASCII_HANDSHAKE = (b"PROGRAMBT9000U", b"UPDATE")


@dataclass
class SimulatedRadio:
    """
    Scripted bootloader peer.

    Attributes:
        in_bootloader: Already in binary mode (powered on with the key combo)
        mute: Never answer anything
        errors: command -> status codes sent instead of an ACK, one per
            occurrence of that command; an ACK once the list is used up
        silent: command -> number of times to ignore that command
        silent_ascii: handshake step (1 = program request, 2 = "UPDATE") ->
            number of times to ignore that string
        corrupt: command -> number of replies sent with a broken CRC
        noise: bytes emitted before every reply
    """
    in_bootloader: bool = False
    mute: bool = False
    errors: Dict[int, List[int]] = field(default_factory=dict)
    silent: Dict[int, int] = field(default_factory=dict)
    silent_ascii: Dict[int, int] = field(default_factory=dict)
    corrupt: Dict[int, int] = field(default_factory=dict)
    noise: bytes = b""

    received: List[Packet] = field(default_factory=list)
    ascii_received: List[bytes] = field(default_factory=list)
    _pending: bytearray = field(default_factory=bytearray)
    _ascii_step: int = 0
    _seen: Counter = field(default_factory=Counter)

    @property
    def commands(self) -> List[int]:
        """Commands received in order, retransmissions included."""
        return [p.command for p in self.received]

    @property
    def chunks(self) -> List[Tuple[int, bytes]]:
        """(sequence, payload) for each CMD_UPDATE received."""
        return [(p.command_args, p.data) for p in self.received if p.command == CMD_UPDATE]

    def feed(self, data: bytes) -> bytes:
        """Consume bytes written by the host and return the radio's reply."""
        self._pending.extend(data)
        reply = bytearray()
        while True:
            if self.in_bootloader:
                packet = self._take_packet()
                if packet is None:
                    break
                reply += self._answer(packet)
            else:
                answered = self._take_ascii()
                if answered is None:
                    break
                if answered:
                    reply.append(ACK)
        return bytes(reply)

    def _take_ascii(self) -> Optional[bool]:
        """Consume the next expected handshake string; None if it has not arrived."""
        expected = ASCII_HANDSHAKE[self._ascii_step]
        index = self._pending.find(expected)
        if index < 0:
            return None
        del self._pending[:index + len(expected)]
        self.ascii_received.append(expected)

        step = self._ascii_step + 1
        if self.mute:
            return False
        if self.silent_ascii.get(step, 0) > 0:
            self.silent_ascii[step] -= 1
            return False
        if step == len(ASCII_HANDSHAKE):
            self.in_bootloader = True
        else:
            self._ascii_step = step
        return True

    def _take_packet(self) -> Optional[Packet]:
        start = self._pending.find(bytes([PACKAGE_HEADER]))
        if start < 0:
            self._pending.clear()
            return None
        del self._pending[:start]
        if len(self._pending) < FIXED_HEADER_LEN:
            return None
        size = FIXED_HEADER_LEN + int.from_bytes(self._pending[4:6], "big") + TRAILER_LEN
        if len(self._pending) < size:
            return None
        raw = bytes(self._pending[:size])
        del self._pending[:size]
        return decode_packet(raw)

    def _answer(self, packet: Packet) -> bytes:
        self.received.append(packet)
        cmd = packet.command
        self._seen[cmd] += 1
        logger.debug(f"[sim] {command_name(cmd)} #{self._seen[cmd]} ({len(packet.data)} bytes)")

        if self.mute:
            return b""
        if self.silent.get(cmd, 0) > 0:
            self.silent[cmd] -= 1
            return b""

        if not packet.verify:
            status = 0xE2
        elif self.errors.get(cmd):
            status = self.errors[cmd].pop(0)
        else:
            status = ACK
        reply = bytearray(encode_packet(cmd, status))
        if self.corrupt.get(cmd, 0) > 0:
            self.corrupt[cmd] -= 1
            reply[-2] ^= 0xFF
        return self.noise + bytes(reply)


class SimulatedTransport(Transport):
    """
    Transport backed by a SimulatedRadio.

    Args:
        radio: Peer answering the writes
        clock: When given, empty reads advance it by the read timeout and
            replies become readable ``latency`` seconds after the write
        max_read: Cap on bytes returned per read() to force short reads
        latency: Reply delay in seconds (needs a clock)
    """

    def __init__(
        self,
        radio: Optional[SimulatedRadio] = None,
        clock: Optional[Clock] = None,
        max_read: Optional[int] = None,
        latency: float = 0.0,
    ):
        self.radio = radio or SimulatedRadio()
        self.clock = clock
        self.max_read = max_read
        self.latency = latency
        self.written: List[bytes] = []
        self.discards = 0
        self.closed = False
        self._rx: List[Tuple[float, int]] = []

    def _now(self) -> float:
        return self.clock.now() if self.clock else 0.0

    def write_all(self, data: bytes) -> None:
        if self.closed:
            raise TransportError("Serial port not open")
        self.written.append(bytes(data))
        ready_at = self._now() + (self.latency if self.clock else 0.0)
        self._rx.extend((ready_at, b) for b in self.radio.feed(data))

    def _ready(self) -> int:
        now = self._now()
        count = 0
        for ready_at, _ in self._rx:
            if ready_at > now:
                break
            count += 1
        return count

    def read(self, max_bytes: int, timeout: float) -> bytes:
        if self.closed:
            raise TransportError("Serial port not open")
        if max_bytes <= 0:
            return b""
        if not self._ready() and self.clock is not None:
            self.clock.sleep(timeout)
        limit = min(max_bytes, self._ready())
        if self.max_read is not None:
            limit = min(limit, self.max_read)
        out = bytes(b for _, b in self._rx[:limit])
        del self._rx[:limit]
        return out

    def discard_buffers(self) -> None:
        self.discards += 1
        self._rx.clear()

    def close(self) -> None:
        self.closed = True
