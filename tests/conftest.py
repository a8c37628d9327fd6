"""Shared fixtures: a manual clock and firmware images."""

import pytest

from rt950_flasher.firmware import MODEL_FIELD_OFFSET
from rt950_flasher.protocol.clock import Clock


class FakeClock(Clock):
    """Clock that only moves when slept on."""

    def __init__(self, start: float = 1000.0):
        self.t = start
        self.slept = 0.0

    def now(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.t += seconds
            self.slept += seconds


def make_image(size: int, model: bytes = b"RT-950") -> bytes:
    """Deterministic firmware image with ``model`` at the model field offset."""
    blob = bytearray((i * 7 + 3) & 0xFF for i in range(size))
    if size >= MODEL_FIELD_OFFSET + 32:
        blob[MODEL_FIELD_OFFSET:MODEL_FIELD_OFFSET + 32] = model.ljust(32, b"\x00")
    return bytes(blob)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def firmware_path(tmp_path):
    path = tmp_path / "RT950.BTF"
    path.write_bytes(make_image(3000))
    return path
