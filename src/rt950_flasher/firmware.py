"""
Firmware image helpers for RT-950 .BTF update files.

The image is sent to the radio as-is. The only structure this tool relies on
is the 32-byte model identifier at offset 992, which the bootloader compares
against its own model before accepting data.
"""

import hashlib
import string
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

CHUNK_SIZE = 1024
MODEL_FIELD_OFFSET = 992
MODEL_FIELD_SIZE = 32


class FirmwareError(Exception):
    """Raised when a firmware image cannot be read."""


def count_chunks(length: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Number of chunk_size packets needed for ``length`` bytes (ceil)."""
    if length < 0:
        raise FirmwareError(f"Invalid firmware length: {length}")
    return (length + chunk_size - 1) // chunk_size


def packages_field(total_chunks: int) -> int:
    """
    Value announced in CMD_UPDATE_DATA_PACKAGES.

    The bootloader expects ``total - 1`` for multi-chunk transfers but the
    plain count for a single chunk.
    """
    return total_chunks - 1 if total_chunks > 1 else total_chunks


def stream_length(stream: BinaryIO) -> int:
    """Length of a seekable stream; the current position is preserved."""
    position = stream.tell()
    try:
        return stream.seek(0, 2)
    finally:
        stream.seek(position)


def read_model_field(stream: BinaryIO) -> bytes:
    """Read the 32-byte model identifier, zero-padded if the image is short."""
    stream.seek(MODEL_FIELD_OFFSET)
    field = stream.read(MODEL_FIELD_SIZE) or b""
    return field.ljust(MODEL_FIELD_SIZE, b"\x00")


def read_chunk(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Optional[bytes]:
    """
    Read the next chunk for transmission.

    Returns:
        chunk_size bytes (the final short chunk is zero-padded), or None at EOF
    """
    data = stream.read(chunk_size)
    if not data:
        return None
    return data.ljust(chunk_size, b"\x00")


def model_name(field: bytes) -> str:
    """Printable form of the model identifier (trailing NUL/0xFF padding removed)."""
    text = field.rstrip(b"\x00\xff").decode("latin-1")
    printable = set(string.printable) - set("\t\n\r\x0b\x0c")
    return "".join(c if c in printable else "." for c in text)


@dataclass(frozen=True)
class FirmwareInfo:
    """Offline summary of a firmware image."""

    path: str
    size: int
    chunks: int
    packages_field: int
    model_field: bytes
    sha256: str

    @property
    def model(self) -> str:
        return model_name(self.model_field)

    @property
    def padding(self) -> int:
        """Zero bytes appended to the final chunk on the wire."""
        return self.chunks * CHUNK_SIZE - self.size


def inspect_firmware(path: str) -> FirmwareInfo:
    """
    Summarise a firmware file without touching a radio.

    Raises:
        FirmwareError: If the file cannot be read
    """
    try:
        blob = Path(path).read_bytes()
    except OSError as e:
        raise FirmwareError(f"Cannot read firmware {path}: {e}")

    field = blob[MODEL_FIELD_OFFSET:MODEL_FIELD_OFFSET + MODEL_FIELD_SIZE]
    chunks = count_chunks(len(blob))
    return FirmwareInfo(
        path=str(path),
        size=len(blob),
        chunks=chunks,
        packages_field=packages_field(chunks),
        model_field=field.ljust(MODEL_FIELD_SIZE, b"\x00"),
        sha256=hashlib.sha256(blob).hexdigest(),
    )
