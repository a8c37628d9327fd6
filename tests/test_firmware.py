"""Tests for firmware image helpers."""

import io

import pytest

from rt950_flasher.firmware import (
    MODEL_FIELD_OFFSET,
    FirmwareError,
    count_chunks,
    inspect_firmware,
    model_name,
    packages_field,
    read_chunk,
    read_model_field,
    stream_length,
)

from conftest import make_image


@pytest.mark.parametrize(
    "length, chunks, field",
    [
        (0, 0, 0),
        (1, 1, 1),
        (1024, 1, 1),
        (1025, 2, 1),
        (2048, 2, 1),
        (3000, 3, 2),
        (10 * 1024, 10, 9),
    ],
)
def test_chunk_count_and_packages_field(length, chunks, field) -> None:
    """Multi-chunk images announce total-1; a single chunk announces 1."""
    assert count_chunks(length) == chunks
    assert packages_field(chunks) == field


def test_count_chunks_rejects_negative() -> None:
    with pytest.raises(FirmwareError):
        count_chunks(-1)


def test_read_chunk_pads_final_chunk_then_hits_eof() -> None:
    stream = io.BytesIO(b"\x11" * 1500)
    first = read_chunk(stream)
    last = read_chunk(stream)
    assert first == b"\x11" * 1024
    assert len(last) == 1024
    assert last[:476] == b"\x11" * 476
    assert last[476:] == b"\x00" * 548
    assert read_chunk(stream) is None


def test_model_field_read_from_offset_992() -> None:
    stream = io.BytesIO(make_image(2048, model=b"RT-950 V1"))
    assert read_model_field(stream) == b"RT-950 V1".ljust(32, b"\x00")


def test_model_field_zero_padded_for_short_image() -> None:
    stream = io.BytesIO(b"\x41" * (MODEL_FIELD_OFFSET + 4))
    field = read_model_field(stream)
    assert field == b"AAAA" + b"\x00" * 28
    assert read_model_field(io.BytesIO(b"tiny")) == b"\x00" * 32


def test_stream_length_preserves_position() -> None:
    stream = io.BytesIO(b"abcdef")
    stream.seek(2)
    assert stream_length(stream) == 6
    assert stream.tell() == 2


def test_model_name_strips_padding_and_masks_binary() -> None:
    assert model_name(b"RT-950\x00\x00\xff") == "RT-950"
    assert model_name(b"A\x01B") == "A.B"


class TestInspectFirmware:
    """Offline image summary."""

    def test_summary(self, tmp_path):
        path = tmp_path / "fw.bin"
        path.write_bytes(make_image(3000))

        info = inspect_firmware(str(path))

        assert info.size == 3000
        assert info.chunks == 3
        assert info.packages_field == 2
        assert info.padding == 72
        assert info.model == "RT-950"
        assert len(info.sha256) == 64

    def test_missing_file(self, tmp_path):
        with pytest.raises(FirmwareError):
            inspect_firmware(str(tmp_path / "missing.bin"))
