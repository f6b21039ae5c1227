import io

import numpy as np
import pytest
from PIL import Image

from digit_raster import (
    COLOR_TABLE,
    DIGIT,
    END_OF_STREAM,
    REJECTED,
    ArgumentError,
    Canvas,
    ColorTable,
    DigitStream,
    EncodeError,
    InsufficientDataError,
    InvalidCharacterError,
    MalformedInputError,
    OccurrenceTable,
    ShortInputError,
    SizeProbeError,
    TruncatedInputError,
    check_dimensions,
    check_input_size,
    classify_byte,
    format_report,
    probe_size,
    raster_extent,
    render,
)


def digits(text: str) -> io.BytesIO:
    return io.BytesIO(text.encode("ascii"))


# ----------------------------
# Classifier
# ----------------------------

def test_classify_digits():
    for d in range(10):
        assert classify_byte(ord(str(d))) == (DIGIT, d)


def test_classify_end_of_stream():
    assert classify_byte(None).kind == END_OF_STREAM


@pytest.mark.parametrize("value", [0x0A, 0x0D, 0x20, ord("a"), ord("/"), ord(":"), 0x00, 0xFF])
def test_classify_rejects_non_digits(value):
    assert classify_byte(value) == (REJECTED, value)


def test_digit_stream_small_chunks_keep_order():
    stream = DigitStream(digits("0123456789"), chunk_size=3)
    seen = [stream.next_symbol().value for _ in range(10)]
    assert seen == list(range(10))
    assert stream.position == 10
    assert stream.next_symbol().kind == END_OF_STREAM
    assert stream.position == 10


def test_digit_stream_rejects_bad_chunk_size():
    with pytest.raises(ValueError):
        DigitStream(digits("0"), chunk_size=0)


# ----------------------------
# Color table / canvas
# ----------------------------

def test_color_table_order():
    assert COLOR_TABLE.color_for(0) == (0, 0, 0)
    assert COLOR_TABLE.color_for(1) == (255, 255, 255)
    assert COLOR_TABLE.color_for(3) == (255, 100, 0)
    assert COLOR_TABLE.color_for(9) == (128, 0, 128)
    assert len(COLOR_TABLE) == 10
    assert len(set(COLOR_TABLE)) == 10
    assert COLOR_TABLE.palette()[:6] == [0, 0, 0, 255, 255, 255]


def test_color_table_needs_ten_entries():
    with pytest.raises(ValueError):
        ColorTable(((0, 0, 0),))


def test_canvas_clips_out_of_range_writes():
    canvas = Canvas(2, 2)
    black = canvas.allocate_color((0, 0, 0))
    red = canvas.allocate_color((255, 0, 0))
    assert (black, red) == (0, 1)
    assert canvas.allocate_color((255, 0, 0)) == red

    canvas.set_pixel(2, 0, red)
    canvas.set_pixel(0, 2, red)
    canvas.set_pixel(-1, 0, red)
    assert not canvas.pixels.any()

    canvas.set_pixel(1, 1, red)
    assert canvas.get_pixel(1, 1) == (255, 0, 0)
    assert canvas.get_pixel(0, 0) == (0, 0, 0)


def test_canvas_encodes_indexed_png(tmp_path):
    canvas = Canvas(3, 2)
    for rgb in COLOR_TABLE:
        canvas.allocate_color(rgb)
    canvas.set_pixel(2, 1, 9)

    path = tmp_path / "out.png"
    canvas.save(str(path))

    with Image.open(path) as image:
        assert image.format == "PNG"
        assert image.mode == "P"
        assert image.size == (3, 2)
        rgb = image.convert("RGB")
        assert rgb.getpixel((2, 1)) == (128, 0, 128)
        assert rgb.getpixel((0, 0)) == (0, 0, 0)


def test_canvas_save_failure_is_encode_error():
    canvas = Canvas(1, 1)
    canvas.allocate_color((0, 0, 0))
    sink = io.BytesIO()
    sink.close()
    with pytest.raises(EncodeError):
        canvas.save(sink)


# ----------------------------
# Raster driver
# ----------------------------

def test_render_inclusive_consumes_extra_row_and_column():
    result = render(2, 2, digits("012345678"))

    assert result.consumed == 9
    assert list(result.occurrences) == [1, 1, 1, 1, 1, 1, 1, 1, 1, 0]
    assert result.occurrences.total == 9

    canvas = result.canvas
    assert canvas.pixels.shape == (2, 2)
    # byte index is y * (w + 1) + x
    assert canvas.get_pixel(0, 0) == COLOR_TABLE.color_for(0)
    assert canvas.get_pixel(1, 0) == COLOR_TABLE.color_for(1)
    assert canvas.get_pixel(0, 1) == COLOR_TABLE.color_for(3)
    assert canvas.get_pixel(1, 1) == COLOR_TABLE.color_for(4)


def test_render_strict_consumes_exactly_w_times_h():
    source = digits("0123456789")
    result = render(2, 2, source, inclusive=False)

    assert result.consumed == 4
    assert result.occurrences.total == 4
    assert result.occurrences.nonzero() == [(0, 1), (1, 1), (2, 1), (3, 1)]
    assert result.canvas.get_pixel(0, 1) == COLOR_TABLE.color_for(2)
    assert result.canvas.get_pixel(1, 1) == COLOR_TABLE.color_for(3)
    # nothing beyond the raster was read
    assert source.read() == b"456789"


def test_render_pixel_matches_stream_offset():
    text = "7305918264" * 5
    w, h = 4, 3
    result = render(w, h, digits(text))
    for y in range(h):
        for x in range(w):
            digit = int(text[y * (w + 1) + x])
            assert result.canvas.get_pixel(x, y) == COLOR_TABLE.color_for(digit)

    for d in range(10):
        assert result.occurrences[d] == text[: (w + 1) * (h + 1)].count(str(d))


def test_render_is_repeatable():
    text = "31415926535897932384626433832795"
    first = render(3, 3, digits(text))
    second = render(3, 3, digits(text))
    assert first.occurrences == second.occurrences
    assert np.array_equal(first.canvas.pixels, second.canvas.pixels)


def test_render_truncated_input():
    with pytest.raises(TruncatedInputError) as exc:
        render(3, 3, digits("012345678901"))
    assert exc.value.offset == 12
    assert exc.value.required == 16
    assert isinstance(exc.value, ShortInputError)


def test_render_exact_w_times_h_is_truncated_when_inclusive():
    with pytest.raises(TruncatedInputError):
        render(3, 3, digits("012345678"))
    assert render(3, 3, digits("012345678"), inclusive=False).consumed == 9


def test_render_line_break_is_malformed():
    with pytest.raises(MalformedInputError) as exc:
        render(2, 2, digits("0123\n5678"))
    assert exc.value.offset == 4
    assert "line breaks" in str(exc.value)


def test_render_other_byte_is_invalid_character():
    with pytest.raises(InvalidCharacterError) as exc:
        render(2, 2, digits("01a345678"))
    assert exc.value.value == ord("a")
    assert exc.value.offset == 2


def test_render_checks_dimensions():
    with pytest.raises(ArgumentError):
        render(0, 2, digits("0" * 10))


@pytest.mark.parametrize("width,height", [(0, 1), (1, 0), (-5, 10), (3001, 10), (10, 3001)])
def test_check_dimensions_rejects(width, height):
    with pytest.raises(ArgumentError):
        check_dimensions(width, height)


def test_check_dimensions_accepts_bounds():
    check_dimensions(1, 1)
    check_dimensions(3000, 3000)


def test_raster_extent():
    assert raster_extent(640, 480) == (641, 481)
    assert raster_extent(640, 480, inclusive=False) == (640, 480)


def test_check_input_size():
    check_input_size(3, 3, 9)
    with pytest.raises(InsufficientDataError) as exc:
        check_input_size(3, 3, 8)
    assert exc.value.required == 9
    assert exc.value.available == 8


def test_probe_size(tmp_path):
    path = tmp_path / "digits.txt"
    path.write_bytes(b"0123456789")
    with open(path, "rb") as f:
        assert probe_size(f) == 10


# ----------------------------
# Report
# ----------------------------

def test_format_report_skips_zero_counts():
    table = OccurrenceTable()
    for d in (1, 1, 7):
        table.add(d)
    assert format_report(table) == [
        "Image Analysis",
        "-" * 27,
        "Occurrences out of 3:",
        "Character: 1 - 2",
        "Character: 7 - 1",
    ]


def test_format_report_explicit_total():
    table = OccurrenceTable()
    table.add(0)
    assert format_report(table, total=4)[2] == "Occurrences out of 4:"


def test_probe_size_without_file_descriptor():
    with pytest.raises(SizeProbeError) as exc:
        probe_size(io.BytesIO(b"0123"))
    assert "Failed to calculate file size" in str(exc.value)


def test_probe_size_closed_file(tmp_path):
    path = tmp_path / "digits.txt"
    path.write_bytes(b"0123")
    f = open(path, "rb")
    f.close()
    with pytest.raises(SizeProbeError):
        probe_size(f)
