#!/usr/bin/env python3
"""
digit_raster.py

Core of Spectra: turns a stream of ASCII digits into an indexed-color raster.

Each input byte becomes one pixel, walked in row-major order. The ten digits
map to ten fixed colors, and the number of times each digit was seen is
tallied along the way. Anything that is not '0'..'9' is fatal; there is no
partial result.

By default the raster walk is compatible with earlier Spectra releases: rows
and columns are visited from 0 through the size inclusive, so (w+1)*(h+1)
bytes are consumed for a w x h image. Writes that land in the extra column and
row are clipped by the canvas. Pass inclusive=False for a strict w*h raster.

Requires: numpy, Pillow
"""

from __future__ import annotations

import os
from typing import BinaryIO, Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np
from PIL import Image

MAX_DIMENSION = 3000
DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1 MiB reads

ASCII_ZERO = 0x30  # ord('0')
ASCII_NINE = 0x39  # ord('9')
NEWLINE = 0x0A

RGB = Tuple[int, int, int]


# ----------------------------
# Errors
# ----------------------------

class SpectraError(Exception):
    """Base class for every failure that ends a Spectra run."""


class ArgumentError(SpectraError):
    """A command-line flag or dimension is missing or out of range."""


class InputOpenError(SpectraError):
    def __init__(self, path: str, reason: OSError):
        super().__init__(f"Error opening input file '{path}': {reason.strerror or reason}")
        self.path = path


class OutputOpenError(SpectraError):
    def __init__(self, path: str, reason: OSError):
        super().__init__(f"Error opening output file '{path}': {reason.strerror or reason}")
        self.path = path


class SizeProbeError(SpectraError):
    def __init__(self, reason: Exception):
        super().__init__(f"Failed to calculate file size: {reason}")


class ShortInputError(SpectraError):
    """The input holds fewer digits than the raster needs."""


class InsufficientDataError(ShortInputError):
    def __init__(self, required: int, available: int):
        super().__init__(
            f"The input file is not large enough for the given resolution "
            f"({required} bytes needed, {available} available). "
            f"Either choose a lower resolution, or collect more sample data."
        )
        self.required = required
        self.available = available


class TruncatedInputError(ShortInputError):
    def __init__(self, offset: int, required: int):
        super().__init__(
            f"Reached end of file after {offset} bytes before generating image "
            f"({required} bytes needed)."
        )
        self.offset = offset
        self.required = required


class MalformedInputError(SpectraError):
    def __init__(self, offset: int):
        super().__init__(
            f"Input file contains line breaks (byte {offset}). "
            f"File must be a continuous stream of ASCII numbers."
        )
        self.offset = offset


class InvalidCharacterError(SpectraError):
    def __init__(self, value: int, offset: int):
        super().__init__(f"Unsupported character 0x{value:02x} at byte {offset}.")
        self.value = value
        self.offset = offset


class EncodeError(SpectraError):
    def __init__(self, reason: Exception):
        super().__init__(f"Failed to write image: {reason}")


# ----------------------------
# Digit classifier
# ----------------------------

DIGIT = "digit"
END_OF_STREAM = "end"
REJECTED = "rejected"


class Symbol(NamedTuple):
    kind: str
    value: Optional[int]


END = Symbol(END_OF_STREAM, None)

# Precompute the classification of every byte value 0..255.
_SYMBOLS = tuple(
    Symbol(DIGIT, b - ASCII_ZERO) if ASCII_ZERO <= b <= ASCII_NINE else Symbol(REJECTED, b)
    for b in range(256)
)


def classify_byte(value: Optional[int]) -> Symbol:
    """Classify one input byte, or None for an exhausted stream."""
    if value is None:
        return END
    return _SYMBOLS[value]


class DigitStream:
    """Forward-only reader handing out one classified byte at a time.

    The underlying file is read in chunks; `position` counts the bytes
    handed out so far.
    """

    def __init__(self, fp: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._fp = fp
        self._chunk_size = chunk_size
        self._buffer = b""
        self._index = 0
        self.position = 0

    def read_byte(self) -> Optional[int]:
        if self._index >= len(self._buffer):
            self._buffer = self._fp.read(self._chunk_size)
            self._index = 0
            if not self._buffer:
                return None
        value = self._buffer[self._index]
        self._index += 1
        self.position += 1
        return value

    def next_symbol(self) -> Symbol:
        return classify_byte(self.read_byte())


# ----------------------------
# Color table
# ----------------------------

class ColorTable:
    """Fixed digit -> RGB mapping. Entry 0 is also the canvas background."""

    def __init__(self, colors: Tuple[RGB, ...]):
        if len(colors) != 10:
            raise ValueError(f"Color table needs exactly 10 entries, got {len(colors)}")
        self._colors = tuple(tuple(c) for c in colors)

    def color_for(self, digit: int) -> RGB:
        return self._colors[digit]

    def palette(self) -> List[int]:
        """Flat [r, g, b, r, g, b, ...] list in digit order, for putpalette."""
        return [channel for color in self._colors for channel in color]

    def __iter__(self) -> Iterator[RGB]:
        return iter(self._colors)

    def __len__(self) -> int:
        return len(self._colors)


COLOR_TABLE = ColorTable((
    (0, 0, 0),        # 0 Black
    (255, 255, 255),  # 1 White
    (255, 0, 0),      # 2 Red
    (255, 100, 0),    # 3 Orange
    (255, 255, 0),    # 4 Yellow
    (0, 255, 0),      # 5 Green
    (0, 0, 255),      # 6 Blue
    (0, 255, 255),    # 7 Aqua
    (255, 0, 255),    # 8 Pink
    (128, 0, 128),    # 9 Purple
))


# ----------------------------
# Canvas
# ----------------------------

class Canvas:
    """Indexed-color pixel grid backed by a numpy array.

    Colors are allocated into a palette before use; the first one allocated
    is the background every pixel starts with. Pixel writes outside the grid
    are ignored.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width), dtype=np.uint8)
        self._palette: List[RGB] = []
        self._index: Dict[RGB, int] = {}

    def allocate_color(self, rgb: RGB) -> int:
        rgb = tuple(rgb)
        if rgb in self._index:
            return self._index[rgb]
        self._index[rgb] = len(self._palette)
        self._palette.append(rgb)
        return self._index[rgb]

    def set_pixel(self, x: int, y: int, index: int) -> None:
        if 0 <= x < self.width and 0 <= y < self.height:
            self.pixels[y, x] = index

    def get_pixel(self, x: int, y: int) -> RGB:
        return self._palette[self.pixels[y, x]]

    def to_image(self) -> Image.Image:
        image = Image.fromarray(self.pixels)
        # Attaching a palette turns the "L" image into a "P" image.
        image.putpalette([channel for color in self._palette for channel in color])
        return image

    def save(self, fp) -> None:
        """Encode the canvas as an indexed-palette PNG into a path or binary file."""
        try:
            self.to_image().save(fp, "PNG", optimize=True)
        except (OSError, ValueError) as e:
            raise EncodeError(e) from e


# ----------------------------
# Occurrence table
# ----------------------------

class OccurrenceTable:
    """Per-digit counters, indexed by digit value."""

    def __init__(self):
        self._counts = [0] * 10

    def add(self, digit: int) -> None:
        self._counts[digit] += 1

    @property
    def total(self) -> int:
        return sum(self._counts)

    def nonzero(self) -> List[Tuple[int, int]]:
        return [(digit, count) for digit, count in enumerate(self._counts) if count]

    def __getitem__(self, digit: int) -> int:
        return self._counts[digit]

    def __iter__(self) -> Iterator[int]:
        return iter(self._counts)

    def __len__(self) -> int:
        return len(self._counts)

    def __eq__(self, other) -> bool:
        if not isinstance(other, OccurrenceTable):
            return NotImplemented
        return self._counts == other._counts

    def __repr__(self) -> str:
        return f"OccurrenceTable({self._counts})"


# ----------------------------
# Raster driver
# ----------------------------

class RasterResult(NamedTuple):
    canvas: Canvas
    occurrences: OccurrenceTable
    consumed: int


def check_dimensions(width: int, height: int) -> None:
    if not 0 < width <= MAX_DIMENSION:
        raise ArgumentError("Invalid X dimension.")
    if not 0 < height <= MAX_DIMENSION:
        raise ArgumentError("Invalid Y dimension.")


def raster_extent(width: int, height: int, inclusive: bool = True) -> Tuple[int, int]:
    """Return (columns, rows) actually walked by the raster pass."""
    if inclusive:
        return width + 1, height + 1
    return width, height


def probe_size(fp: BinaryIO) -> int:
    """Return the size in bytes of an open file."""
    try:
        return os.fstat(fp.fileno()).st_size
    except (OSError, ValueError) as e:
        raise SizeProbeError(e) from e


def check_input_size(width: int, height: int, size: int) -> None:
    """Fail early when the input cannot cover one byte per pixel.

    Only w*h is checked, in both raster modes. An inclusive raster therefore
    still needs more than that and reports the shortfall as TruncatedInputError.
    """
    required = width * height
    if required > size:
        raise InsufficientDataError(required, size)


def render(
    width: int,
    height: int,
    fp: BinaryIO,
    colors: ColorTable = COLOR_TABLE,
    inclusive: bool = True,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> RasterResult:
    """
    Fill a width x height canvas from a digit stream.

    Args:
        width: Image width in pixels (1..MAX_DIMENSION)
        height: Image height in pixels (1..MAX_DIMENSION)
        fp: Binary file object positioned at the first digit
        colors: Digit to color mapping
        inclusive: Walk 0..size inclusive on both axes, as earlier releases do
        chunk_size: Read buffer size in bytes

    Returns:
        RasterResult with the canvas, the digit occurrences and the number
        of bytes consumed.

    Raises:
        MalformedInputError: a line break was read
        TruncatedInputError: the stream ended before the raster was full
        InvalidCharacterError: any other non-digit byte was read
    """
    check_dimensions(width, height)

    canvas = Canvas(width, height)
    indices = [canvas.allocate_color(colors.color_for(d)) for d in range(10)]

    occurrences = OccurrenceTable()
    stream = DigitStream(fp, chunk_size)

    columns, rows = raster_extent(width, height, inclusive)
    required = columns * rows

    for y in range(rows):
        for x in range(columns):
            kind, value = stream.next_symbol()
            if kind == DIGIT:
                canvas.set_pixel(x, y, indices[value])
                occurrences.add(value)
            elif kind == END_OF_STREAM:
                raise TruncatedInputError(stream.position, required)
            elif value == NEWLINE:
                raise MalformedInputError(stream.position - 1)
            else:
                raise InvalidCharacterError(value, stream.position - 1)

    return RasterResult(canvas, occurrences, stream.position)


# ----------------------------
# Report
# ----------------------------

def format_report(occurrences: OccurrenceTable, total: Optional[int] = None) -> List[str]:
    """Histogram lines: a header with the total, then one line per seen digit."""
    if total is None:
        total = occurrences.total
    lines = [
        "Image Analysis",
        "-" * 27,
        f"Occurrences out of {total}:",
    ]
    for digit, count in occurrences.nonzero():
        lines.append(f"Character: {digit} - {count}")
    return lines
