#!/usr/bin/env python3
"""
spectra.py

Spectra - visual analysis of random data.

Reads the output of a TRNG or PRNG under examination, written as a continuous
stream of ASCII digits, and plots it as a PNG where each digit is one pixel of
a fixed color. The human eye is good at picking out patterns that are hard to
find mathematically, so a flawed generator often looks obviously flawed here.
A per-digit histogram is printed once the image is written.

Usage examples:
  python spectra.py -i random.txt
  python spectra.py -i random.txt -o random.png -x 1024 -y 768

Notes:
- The input must hold only '0'..'9': no line breaks, no other characters.
- By default the raster walk is compatible with earlier releases and reads
  (xsize+1)*(ysize+1) digits for an xsize x ysize image. Use --strict to read
  exactly xsize*ysize.
- On any error nothing is written and an existing output file is left as it was.
"""

from __future__ import annotations

import argparse
import os
import sys
import tempfile

from digit_raster import (
    MAX_DIMENSION,
    ArgumentError,
    InputOpenError,
    OutputOpenError,
    SpectraError,
    check_dimensions,
    check_input_size,
    format_report,
    probe_size,
    render,
)

APPNAME = "Spectra"
VERSION = "1.3"

DEFAULT_OUTPUT = "output.png"
DEFAULT_XSIZE = 640
DEFAULT_YSIZE = 480
OUTPUT_MODE = 0o644

DESCRIPTION = (
    "Spectra is designed to read the output from a TRNG or PRNG under\n"
    "examination and visualize its output by plotting data as an image file.\n"
    "As the human mind easily picks up on visual patterns that might otherwise\n"
    "be difficult to detect mathematically, Spectra enables the user to make\n"
    "a quick evaluation of the data's true randomness. For example, it is easy\n"
    "for a non-random file to appear random to a tool like ENT, but the same\n"
    "data could appear obviously flawed when viewed through Spectra."
)


class SpectraArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting with status 2."""

    def error(self, message):
        raise ArgumentError(message)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = SpectraArgumentParser(
        prog="spectra",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--input", "-i", help="Path to the digit file to plot (required)")
    p.add_argument("--output", "-o", default=DEFAULT_OUTPUT, help=f"Output PNG path (default: {DEFAULT_OUTPUT})")
    p.add_argument(
        "--xsize",
        "-x",
        default=str(DEFAULT_XSIZE),
        help=f"Image width in pixels, 1-{MAX_DIMENSION} (default: {DEFAULT_XSIZE})",
    )
    p.add_argument(
        "--ysize",
        "-y",
        default=str(DEFAULT_YSIZE),
        help=f"Image height in pixels, 1-{MAX_DIMENSION} (default: {DEFAULT_YSIZE})",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        help="Read exactly xsize*ysize digits instead of (xsize+1)*(ysize+1)",
    )
    p.add_argument("--quiet", "-q", action="store_true", help="Only print the histogram and errors")
    p.add_argument("--version", "-V", action="version", version=f"{APPNAME} (v{VERSION})")

    args, unknown = p.parse_known_args(argv)
    args.unknown = unknown
    return args


def parse_dimension(raw: str, axis: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ArgumentError(f"Invalid {axis} dimension.") from None
    if not 0 < value <= MAX_DIMENSION:
        raise ArgumentError(f"Invalid {axis} dimension.")
    return value


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except OSError as e:
        print(f"Warning: could not remove temporary file '{path}': {e}", file=sys.stderr)


def run(
    input_path: str,
    output_path: str,
    width: int,
    height: int,
    inclusive: bool = True,
    quiet: bool = False,
) -> int:
    """Convert one digit file to a PNG and print its histogram.

    Returns the process exit status. The image is written to a temporary file
    beside the output and only moved into place once it is complete, so a
    failed or interrupted run never touches an existing file at output_path.
    """
    pending = False

    def say(message: str = "", end: str = "\n") -> None:
        nonlocal pending
        if not quiet:
            print(message, end=end, flush=True)
            pending = end != "\n"

    say(f"{APPNAME} (v{VERSION})")
    say("-" * 27)

    tmp_path = None
    try:
        check_dimensions(width, height)

        say(f"Opening input file: {input_path}...", end="")
        try:
            infile = open(input_path, "rb")
        except OSError as e:
            raise InputOpenError(input_path, e) from e

        with infile:
            say("OK")

            say("Analyzing input file...", end="")
            size = probe_size(infile)
            say(f"OK ({size} bytes)")

            check_input_size(width, height, size)

            say(f"Creating output file: {output_path}...", end="")
            try:
                fd, tmp_path = tempfile.mkstemp(
                    prefix=".spectra-",
                    suffix=".png",
                    dir=os.path.dirname(os.path.abspath(output_path)),
                )
            except OSError as e:
                raise OutputOpenError(output_path, e) from e

            with os.fdopen(fd, "wb") as outfile:
                say("OK")

                say(f"Generating {width}x{height} image...", end="")
                result = render(width, height, infile, inclusive=inclusive)
                say("Done")

                result.canvas.save(outfile)

            try:
                # mkstemp creates the file owner-only
                os.chmod(tmp_path, OUTPUT_MODE)
                os.replace(tmp_path, output_path)
            except OSError as e:
                raise OutputOpenError(output_path, e) from e
            tmp_path = None

    except SpectraError as e:
        if pending:
            say("Error!")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    finally:
        if tmp_path is not None:
            _discard(tmp_path)

    say()
    for line in format_report(result.occurrences):
        print(line)
    say()
    say("Done.")
    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(argv)

        options = [a for a in args.unknown if a.startswith("-")]
        if options:
            print("Unknown option. Use -h for help.")
            return 0
        if args.unknown:
            raise ArgumentError(f"Unexpected argument: {args.unknown[0]}")

        width = parse_dimension(args.xsize, "X")
        height = parse_dimension(args.ysize, "Y")

        if args.input is None:
            raise ArgumentError("You must provide Spectra with an input file to process with the -i option.")

        # The finished image would replace the sample data.
        if os.path.exists(args.input) and os.path.exists(args.output) and os.path.samefile(args.input, args.output):
            raise ArgumentError("Input and output must be different files.")

    except ArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return run(args.input, args.output, width, height, inclusive=not args.strict, quiet=args.quiet)


if __name__ == "__main__":
    raise SystemExit(main())
