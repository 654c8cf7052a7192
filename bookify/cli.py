from __future__ import annotations

import argparse
import logging
import sys
import tempfile
from pathlib import Path
from typing import Callable, Sequence

from bookify import __version__
from bookify.constants import DEFAULT_FLIP_TYPE, DEFAULT_LAYOUT, DEFAULT_ODD_EVEN
from bookify.errors import BookifyError
from bookify.imposition.core import resolve_flip_type, resolve_layout_type, resolve_odd_even
from bookify.imposition.imposer import PdfImposer
from bookify.imposition.pdf_writer import deterministic_output_filename

_LOGGER = logging.getLogger("bookify.cli")


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a whole number, got '{value}'") from exc
    if number < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return number


def _choice(resolver: Callable[[str], str]) -> Callable[[str], str]:
    def parse(value: str) -> str:
        try:
            return resolver(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc

    return parse


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", type=Path, help="input PDF file")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("-o", "--output", type=Path, help="output PDF file")
    target.add_argument(
        "--temp",
        action="store_true",
        help="write the result to a new temporary file instead of next to the input",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookify",
        description="Reorder PDF pages for booklet or manual double-sided printing.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug details")
    commands = parser.add_subparsers(dest="command", required=True)

    booklet = commands.add_parser(
        "booklet",
        help="impose pages as a booklet for double-sided printing",
    )
    _add_output_arguments(booklet)
    booklet.add_argument(
        "--layout",
        type=_choice(resolve_layout_type),
        default=DEFAULT_LAYOUT,
        help="two-up: 4 pages per sheet, four-up: 8 pages per sheet (default: %(default)s)",
    )
    booklet.add_argument(
        "--pages",
        type=_non_negative_int,
        default=None,
        help="pad the booklet with blank pages up to at least this many pages",
    )

    double_sided = commands.add_parser(
        "double-sided",
        help="extract odd or even pages for a manual duplex pass",
    )
    _add_output_arguments(double_sided)
    double_sided.add_argument(
        "--flip-type",
        type=_choice(resolve_flip_type),
        default=DEFAULT_FLIP_TYPE,
        help="rr, nn, rn or nr: whether the odd/even pass is reversed (default: %(default)s)",
    )
    double_sided.add_argument(
        "--odd-even",
        type=_choice(resolve_odd_even),
        default=DEFAULT_ODD_EVEN,
        help="which pages to output (default: %(default)s)",
    )
    return parser


def _output_path(args: argparse.Namespace, suffix: str) -> Path:
    if args.output is not None:
        return args.output
    if args.temp:
        with tempfile.NamedTemporaryFile(prefix=f"{args.command}-", suffix=".pdf", delete=False) as handle:
            return Path(handle.name)
    return args.input.with_name(deterministic_output_filename(args.input.name, suffix))


def run(args: argparse.Namespace) -> Path:
    imposer = PdfImposer(args.input)
    if args.command == "booklet":
        imposer.export_booklet(args.layout, minimum_pages=args.pages)
        suffix = f"booklet_{args.layout.replace('-', '_')}"
    else:
        imposer.export_double_sided(args.flip_type, args.odd_even)
        suffix = f"double_sided_{args.odd_even}"
    return imposer.save(_output_path(args, suffix))


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        output = run(args)
    except BookifyError as exc:
        _LOGGER.debug("command failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
