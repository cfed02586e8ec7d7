from __future__ import annotations

import argparse
import io
import logging
import sys
from typing import BinaryIO, Optional

from .driver import load_program, run
from .errors import BrainguckError
from .interpreter import DEFAULT_TAPE_CAPACITY


def _input_channel(data: Optional[str]) -> BinaryIO:
    if data is None:
        return sys.stdin.buffer
    return io.BytesIO(data.encode("utf-8"))


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="brainguck interpreter CLI")
    parser.add_argument("source", nargs="?", help="Path to the program source file")
    parser.add_argument(
        "--in",
        dest="source_option",
        help="The source code filename to use as input (alternative to SOURCE)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print the number of program bytes interpreted",
    )
    parser.add_argument(
        "--input",
        help="Literal input supplied to the program instead of reading stdin",
    )
    parser.add_argument(
        "--tape-size",
        type=int,
        default=DEFAULT_TAPE_CAPACITY,
        help=f"Number of tape cells (default: {DEFAULT_TAPE_CAPACITY})",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Abort after this many program bytes (default: unlimited)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail when the program ends with unclosed loops",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    source = args.source_option or args.source
    if not source:
        parser.print_usage(sys.stderr)
        return 1

    try:
        program = load_program(source)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    try:
        result = run(
            program,
            _input_channel(args.input),
            sys.stdout.buffer,
            tape_capacity=args.tape_size,
            max_steps=args.max_steps,
            strict=args.strict,
        )
    except BrainguckError as exc:
        print(f"Execution error: {exc} ({exc.processed} bytes read.)", file=sys.stderr)
        return 1

    if args.verbose:
        sys.stdout.flush()
        print(f"{result.processed} bytes read.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
