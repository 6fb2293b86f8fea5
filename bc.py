"""pybc entry point and REPL wiring."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import List, Mapping, Optional, TextIO

try:
    # REPL readline support.
    import readline
except ImportError:
    readline = None

from interpreter import DEFAULT_LINE_LENGTH, BCRuntimeError, Interpreter
from lexer import BCParseError
from mathlib import BCBootstrapError
from parser import is_incomplete, parse_program


PROMPT = ">> "
CONTINUATION_PROMPT = ".. "
BANNER = "pybc: POSIX bc calculator. Type quit to leave."

logger = logging.getLogger("bc.driver")
logger.addHandler(logging.NullHandler())


class LineSource:
    """Hands out stdin lines to both the REPL and read()."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.interactive = stream.isatty()

    def read(self, prompt: str = "") -> Optional[str]:
        if self.interactive and self.stream is sys.stdin:
            try:
                return input(prompt) + "\n"
            except EOFError:
                return None
        line = self.stream.readline()
        if not line:
            return None
        return line if line.endswith("\n") else line + "\n"


def _write(text: str) -> None:
    if text:
        sys.stdout.write(text)
        sys.stdout.flush()


def _describe(error: BCRuntimeError) -> str:
    location = error.location
    if location is None:
        return error.message
    return f"{location.file or '<stdin>'}:{location.line}: {error.message}"


def run_unit(interpreter: Interpreter, source: str, filename: Optional[str], verbose: bool) -> bool:
    """Parse and execute one unit; report errors on stderr and return success."""
    try:
        program = parse_program(source, filename)
    except BCParseError as error:
        print(f"parse error: {error}", file=sys.stderr)
        return False
    try:
        output = interpreter.exec(program)
    except BCRuntimeError as error:
        _write(error.output)
        print(f"runtime error: {_describe(error)}", file=sys.stderr)
        if verbose:
            print(interpreter.formatter.format_text(error, verbose=True), file=sys.stderr)
        return False
    _write(output)
    return True


def run_repl(interpreter: Interpreter, lines: LineSource, verbose: bool) -> int:
    buffer: List[str] = []
    while not interpreter.has_quit():
        prompt = CONTINUATION_PROMPT if buffer else PROMPT
        try:
            line = lines.read(prompt if lines.interactive else "")
        except KeyboardInterrupt:
            logger.debug("interrupted; leaving the read loop")
            if lines.interactive:
                print()
            return 0
        if line is None:
            break
        buffer.append(line)
        source = "".join(buffer)
        if is_incomplete(source):
            continue
        buffer.clear()
        run_unit(interpreter, source, None, verbose)
    if buffer and not interpreter.has_quit():
        # Input ended mid-construct; parsing reports what is missing.
        run_unit(interpreter, "".join(buffer), None, verbose)
    return 0


def line_length_from_env(environ: Mapping[str, str]) -> int:
    raw = environ.get("BC_LINE_LENGTH")
    if raw is None:
        return DEFAULT_LINE_LENGTH
    try:
        value = int(raw)
    except ValueError:
        logger.debug("ignoring non-numeric BC_LINE_LENGTH %r", raw)
        return DEFAULT_LINE_LENGTH
    if value < 0:
        return DEFAULT_LINE_LENGTH
    return value


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="pybc", description="POSIX bc arbitrary precision calculator")
    parser.add_argument("files", nargs="*", metavar="file", help="Source files run before standard input")
    parser.add_argument("-l", "--mathlib", action="store_true", help="Load the math library and set scale to 20")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not print the interactive banner")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and frame tracebacks on errors")
    parser.add_argument(
        "-e",
        "--expression",
        action="append",
        default=[],
        help="Run literal source text after the files instead of reading standard input",
    )
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s", stream=sys.stderr)

    lines = LineSource(sys.stdin)
    try:
        interpreter = Interpreter(
            math_library=args.mathlib,
            input_provider=lines.read,
            line_length=line_length_from_env(os.environ),
            verbose=args.verbose,
        )
    except BCBootstrapError as error:
        print(f"bootstrap error: {error}", file=sys.stderr)
        return 2

    for filename in args.files:
        if interpreter.has_quit():
            return 0
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"pybc: cannot read {filename}: {exc.strerror}", file=sys.stderr)
            return 1
        logger.debug("running %s", filename)
        run_unit(interpreter, source_text, filename, args.verbose)

    if args.expression:
        for source_text in args.expression:
            if interpreter.has_quit():
                break
            run_unit(interpreter, source_text + "\n", "<expression>", args.verbose)
        return 0

    if interpreter.has_quit():
        return 0
    if lines.interactive and not args.quiet:
        print(BANNER)
    return run_repl(interpreter, lines, args.verbose)


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    raise SystemExit(run_cli())
