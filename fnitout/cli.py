"""Command-line interface: check formal knitout, convert knitout to formal knitout."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from fnitout.checker import validate
from fnitout.diagnostics import DiagnosticSink, FatalLoweringError
from fnitout.lowering import lower
from fnitout.parser import parse


def parse_args(args):
    argp = argparse.ArgumentParser(
        prog="fnitout",
        description="Formal knitout tools: validate programs, lower knitout to formal knitout.",
    )
    argp.add_argument(
        "-v", "--verbose", action="store_true", help="Log per-instruction details"
    )
    commands = argp.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Parse and validate a formal knitout file")
    check.add_argument("file", type=Path, help="Formal knitout program (.f)")
    check.add_argument(
        "--trace", action="store_true", help="Print every machine state in the trace"
    )

    convert = commands.add_parser("convert", help="Convert knitout to formal knitout")
    convert.add_argument("infile", type=Path, help="Knitout program (.knitout)")
    convert.add_argument("outfile", type=Path, help="Where to write formal knitout")

    return argp.parse_args(args)


def run_check(path: Path, show_trace: bool = False) -> int:
    print(f"Reading '{path}'...")
    text = path.read_text(encoding="utf8")
    print(f"Parsing '{path}'...")
    parsed = parse(text)
    if parsed.errors:
        print(f"Have {len(parsed.errors)} parsing errors:")
        for error in parsed.errors:
            print(f"  Line {error.line}: {error.message}")
    print(f"Parsed {len(parsed.instructions)} instructions.")

    validated = validate(parsed.instructions)
    if validated.errors:
        print(f"Have {len(validated.errors)} validation errors:")
        for error in validated.errors:
            instruction = parsed.instructions[error.instruction_index]
            print(f"  Instruction {error.instruction_index}: {error.message}\n    {instruction}")
    print(f"Trace contains {len(validated.trace)} machine states.")
    if show_trace:
        for i, state in enumerate(validated.trace):
            print(f"  [{i}] {state}")

    return 0 if parsed.passed and validated.passed else 1


def run_convert(infile: Path, outfile: Path) -> int:
    print(f"Will convert {infile} (knitout) to {outfile} (formal knitout).")
    source = infile.read_text(encoding="utf8")
    sink = DiagnosticSink()
    try:
        result = lower(source, sink=sink)
    except FatalLoweringError as exc:
        where = f"{exc.location}:" if exc.location is not None else ""
        print(f"{infile}:{where} ERROR: {exc.diagnostic.message}", file=sys.stderr)
        return 1
    outfile.write_text(result.text, encoding="utf8")
    print(f"Wrote to {outfile}")
    return 0


def main(args=None) -> int:
    params = parse_args(sys.argv[1:] if args is None else args)
    logging.basicConfig(
        level=logging.DEBUG if params.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if params.command == "check":
        return run_check(params.file, show_trace=params.trace)
    return run_convert(params.infile, params.outfile)
