"""cono entry point and REPL wiring."""
from __future__ import annotations
import argparse
import json
import sys
from typing import Callable, List, Optional

from interpreter import Interpreter
from lexer import LexError, format_lexemes, split_line
from registry import ConoError, TokenRegistry, build_default_registry


def _build_interpreter(verbose: bool, output_sink: Callable[[str], None]) -> Interpreter:
    registry = build_default_registry()
    return Interpreter(registry, output_sink=output_sink, verbose=verbose)


def _format_encoded(registry: TokenRegistry, lexemes: List[str]) -> str:
    return ", ".join(str(registry.encode(lexeme)) for lexeme in lexemes)


def run_lines(
    interpreter: Interpreter,
    text: str,
    filename: str,
    *,
    show_encoding: bool = False,
    output_sink: Callable[[str], None] = print,
) -> int:
    """Run ``text`` one line per statement and return the number of rejected lines."""
    rejected = 0
    for line_number, line in enumerate(text.splitlines(), start=1):
        try:
            lexemes = split_line(line, filename, line_number)
        except LexError as error:
            output_sink(f"{line_number} >  {line.strip()}")
            output_sink(f"!   {error}")
            rejected += 1
            continue
        output_sink(f"{line_number} >  {format_lexemes(lexemes)}")
        if not lexemes:
            continue
        if show_encoding:
            output_sink(f"      enc: {_format_encoded(interpreter.registry, lexemes)}")
        if not interpreter.execute(lexemes):
            rejected += 1
    return rejected


def run_repl(verbose: bool) -> int:
    print("\x1b[38;2;153;221;255mcono\033[0m REPL. Enter statements, ':symbols' to dump, Ctrl-D to quit.")
    interpreter = _build_interpreter(verbose, print)
    line_number = 0

    while True:
        try:
            line = input("\x1b[38;2;153;221;255m>>>\033[0m ")
        except EOFError:
            print()
            break

        stripped = line.strip()
        if stripped == ":symbols":
            print(interpreter.dump_symbols())
            continue
        line_number += 1
        try:
            lexemes = split_line(line, "<repl>", line_number)
        except LexError as error:
            print(f"!   {error}", file=sys.stderr)
            continue
        if lexemes:
            interpreter.execute(lexemes)

    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="cono statement interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Record symbol snapshots in the state log")
    parser.add_argument("--encode", action="store_true", help="Print the encoded form of every line")
    parser.add_argument("--symbols", action="store_true", help="Print the symbol table when done")
    parser.add_argument("--trace-json", action="store_true", help="Also emit the state log as JSON")
    args = parser.parse_args(argv)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        return run_repl(verbose=args.verbose)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    interpreter = _build_interpreter(args.verbose, print)
    try:
        rejected = run_lines(interpreter, source_text, filename, show_encoding=args.encode)
    except ConoError as error:
        print(f"{error.__class__.__name__}: {error}", file=sys.stderr)
        return 1
    if args.symbols:
        print(interpreter.dump_symbols())
    if args.trace_json:
        print(json.dumps(interpreter.logger.to_records(), indent=2), file=sys.stderr)
    return 1 if rejected else 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
