"""Command line front-end: print a container or rewrite it in plain form."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .compiler import compile_source
from .decoder import decode
from .encoder import encode
from .exceptions import BytecodeError
from .logging_config import configure_logging
from .options import CodecOptions
from .printer import format_prototype

LOG = logging.getLogger(__name__)

__all__ = ["build_parser", "main"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="luac53",
        description="Inspect Lua 5.3 bytecode, or rewrite it as a plain container.",
    )
    parser.add_argument("input", type=Path, help="bytecode file (or Lua source with --from-source)")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        help="write the re-encoded container here instead of printing a listing",
    )
    parser.add_argument("--json", action="store_true", help="print the listing as JSON")
    parser.add_argument(
        "--from-source",
        action="store_true",
        help="treat the input as Lua source and compile it first",
    )
    parser.add_argument(
        "--strip",
        action="store_true",
        help="drop debug information when compiling with --from-source",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="maximum prototype nesting depth (default: $LUAC53_MAX_DEPTH or 200)",
    )
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="also write logs to this file")
    return parser


def _resolve_options(args: argparse.Namespace) -> CodecOptions:
    if args.max_depth is not None:
        return CodecOptions(max_depth=args.max_depth)
    return CodecOptions.from_env()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    try:
        options = _resolve_options(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        data = args.input.read_bytes()
    except OSError as exc:
        print(f"Error: Could not open input file {args.input}: {exc}", file=sys.stderr)
        return 1

    try:
        if args.from_source:
            data = compile_source(
                data, chunkname="@" + args.input.name, strip=args.strip
            )
        proto = decode(data, options=options)

        if args.output is not None:
            payload = encode(proto, options=options)
            try:
                args.output.write_bytes(payload)
            except OSError as exc:
                print(f"Error: Could not open output file {args.output}: {exc}", file=sys.stderr)
                return 1
            print(
                f"Successfully parsed bytecode from {args.input} and wrote to {args.output}"
            )
        elif args.json:
            json.dump(proto.as_dict(), sys.stdout, indent=2)
            sys.stdout.write("\n")
        else:
            format_prototype(proto, sys.stdout)
            print(f"Successfully parsed and formatted bytecode from {args.input}")
    except BytecodeError as exc:
        LOG.debug("decode failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI wrapper
    raise SystemExit(main())
