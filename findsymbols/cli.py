"""
findsymbols.cli
===============
Command-line driver.

Per-file mode (default)
    Each ``FILE`` gets its own ``FILE.symbols.json`` holding one record.
    Existing outputs are skipped unless ``--clobber`` is given.

Aggregate mode (``--output PATH``)
    ``PATH`` is loaded first (missing = empty), every scanned file replaces
    the record with the same digest, and the collection is written back
    after each file.

Processing stops at the first file that fails; earlier outputs are kept.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from findsymbols import __version__
from findsymbols.collection import (
    CollectionFormatError,
    FileSymbols,
    SymbolCollection,
    load_collection,
    save_collection,
    symbols_path_for,
)
from findsymbols.reader import DEFAULT_CHUNK_SIZE, ScanConfig, scan_file

logger = logging.getLogger(__name__)

_DECODE_ERRORS = ("replace", "surrogateescape", "strict")


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs, built once from the command line."""
    clobber: bool        = False
    output:  Path | None = None   # aggregate store; None for per-file outputs
    scan:    ScanConfig  = field(default_factory=ScanConfig)
    errors:  str         = "replace"

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> RunConfig:
        return cls(
            clobber=args.clobber,
            output=Path(args.output) if args.output else None,
            scan=ScanConfig(chunk_size=args.chunk_size, max_extension=args.max_extension),
            errors=args.errors,
        )


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

def process_file(path: Path | str, config: RunConfig) -> FileSymbols:
    """Scan one binary and build its record."""
    result = scan_file(path, config.scan)
    return FileSymbols.from_scan(path, result, config.errors)


def run(paths: Iterable[Path | str], config: RunConfig) -> int:
    """
    Process *paths* in order and return an exit status.

    Returns 0 when every file was processed or skipped, 1 after the first
    failure (remaining files are not attempted).
    """
    collection: SymbolCollection | None = None
    if config.output is not None:
        try:
            collection = load_collection(config.output)
        except (OSError, CollectionFormatError) as exc:
            logger.error("Error reading collection %s: %s", config.output, exc)
            return 1

    for path in paths:
        if collection is None:
            target = symbols_path_for(path)
            if target.exists() and not config.clobber:
                logger.info("Skipping existing file: %s", target)
                continue
            store = SymbolCollection()
        else:
            target = config.output
            store = collection

        try:
            record = process_file(path, config)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Error processing %s: %s", path, exc)
            return 1

        store.replace(record)
        try:
            save_collection(store, target)
        except (OSError, UnicodeError) as exc:
            logger.error("Error writing %s: %s", target, exc)
            return 1

        print(f"{path}: {len(record.symbols)} symbols")

    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _byte_count(text: str) -> int:
    """Parse a byte count such as ``4096``, ``64K`` or ``100M``."""
    units = {"K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}
    text = text.strip().upper().removesuffix("B").removesuffix("I")
    scale = units.get(text[-1:], 1)
    if scale != 1:
        text = text[:-1]
    try:
        value = int(text) * scale
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid byte count: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError("byte count must not be negative")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="findsymbols",
        usage="%(prog)s [OPTIONS] [FILE]...",
        description="Extract marker-prefixed symbols from binary files into JSON.",
        add_help=False,
    )
    parser.add_argument("files", nargs="*", metavar="FILE", help="Binary files to scan")
    parser.add_argument(
        "-h", "-help", "--help",
        action="help",
        help="Show usage and exit",
    )
    parser.add_argument(
        "-clobber", "--clobber",
        action="store_true",
        help="Overwrite existing symbol collections",
    )
    parser.add_argument(
        "-output", "--output",
        metavar="PATH",
        default=None,
        help="Process symbols into a single collection file",
    )
    parser.add_argument(
        "--chunk-size",
        type=_byte_count,
        default=DEFAULT_CHUNK_SIZE,
        metavar="BYTES",
        help="Nominal read size (default: 100M)",
    )
    parser.add_argument(
        "--max-extension",
        type=_byte_count,
        default=None,
        metavar="BYTES",
        help="Cap on bytes read past a chunk looking for a terminator (default: no cap)",
    )
    parser.add_argument(
        "--errors",
        choices=_DECODE_ERRORS,
        default="replace",
        help="How to decode non-UTF-8 symbol bytes (default: replace)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log per-chunk progress",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``findsymbols`` command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s" if args.verbose else "%(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.files:
        parser.print_help()
        return 0

    try:
        config = RunConfig.from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    return run(args.files, config)


if __name__ == "__main__":
    sys.exit(main())
