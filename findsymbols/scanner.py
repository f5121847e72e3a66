"""
findsymbols.scanner
===================
Marker-based symbol extraction over a single in-memory chunk.

How it works
------------
Symbols are embedded in the binary as::

    [MARKER]  [symbol_bytes]  [0x00]

The chunk is split at every occurrence of :data:`MARKER` (left to right,
non-overlapping).  Each segment that *follows* a marker is searched for its
first zero byte; the bytes before it are the symbol.  A segment with no zero
byte before the next marker (or the end of the chunk) yields nothing, so a
candidate left unterminated at the very end of a stream is dropped.

The bytes before the first marker of a chunk are never a candidate.  Chunk
boundaries are placed by :mod:`findsymbols.reader`, so including that leading
segment would make the result depend on where the file happened to be split.

Symbols are kept as raw ``bytes``; decoding to text happens only when a
result is written out (see :meth:`SymbolSet.to_text`).
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MARKER: bytes = b"OlPrEfIx"
TERMINATOR: bytes = b"\x00"


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

class SymbolSet:
    """
    Unordered, deduplicated collection of raw symbol byte strings.

    One instance belongs to one scanning session; :class:`SymbolScanner`
    is the only thing that should add to it while a scan is running.
    """

    __slots__ = ("_symbols",)

    def __init__(self, symbols: Iterable[bytes] = ()) -> None:
        self._symbols: set[bytes] = set()
        self.update(symbols)

    def add(self, symbol: bytes) -> bool:
        """Insert *symbol*; return True if it was not already present."""
        symbol = bytes(symbol)
        if symbol in self._symbols:
            return False
        self._symbols.add(symbol)
        return True

    def update(self, symbols: Iterable[bytes]) -> None:
        for symbol in symbols:
            self.add(symbol)

    def to_text(self, errors: str = "replace") -> list[str]:
        """
        Decode every symbol as UTF-8 and return them sorted.

        *errors* is a codec error handler: ``"replace"`` substitutes U+FFFD
        for invalid sequences, ``"surrogateescape"`` keeps the bytes
        recoverable, ``"strict"`` raises :class:`UnicodeDecodeError`.
        """
        return sorted(s.decode("utf-8", errors=errors) for s in self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def __contains__(self, symbol: object) -> bool:
        if isinstance(symbol, str):
            symbol = symbol.encode("utf-8")
        return symbol in self._symbols

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._symbols)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SymbolSet):
            return self._symbols == other._symbols
        if isinstance(other, (set, frozenset)):
            return self._symbols == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"SymbolSet({len(self._symbols)} symbols)"


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class SymbolScanner:
    """Extracts zero-terminated symbols that follow each *marker* occurrence."""

    def __init__(self, marker: bytes = MARKER) -> None:
        if not marker:
            raise ValueError("marker must be a non-empty byte string")
        if TERMINATOR in marker:
            raise ValueError("marker must not contain a zero byte")
        self.marker = bytes(marker)

    def scan(self, chunk: bytes | bytearray, symbols: SymbolSet | None = None) -> SymbolSet:
        """
        Add every symbol found in *chunk* to *symbols* and return it.

        A fresh :class:`SymbolSet` is created when *symbols* is None.  An
        empty chunk leaves the set unchanged.
        """
        if symbols is None:
            symbols = SymbolSet()
        if not chunk:
            return symbols

        marker = self.marker
        width = len(marker)
        end = len(chunk)
        found = 0

        pos = chunk.find(marker)
        while pos >= 0:
            start = pos + width
            pos = chunk.find(marker, start)
            seg_end = pos if pos >= 0 else end
            zero = chunk.find(TERMINATOR, start, seg_end)
            if zero >= 0:
                symbols.add(bytes(chunk[start:zero]))
                found += 1

        logger.debug("Scanned %d bytes: %d terminated candidates", end, found)
        return symbols


def scan_bytes(
    chunk: bytes | bytearray,
    symbols: SymbolSet | None = None,
    marker: bytes = MARKER,
) -> SymbolSet:
    """Convenience wrapper around :meth:`SymbolScanner.scan`."""
    return SymbolScanner(marker).scan(chunk, symbols)


def last_candidate_start(chunk: bytes | bytearray, marker: bytes = MARKER) -> int:
    """
    Return the offset of the unterminated candidate at the end of *chunk*.

    Everything from this offset on could still become a symbol once more
    bytes arrive: the last marker after the final zero byte, or, without
    one, the trailing bytes that may be the start of a split marker.
    Returns ``len(chunk)`` when the chunk ends in a zero byte.
    """
    end = len(chunk)
    if not end or chunk[-1] == 0:
        return end
    tail = chunk.rfind(TERMINATOR) + 1
    pos = chunk.rfind(marker, tail)
    if pos >= 0:
        return pos
    return max(tail, end - (len(marker) - 1))
