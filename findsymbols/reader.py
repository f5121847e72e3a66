"""
findsymbols.reader
==================
Streams a binary file through the symbol scanner in bounded chunks while
hashing every byte exactly once.

Public API
----------
ScanConfig                  — immutable scan settings
ChunkReader(stream, config) — iterable of boundary-safe chunks + running digest
scan_stream(stream, config) → ScanResult
scan_file(path, config)     → ScanResult

Chunk boundaries
----------------
Each chunk starts as one ``read(chunk_size)``.  If its last byte is not a
zero byte, the reader keeps pulling single bytes until it appends one (or
the stream ends), so a ``MARKER symbol 0x00`` run is never split between
two chunks.  With ``max_extension`` set the extension stops early and the
unterminated tail candidate is re-sent at the front of the next chunk
instead (up to ``max(chunk_size, MAX_CARRY)`` bytes).  Carried bytes are
not hashed a second time.

Memory use is one chunk plus its extension, regardless of file size.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from findsymbols.scanner import MARKER, TERMINATOR, SymbolScanner, SymbolSet, last_candidate_start

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100 * 1024 * 1024  # 100 MiB
DEFAULT_HASH = "sha256"

# Longest unterminated candidate carried between chunks when max_extension is set.
MAX_CARRY = 1024 * 1024  # 1 MiB


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanConfig:
    """Settings for scanning one stream."""
    marker:        bytes      = MARKER
    chunk_size:    int        = DEFAULT_CHUNK_SIZE
    max_extension: int | None = None   # None: extend until a zero byte or EOF
    hash_name:     str        = DEFAULT_HASH

    def __post_init__(self) -> None:
        if not self.marker:
            raise ValueError("marker must be a non-empty byte string")
        if TERMINATOR in self.marker:
            raise ValueError("marker must not contain a zero byte")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_extension is not None and self.max_extension < 0:
            raise ValueError(f"max_extension must be >= 0, got {self.max_extension}")
        if self.hash_name.lower().startswith("shake_"):
            raise ValueError(f"variable-length hash not supported: {self.hash_name}")
        # Raises ValueError for unknown algorithms.
        hashlib.new(self.hash_name)

    def new_hasher(self):
        return hashlib.new(self.hash_name)


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning one stream."""
    symbols: SymbolSet
    digest:  str
    size:    int = 0
    chunks:  int = 0


# ---------------------------------------------------------------------------
# Chunked reader
# ---------------------------------------------------------------------------

class ChunkReader:
    """
    Iterate over *stream* in boundary-safe chunks, hashing as it goes.

    Iterate once; afterwards :meth:`hexdigest` covers every byte consumed.
    Each yielded chunk is a fresh ``bytearray``.
    """

    def __init__(self, stream: BinaryIO, config: ScanConfig | None = None) -> None:
        self.stream = stream
        self.config = config or ScanConfig()
        self.hasher = self.config.new_hasher()
        self.bytes_read = 0
        self.chunks = 0

    def hexdigest(self) -> str:
        return self.hasher.hexdigest()

    def __iter__(self) -> Iterator[bytearray]:
        config = self.config
        carry = b""

        while True:
            data = self.stream.read(config.chunk_size)
            if not data:
                break

            chunk = bytearray(data)
            capped = self._extend(chunk)
            self.hasher.update(chunk)
            self.bytes_read += len(chunk)
            self.chunks += 1
            logger.debug(
                "Chunk %d: %d bytes (%d past nominal size)",
                self.chunks, len(chunk), len(chunk) - len(data),
            )

            if carry:
                chunk[:0] = carry
                carry = b""

            if capped:
                carry = bytes(chunk[last_candidate_start(chunk, config.marker):])
                if len(carry) > max(config.chunk_size, MAX_CARRY):
                    logger.warning(
                        "Discarding %d-byte unterminated candidate at offset %d",
                        len(carry), self.bytes_read - len(carry),
                    )
                    carry = b""

            yield chunk

    def _extend(self, chunk: bytearray) -> bool:
        """
        Append single bytes to *chunk* until it ends in a zero byte.

        Returns True only when ``max_extension`` stopped the extension, i.e.
        the chunk still ends inside a possible symbol and more data follows.
        """
        limit = self.config.max_extension
        extended = 0
        while chunk[-1] != 0:
            if limit is not None and extended >= limit:
                return True
            try:
                byte = self.stream.read(1)
            except OSError as exc:
                logger.warning(
                    "Read error while extending chunk at byte %d, scanning what was read: %s",
                    self.bytes_read + len(chunk), exc,
                )
                return False
            if not byte:
                return False
            chunk += byte
            extended += 1
        return False


# ---------------------------------------------------------------------------
# Scan drivers
# ---------------------------------------------------------------------------

def scan_stream(stream: BinaryIO, config: ScanConfig | None = None) -> ScanResult:
    """
    Scan *stream* to exhaustion and return its symbols and digest.

    An ``OSError`` from the stream (other than during chunk extension)
    propagates to the caller.
    """
    config = config or ScanConfig()
    scanner = SymbolScanner(config.marker)
    reader = ChunkReader(stream, config)
    symbols = SymbolSet()

    for chunk in reader:
        scanner.scan(chunk, symbols)

    return ScanResult(
        symbols=symbols,
        digest=reader.hexdigest(),
        size=reader.bytes_read,
        chunks=reader.chunks,
    )


def scan_file(path: Path | str, config: ScanConfig | None = None) -> ScanResult:
    """Open *path* in binary mode and :func:`scan_stream` it."""
    path = Path(path)
    logger.debug("Scanning %s", path)
    with path.open("rb") as fh:
        result = scan_stream(fh, config)
    logger.debug(
        "%s: %d bytes in %d chunks, %d symbols, %s",
        path, result.size, result.chunks, len(result.symbols), result.digest,
    )
    return result
