"""
findsymbols.collection
======================
JSON records of the symbols found per binary, keyed by content digest.

On-disk layout::

    {
      "file_symbols": [
        {"name": "game.bin", "hash": "<sha256 hex>", "symbols": ["foo", "bar"]}
      ]
    }

A collection holds at most one record per digest; adding a record whose
digest is already present replaces the old one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from findsymbols.reader import ScanResult

logger = logging.getLogger(__name__)

SYMBOLS_SUFFIX = ".symbols.json"


class CollectionFormatError(ValueError):
    """An existing collection file could not be parsed."""


def symbols_path_for(binary_path: Path | str) -> Path:
    """Per-file output path: the full input path with :data:`SYMBOLS_SUFFIX` appended."""
    return Path(f"{binary_path}{SYMBOLS_SUFFIX}")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class FileSymbols:
    """Symbols found in one binary."""
    name:    str
    hash:    str
    symbols: list[str] = field(default_factory=list)

    @classmethod
    def from_scan(cls, path: Path | str, result: ScanResult, errors: str = "replace") -> FileSymbols:
        return cls(
            name=Path(path).name,
            hash=result.digest,
            symbols=result.symbols.to_text(errors),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "hash": self.hash, "symbols": list(self.symbols)}

    @classmethod
    def from_dict(cls, data: Any) -> FileSymbols:
        if not isinstance(data, dict):
            raise CollectionFormatError(f"record must be an object, got {type(data).__name__}")
        try:
            name, digest = data["name"], data["hash"]
        except KeyError as exc:
            raise CollectionFormatError(f"record is missing field {exc}") from None
        symbols = data.get("symbols") or []
        if not isinstance(name, str) or not isinstance(digest, str):
            raise CollectionFormatError("record name and hash must be strings")
        if not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
            raise CollectionFormatError(f"symbols of {name!r} must be a list of strings")
        return cls(name=name, hash=digest, symbols=symbols)


@dataclass
class SymbolCollection:
    """Ordered list of :class:`FileSymbols`, unique by digest."""
    file_symbols: list[FileSymbols] = field(default_factory=list)

    def replace(self, record: FileSymbols) -> None:
        """Drop any record with the same digest, then append *record*."""
        before = len(self.file_symbols)
        self.file_symbols = [r for r in self.file_symbols if r.hash != record.hash]
        if len(self.file_symbols) != before:
            logger.debug("Replacing existing record for %s (%s)", record.name, record.hash)
        self.file_symbols.append(record)

    def find(self, digest: str) -> FileSymbols | None:
        for record in self.file_symbols:
            if record.hash == digest:
                return record
        return None

    def __len__(self) -> int:
        return len(self.file_symbols)

    def to_dict(self) -> dict[str, Any]:
        return {"file_symbols": [r.to_dict() for r in self.file_symbols]}

    @classmethod
    def from_dict(cls, data: Any) -> SymbolCollection:
        if not isinstance(data, dict):
            raise CollectionFormatError(f"collection must be an object, got {type(data).__name__}")
        records = data.get("file_symbols") or []
        if not isinstance(records, list):
            raise CollectionFormatError("file_symbols must be a list")
        collection = cls()
        for record in records:
            collection.replace(FileSymbols.from_dict(record))
        return collection


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------

def load_collection(path: Path | str) -> SymbolCollection:
    """
    Read a collection from *path*.  A missing file is an empty collection.

    Raises :class:`CollectionFormatError` for invalid JSON or an unexpected
    shape, and ``OSError`` if the file exists but cannot be read.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("No collection at %s, starting empty", path)
        return SymbolCollection()
    text = path.read_text(encoding="utf-8", errors="surrogateescape")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CollectionFormatError(f"{path}: {exc}") from exc
    try:
        collection = SymbolCollection.from_dict(data)
    except CollectionFormatError as exc:
        raise CollectionFormatError(f"{path}: {exc}") from exc
    logger.debug("Loaded %d records from %s", len(collection), path)
    return collection


def _encode(collection: SymbolCollection) -> bytes:
    payload = json.dumps(collection.to_dict(), indent=2, ensure_ascii=False) + "\n"
    try:
        return payload.encode("utf-8", errors="surrogateescape")
    except UnicodeEncodeError:
        # Lone surrogates loaded from an existing store: keep them as \u escapes.
        payload = json.dumps(collection.to_dict(), indent=2, ensure_ascii=True) + "\n"
        return payload.encode("ascii")


def save_collection(collection: SymbolCollection, path: Path | str) -> None:
    """
    Write *collection* as indented JSON with a trailing newline.

    The payload goes to a temporary file beside *path* that then replaces
    it, so a failed write leaves any existing collection untouched.
    """
    path = Path(path)
    data = _encode(collection)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.chmod(tmp, path.stat().st_mode & 0o777 if path.exists() else 0o644)
        os.replace(tmp, path)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.debug("Wrote %d records → %s", len(collection), path)
