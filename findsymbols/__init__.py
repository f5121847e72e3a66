"""
findsymbols — Marker-Prefixed Symbol Extraction for Binary Files
================================================================
Streams binaries in bounded chunks, collects the zero-terminated strings
that follow each ``OlPrEfIx`` marker, and catalogues them in JSON keyed
by the file's SHA-256 digest.
"""

__version__ = "1.0.0"
__license__ = "MIT"
__description__ = "Extract marker-prefixed symbols from binary files"
