"""
Hasher - Note fingerprints using xxHash.

A fingerprint is the xxh64 hex digest of a note's text. It only has to
change when the text changes, which is what decides whether a note gets
re-embedded.
"""

import logging
from pathlib import Path

import xxhash


logger = logging.getLogger(__name__)

# Read in 64KB chunks for memory efficiency
_CHUNK_SIZE = 65536


def fingerprint_text(text: str) -> str:
    """Fingerprint note text (UTF-8 encoded)."""
    return xxhash.xxh64(text.encode("utf-8")).hexdigest()


def fingerprint_file(path: Path) -> str:
    """
    Fingerprint raw file bytes.

    Produces the same digest as fingerprint_text() for a UTF-8 file.
    """
    hasher = xxhash.xxh64()
    with open(path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()
