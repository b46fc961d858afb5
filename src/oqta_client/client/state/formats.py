"""Filename-derived cartridge format and compressor resolution.

Only the trailing extension chain of a file's basename is inspected: an
optional compressor suffix, optionally preceded by a cartridge or snapshot
format suffix.  Anything else in the name is kept verbatim as the image name
shown by the server.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

FORMATS = frozenset({"mdv", "mdr", "z80", "sna"})
COMPRESSORS = frozenset({"gz", "gzip", "zip", "7z"})

# file picker filter matching everything the server accepts
ACCEPTED_SUFFIXES = tuple(f".{ext}" for ext in sorted(FORMATS | COMPRESSORS))


@dataclass(frozen=True)
class FormatCompressor:
    format: str = ""
    compressor: str = ""


def _basename(path: str) -> str:
    cut = max(path.rfind("/"), path.rfind("\\"))
    return path[cut + 1:]


def _split_extension(name: str) -> Tuple[str, str]:
    """Return ``(stem, lower-cased extension)``; no dot means no extension."""
    dot = name.rfind(".")
    if dot < 0:
        return name, ""
    return name[:dot], name[dot + 1:].lower()


def _resolve_parts(name: str) -> Tuple[str, FormatCompressor]:
    stem, ext = _split_extension(name)
    compressor = ""
    if ext in COMPRESSORS:
        compressor = ext
        name = stem
        stem, ext = _split_extension(name)
    if ext in FORMATS:
        return stem, FormatCompressor(format=ext, compressor=compressor)
    return name, FormatCompressor(format="", compressor=compressor)


def resolve(filename: str) -> FormatCompressor:
    """Derive format and compressor from ``filename``.

    >>> resolve("Manic Miner.mdr.gz")
    FormatCompressor(format='mdr', compressor='gz')
    """
    return _resolve_parts(_basename(filename))[1]


def display_name(filename: str) -> str:
    """Return the image name for ``filename`` with recognized extensions stripped.

    At most one compressor and one format suffix are removed, so a name that
    still ends in a recognized extension keeps it: ``a.mdr.mdr`` gives
    ``a.mdr``.  Applying this again to its own result is not a no-op then.
    """
    return _resolve_parts(_basename(filename))[0]
