"""Content checks and line splitting for raw log data."""

import codecs
import logging

from logimport.errors import SourceReadError

logger = logging.getLogger(__name__)

# Bytes inspected by the binary check.
SNIFF_BYTES = 8192
# Fraction of control bytes above which content is treated as binary.
CONTROL_RATIO_LIMIT = 0.30

_TEXT_CONTROLS = {0x08, 0x09, 0x0A, 0x0C, 0x0D, 0x1B}


def looks_binary(data: bytes) -> bool:
    """Heuristic binary sniff: NUL bytes, or too many non-text control bytes."""
    sample = data[:SNIFF_BYTES]
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    controls = sum(1 for b in sample if b < 0x20 and b not in _TEXT_CONTROLS)
    return controls / len(sample) > CONTROL_RATIO_LIMIT


def decode_text(data: bytes, source_name: str, final: bool = True) -> str:
    """Decode UTF-8 log content, rejecting binary or undecodable input.

    With final=False a trailing incomplete multi-byte sequence is dropped,
    which is what a byte-prefix preview needs.
    """
    if looks_binary(data):
        raise SourceReadError(f"{source_name} does not look like a text log file")
    decoder = codecs.getincrementaldecoder("utf-8-sig")()
    try:
        return decoder.decode(data, final=final)
    except UnicodeDecodeError as exc:
        raise SourceReadError(f"{source_name} is not valid UTF-8: {exc}") from exc


def split_lines(text: str) -> list[str]:
    """Split on newlines, dropping blank lines and trailing carriage returns."""
    return [line.rstrip("\r") for line in text.split("\n") if line.strip()]


def split_prefix(text: str, truncated: bool) -> list[str]:
    """Split a byte-prefix read; the last line is partial when truncated.

    The partial line is kept only when it is the only line available.
    """
    lines = text.split("\n")
    if truncated and len(lines) > 1:
        lines = lines[:-1]
    return [line.rstrip("\r") for line in lines if line.strip()]
