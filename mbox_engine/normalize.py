"""Line-ending normalization, run once per parse before any framing."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import UnreadableContainerError

_EOL_RE = re.compile(r"\r\n|\r|\n")

LF = "\n"
CRLF = "\r\n"
CR = "\r"


@dataclass(frozen=True)
class NormalizedContainer:
    """LF-only text plus what is needed to reproduce the original on export."""

    text: str
    line_ending: str
    original_length: int


def detect_line_ending(text: str) -> str:
    """Return the most frequent line ending in *text* (LF on ties or none)."""
    counts = {LF: 0, CRLF: 0, CR: 0}
    for match in _EOL_RE.finditer(text):
        counts[match.group()] += 1
    best = max(counts.values())
    if best == 0 or counts[LF] == best:
        return LF
    return CRLF if counts[CRLF] == best else CR


def normalize_eol(text: str) -> str:
    """Turn CRLF and lone CR into LF.  Nothing inside a line changes."""
    return text.replace(CRLF, LF).replace(CR, LF)


def decode_container(data: bytes, encoding: str = "utf-8") -> str:
    """Decode a byte container without losing undecodable bytes.

    Invalid sequences become lone surrogates (``surrogateescape``) so the
    framer can attribute them to the record that holds them.
    """
    try:
        return data.decode(encoding, "surrogateescape")
    except LookupError as exc:
        raise UnreadableContainerError(f"unknown encoding {encoding!r}") from exc


def normalize_container(data: str | bytes, encoding: str = "utf-8") -> NormalizedContainer:
    if isinstance(data, (bytes, bytearray, memoryview)):
        raw = bytes(data)
        text = decode_container(raw, encoding)
        original_length = len(raw)
    elif isinstance(data, str):
        text = data
        original_length = len(data)
    else:
        raise UnreadableContainerError(
            f"expected str or bytes container, got {type(data).__name__}"
        )
    return NormalizedContainer(
        text=normalize_eol(text),
        line_ending=detect_line_ending(text),
        original_length=original_length,
    )


def has_undecodable(text: str) -> bool:
    """True when *text* carries bytes smuggled through ``surrogateescape``."""
    return any("\udc80" <= char <= "\udcff" for char in text)


def redecode(text: str, encoding: str, fallback: str) -> str:
    """Re-decode surrogate-escaped *text* with *fallback*, replacing bad bytes."""
    return text.encode(encoding, "surrogateescape").decode(fallback, "replace")
