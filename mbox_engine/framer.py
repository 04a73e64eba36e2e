"""Split a normalized container into per-message records.

A line is a record delimiter iff it matches ``From <sender> ...`` AND it
is either the first line of the container or follows a blank line.  The
blank-line condition keeps an unescaped ``From `` line inside a body from
starting a bogus record.
"""

from __future__ import annotations

import re

from .models import Envelope, RawRecord

_DELIMITER_RE = re.compile(r"^From (\S+)(?:[ \t]+(.*?))?[ \t]*$")


def is_delimiter(line: str) -> bool:
    """True if *line* has the shape of a ``From_`` line (position not checked)."""
    return _DELIMITER_RE.match(line) is not None


def parse_envelope(line: str) -> Envelope | None:
    """Split a ``From_`` line into sender token and trailer."""
    match = _DELIMITER_RE.match(line)
    if match is None:
        return None
    return Envelope(sender=match.group(1), trailer=match.group(2) or "")


def split_lines(text: str) -> list[str]:
    """Split LF-normalized text into lines; empty text has no lines."""
    if not text:
        return []
    return text.split("\n")


def split_records(text: str) -> list[RawRecord]:
    """Frame LF-normalized *text* into records, in container order.

    Content before the first delimiter becomes a leading record without
    a delimiter, unless it is blank.  Stateless: every call owns its
    working set.
    """
    records: list[RawRecord] = []
    current: list[str] = []
    envelope: Envelope | None = None
    ambiguous: list[int] = []
    opened = False

    def close() -> None:
        if not opened:
            return
        if envelope is None and not any(line.strip() for line in current):
            return
        records.append(
            RawRecord(
                index=len(records),
                lines=tuple(current),
                delimiter=envelope,
                ambiguous_lines=tuple(ambiguous),
            )
        )

    previous_blank = True
    for line in split_lines(text):
        candidate = parse_envelope(line)
        if candidate is not None and previous_blank:
            close()
            current = [line]
            envelope = candidate
            ambiguous = []
            opened = True
        else:
            if not opened:
                if not line.strip():
                    # Blank lines before any content belong to no record.
                    previous_blank = True
                    continue
                opened = True
            if candidate is not None:
                ambiguous.append(len(current))
            current.append(line)
        previous_blank = line == ""

    close()
    return records
