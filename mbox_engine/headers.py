"""Header block parser with RFC 5322 unfolding.

The parser walks a record's lines through four states::

    BEFORE_HEADERS -> IN_HEADER_BLOCK <-> FOLDING_CONTINUATION
                                      -> BODY_BOUNDARY_FOUND

A blank line ends the header block; everything after it is body.
Lines that are neither a field, a continuation nor blank are reported
and skipped, never fatal.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from .models import HeaderTable

_FIELD_RE = re.compile(r"^([^:\s]+):\s*(.*)$")


class HeaderState(Enum):
    BEFORE_HEADERS = "before_headers"
    IN_HEADER_BLOCK = "in_header_block"
    FOLDING_CONTINUATION = "folding_continuation"
    BODY_BOUNDARY_FOUND = "body_boundary_found"


@dataclass(frozen=True)
class MalformedLine:
    """A header-block line that could not be interpreted."""

    offset: int
    line: str
    reason: str


@dataclass
class HeaderBlock:
    """Result of parsing one record's header block."""

    table: HeaderTable
    body_lines: list[str]
    boundary_found: bool
    malformed: list[MalformedLine] = field(default_factory=list)


def unfold(fragments: Sequence[str]) -> str:
    """Join a field's physical lines into one logical value.

    Leading and trailing whitespace of every fragment is dropped and the
    fragments are joined by a single space; empty fragments vanish.
    """
    return " ".join(part for part in (fragment.strip() for fragment in fragments) if part)


class HeaderParser:
    """Stateless header-block parser; :meth:`parse` owns all working state."""

    def parse(self, lines: Sequence[str], *, has_delimiter: bool = True) -> HeaderBlock:
        fields: list[tuple[str, str]] = []
        malformed: list[MalformedLine] = []
        current_name: str | None = None
        current_value: list[str] = []
        state = HeaderState.BEFORE_HEADERS

        def finalize() -> None:
            if current_name is not None:
                fields.append((current_name, unfold(current_value)))

        for offset, line in enumerate(lines):
            if state is HeaderState.BEFORE_HEADERS:
                state = HeaderState.IN_HEADER_BLOCK
                if has_delimiter:
                    continue

            if line == "":
                finalize()
                state = HeaderState.BODY_BOUNDARY_FOUND
                return HeaderBlock(
                    table=HeaderTable(fields),
                    body_lines=list(lines[offset + 1 :]),
                    boundary_found=True,
                    malformed=malformed,
                )

            if line[0] in " \t":
                if current_name is not None:
                    current_value.append(line)
                    state = HeaderState.FOLDING_CONTINUATION
                else:
                    malformed.append(MalformedLine(offset, line, "continuation line without a header field"))
                continue

            match = _FIELD_RE.match(line)
            if match is None:
                malformed.append(MalformedLine(offset, line, "header line without a colon"))
                continue

            finalize()
            current_name = match.group(1)
            current_value = [match.group(2)]
            state = HeaderState.IN_HEADER_BLOCK

        # Record ended inside the header block: no body.
        finalize()
        return HeaderBlock(
            table=HeaderTable(fields),
            body_lines=[],
            boundary_found=False,
            malformed=malformed,
        )
