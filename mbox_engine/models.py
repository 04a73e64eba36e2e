"""Data models shared by the parse and export paths.

Parsed records (``RawRecord``, ``Message`` and friends) are frozen
dataclasses; report objects that callers serialize (errors, stats,
progress) are pydantic models.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ErrorKind(str, Enum):
    """Classification of a per-record parse problem."""

    MALFORMED_HEADER = "MALFORMED_HEADER"
    ENCODING_ERROR = "ENCODING_ERROR"
    DELIMITER_AMBIGUITY = "FROM_LINE_ERROR"
    CRITICAL_PARSE_FAILURE = "CRITICAL"


# ----------------------------------------------------------------------
# Framing
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Envelope:
    """The ``From sender trailer`` delimiter line of a record."""

    sender: str
    trailer: str = ""

    @property
    def line(self) -> str:
        if self.trailer:
            return f"From {self.sender} {self.trailer}"
        return f"From {self.sender}"


@dataclass(frozen=True)
class RawRecord:
    """A contiguous span of the normalized container holding one message.

    ``lines`` includes the delimiter line when ``delimiter`` is set.
    ``ambiguous_lines`` holds offsets (into ``lines``) of body lines that
    look like a delimiter but were not preceded by a blank line.
    """

    index: int
    lines: tuple[str, ...]
    delimiter: Envelope | None = None
    ambiguous_lines: tuple[int, ...] = ()

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def size(self) -> int:
        return len(self.text.encode("utf-8", "surrogateescape"))


# ----------------------------------------------------------------------
# Header table
# ----------------------------------------------------------------------


class HeaderTable:
    """Ordered multimap of header fields keyed by lowercase name.

    Fields keep their source order and original name casing; every
    occurrence of a repeated header (``Received``, ...) is its own entry.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Iterable[tuple[str, str]] = ()) -> None:
        self._fields: tuple[tuple[str, str], ...] = tuple((name, value) for name, value in fields)

    def first(self, name: str) -> str | None:
        """Return the first value for *name*, or ``None``."""
        key = name.lower()
        for field_name, value in self._fields:
            if field_name.lower() == key:
                return value
        return None

    def get_all(self, name: str) -> list[str]:
        """Return every value for *name* in source order."""
        key = name.lower()
        return [value for field_name, value in self._fields if field_name.lower() == key]

    def names(self) -> list[str]:
        """Distinct lowercase names in order of first appearance."""
        seen: dict[str, None] = {}
        for field_name, _ in self._fields:
            seen.setdefault(field_name.lower(), None)
        return list(seen)

    def fields(self) -> list[tuple[str, str]]:
        """All ``(name, value)`` pairs in source order, original casing."""
        return list(self._fields)

    def as_dict(self) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for field_name, value in self._fields:
            result.setdefault(field_name.lower(), []).append(value)
        return result

    def with_replacements(self, replacements: Mapping[str, str]) -> HeaderTable:
        """Return a new table where each named header has exactly one value.

        All existing values of a replaced header collapse into the new
        value at the position of its first occurrence.  Names that are
        not present yet are appended in the order given.
        """
        pending = {name.lower(): (name, value) for name, value in replacements.items()}
        replaced = set(pending)
        fields: list[tuple[str, str]] = []
        for field_name, value in self._fields:
            key = field_name.lower()
            if key not in replaced:
                fields.append((field_name, value))
            elif key in pending:
                _, new_value = pending.pop(key)
                fields.append((field_name, new_value))
        fields.extend(pending.values())
        return HeaderTable(fields)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.first(name) is not None

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderTable):
            return NotImplemented
        return self._fields == other._fields

    def __hash__(self) -> int:
        return hash(self._fields)

    def __repr__(self) -> str:
        return f"HeaderTable({list(self._fields)!r})"


# ----------------------------------------------------------------------
# Messages
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Body:
    """Message body: ``raw`` as stored in the container, ``text`` unescaped."""

    text: str
    raw: str
    html: str = ""


@dataclass(frozen=True)
class Metadata:
    """Typed view derived from a header table."""

    subject: str
    date: datetime | None = None
    from_: list[str] = field(default_factory=list)
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    in_reply_to: str | None = None
    references: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Message:
    """A successfully parsed record.  Never mutated; edits live in an overlay."""

    uid: str
    message_id: str
    headers: HeaderTable
    body: Body
    metadata: Metadata
    raw_size: int
    envelope: Envelope | None = None
    record_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation."""
        meta = self.metadata
        return {
            "uid": self.uid,
            "message_id": self.message_id,
            "headers": self.headers.as_dict(),
            "body": {"text": self.body.text, "html": self.body.html, "raw": self.body.raw},
            "metadata": {
                "date": meta.date.isoformat() if meta.date else None,
                "from": list(meta.from_),
                "to": list(meta.to),
                "cc": list(meta.cc),
                "subject": meta.subject,
                "in_reply_to": meta.in_reply_to,
                "references": list(meta.references),
            },
            "raw_size": self.raw_size,
            "envelope": self.envelope.line if self.envelope else None,
        }


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------


class ParseError(BaseModel):
    """A problem found in one record.  Only CRITICAL drops the record."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind = Field(description="Error classification")
    message: str = Field(description="Human-readable cause")
    record_index: int | None = Field(default=None, description="Index of the record in framer order")
    context: str | None = Field(default=None, description="Offending source text, truncated")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def recoverable(self) -> bool:
        return self.kind is not ErrorKind.CRITICAL_PARSE_FAILURE


class ParseStats(BaseModel):
    """Aggregate figures computed once per parse call."""

    total_emails: int = Field(description="Number of messages produced")
    total_bytes: int = Field(description="Length of the original container")
    avg_email_size: float = Field(description="total_bytes / total_emails, 0.0 when there are none")
    parse_time: float = Field(description="Wall-clock duration of the parse in seconds")
    error_count: int = Field(default=0, description="Number of ParseError entries")


class ProgressEvent(BaseModel):
    """Progress notification emitted at record checkpoints."""

    model_config = ConfigDict(frozen=True)

    percent_complete: float = Field(ge=0.0, le=100.0)
    records_processed: int = Field(ge=0)
    bytes_processed: int = Field(ge=0)
    current_subject: str | None = None


@dataclass(frozen=True)
class ParseResult:
    """Output of one parse call."""

    messages: list[Message]
    errors: list[ParseError]
    stats: ParseStats
    line_ending: str = "\n"

    def errors_of(self, kind: ErrorKind) -> list[ParseError]:
        return [error for error in self.errors if error.kind is kind]


class ExportError(BaseModel):
    """A problem with one export entry; the rest of the selection is still exported."""

    model_config = ConfigDict(frozen=True)

    uid: str = Field(description="Message uid the entry refers to")
    message: str = Field(description="Human-readable cause")
    header: str | None = Field(default=None, description="Overlay header involved, if any")


@dataclass(frozen=True)
class ExportResult:
    """Serialized container plus per-entry export errors."""

    content: str
    exported: int
    errors: list[ExportError] = field(default_factory=list)

    def to_bytes(self, encoding: str = "utf-8") -> bytes:
        return self.content.encode(encoding, "surrogateescape")


class SenderCount(BaseModel):
    address: str
    count: int


class MailboxSummary(BaseModel):
    """Overview of a set of messages."""

    total_count: int
    average_size: float
    earliest: datetime | None = None
    latest: datetime | None = None
    top_senders: list[SenderCount] = Field(default_factory=list)
    header_types: dict[str, int] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Outcome of a quick container sniff."""

    valid: bool
    error: str | None = None
