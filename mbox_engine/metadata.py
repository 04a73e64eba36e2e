"""Typed metadata derived from a finalized header table."""

from __future__ import annotations

import email.utils
import re
from datetime import UTC, datetime

from .models import HeaderTable, Metadata

DEFAULT_SUBJECT = "(No Subject)"

_REFERENCE_RE = re.compile(r"<[^<>\s]+>")


def parse_addresses(value: str | None) -> list[str]:
    """Parse an RFC 5322 address list into bare addresses, in order.

    When nothing in *value* yields an address the trimmed raw text is
    kept as the single entry, so odd values such as
    ``undisclosed-recipients:;`` are not silently lost.
    """
    if not value or not value.strip():
        return []
    addresses = [addr for _, addr in email.utils.getaddresses([value]) if addr]
    return addresses or [value.strip()]


def parse_references(value: str | None) -> list[str]:
    """Angle-bracketed message ids in source order, duplicates kept."""
    if not value:
        return []
    return _REFERENCE_RE.findall(value)


def parse_date(value: str | None) -> datetime | None:
    """Parse an RFC 5322 date into an aware UTC datetime, or ``None``."""
    if not value:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def extract_metadata(table: HeaderTable, subject_placeholder: str = DEFAULT_SUBJECT) -> Metadata:
    subject = table.first("Subject")
    return Metadata(
        subject=subject if subject and subject.strip() else subject_placeholder,
        date=parse_date(table.first("Date")),
        from_=parse_addresses(table.first("From")),
        to=parse_addresses(table.first("To")),
        cc=parse_addresses(table.first("Cc")),
        in_reply_to=table.first("In-Reply-To") or None,
        references=parse_references(table.first("References")),
    )
